"""FastAPI dependency injection for per-session orchestrators."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from fastapi import Depends, Header, Request, Response

from notebook.auth import CredentialVerifier
from notebook.constants import DEFAULT_MAX_SESSIONS, DEFAULT_SESSION_IDLE_SECONDS
from notebook.documents import DocumentRegistry
from notebook.engine import AnswerEngine
from notebook.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"


class SessionPool:
    """One orchestrator per session id, all sharing the workspace registry.

    Authorization and transcripts live in memory only; a restart logs
    everyone out and starts fresh conversations. The pool keeps at most
    ``max_sessions`` entries, evicting the least recently used first, and
    drops sessions idle for longer than ``idle_seconds``.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        answer_engine: AnswerEngine,
        verifier: CredentialVerifier,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        idle_seconds: float = DEFAULT_SESSION_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.registry = registry
        self.answer_engine = answer_engine
        self.verifier = verifier
        self.max_sessions = max_sessions
        self.idle_seconds = idle_seconds
        self._clock = clock
        # session id -> (orchestrator, last used)
        self._sessions: "OrderedDict[str, Tuple[SessionOrchestrator, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionOrchestrator:
        with self._lock:
            now = self._clock()
            self._expire(now)
            entry = self._sessions.get(session_id)
            if entry is None:
                orchestrator = SessionOrchestrator(self.registry, self.answer_engine, self.verifier)
                logger.info("Created session %s", session_id)
            else:
                orchestrator = entry[0]
            self._sessions[session_id] = (orchestrator, now)
            self._sessions.move_to_end(session_id)
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted least recently used session %s", evicted)
            return orchestrator

    def _expire(self, now: float) -> None:
        # Oldest first, so stop at the first session still in use
        while self._sessions:
            session_id, (_, last_used) = next(iter(self._sessions.items()))
            if now - last_used <= self.idle_seconds:
                break
            del self._sessions[session_id]
            logger.info("Expired idle session %s", session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def get_registry(request: Request) -> DocumentRegistry:
    return request.app.state.registry


async def get_session_id(
    response: Response,
    x_session_id: Optional[str] = Header(default=None),
) -> str:
    """Use the caller's session id or mint one; always echoed back in the response."""
    session_id = (x_session_id or "").strip() or uuid.uuid4().hex
    response.headers[SESSION_HEADER] = session_id
    return session_id


def get_orchestrator(
    request: Request,
    session_id: str = Depends(get_session_id),
) -> SessionOrchestrator:
    return request.app.state.sessions.get(session_id)


__all__ = ["SessionPool", "SESSION_HEADER", "get_registry", "get_session_id", "get_orchestrator"]

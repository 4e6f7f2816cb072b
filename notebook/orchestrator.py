"""Per-turn coordination: routing, gated context, engine call, citations and login replay."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from .access import Visibility, classify
from .auth import AuthorizationStateMachine, CredentialVerifier
from .citations import extract_sources
from .constants import (
    ALREADY_AUTHORIZED_MESSAGE,
    ARABIC_MESSAGES,
    IMPORT_WELCOME_MESSAGE,
    LOGIN_PROMPT_MESSAGE,
    LOGIN_WELCOME_MESSAGE,
    LOGOUT_MESSAGE,
    REFUSAL_SENTENCE_AR,
    REFUSAL_SENTENCE_EN,
    TRANSPORT_FAILURE_MESSAGE,
)
from .context import assemble_context
from .documents import DocumentRegistry
from .engine import AnswerEngine, TransportFailure
from .logger import LOGGER
from .router import Route, is_arabic, route
from .sessions import ASSISTANT, USER, Message, Transcript
from .sharing import fetch_shared_notebook


class SessionBusyError(RuntimeError):
    """A turn is already being processed for this session."""


@dataclass
class Turn:
    """What one user submission produced."""
    assistant_text: str
    sources: List[str] = field(default_factory=list)
    triggered_login_prompt: bool = False
    already_authenticated: bool = False
    failed: bool = False
    replayed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class LoginResult:
    ok: bool
    error: Optional[str] = None
    turn: Optional[Turn] = None


def _localize(message: str, sample: str) -> str:
    return ARABIC_MESSAGES.get(message, message) if is_arabic(sample) else message


class SessionOrchestrator:
    """
    One chat session over a document registry.

    Owns the session's authorization state and transcript. Processing is
    single-flight: a submission made while another is running raises
    SessionBusyError instead of queueing.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        answer_engine: AnswerEngine,
        verifier: CredentialVerifier,
        transcript: Optional[Transcript] = None,
    ) -> None:
        self.registry = registry
        self.answer_engine = answer_engine
        self.auth = AuthorizationStateMachine(verifier)
        self.transcript = transcript or Transcript()
        self._lock = threading.Lock()
        # Transcript index where engine history starts; moved forward on logout
        self._history_floor = 0
        # Id of the user message parked behind the login prompt
        self._parked_message_id: Optional[str] = None

    @property
    def messages(self) -> List[Message]:
        return list(self.transcript.messages)

    @contextmanager
    def _single_flight(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("A request is already in progress for this session")
        try:
            yield
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def submit_query(self, text: str) -> Turn:
        """
        Process one user submission.

        Raises:
            ValueError: If the text is blank.
            SessionBusyError: If another submission is in flight.
        """
        query = text.strip()
        if not query:
            raise ValueError("Query must not be empty")

        with self._single_flight():
            decision = route(query, self.auth.authorized)
            LOGGER.info("Query routed: %s ('%s')", decision.value, query[:80])

            if decision is Route.LOGIN_TRIGGER:
                self.transcript.add(USER, query, control=True)
                self.auth.login_trigger(query)
                reply = _localize(LOGIN_PROMPT_MESSAGE, query)
                self.transcript.add(ASSISTANT, reply, control=True)
                return Turn(assistant_text=reply, triggered_login_prompt=True)

            if decision is Route.ALREADY_AUTHORIZED_NOTICE:
                self.transcript.add(USER, query, control=True)
                reply = _localize(ALREADY_AUTHORIZED_MESSAGE, query)
                self.transcript.add(ASSISTANT, reply, control=True)
                return Turn(assistant_text=reply, already_authenticated=True)

            return self._answer(query, record_user=True)

    def _answer(self, query: str, record_user: bool, replayed: bool = False) -> Turn:
        authorized = self.auth.authorized
        history = self.transcript.history(since=self._history_floor)
        documents = self.registry.list()
        context = assemble_context(documents, authorized, self.registry.folder_name)

        try:
            reply = self.answer_engine.answer(query, context, history, authorized)
        except TransportFailure as exc:
            LOGGER.error("Answer engine failed: %s", exc)
            if record_user:
                self.transcript.add(USER, query)
            text = _localize(TRANSPORT_FAILURE_MESSAGE, query)
            self.transcript.add(ASSISTANT, text, error=True)
            return Turn(assistant_text=text, failed=True, replayed=replayed)

        if reply.locked_refusal:
            self.auth.engine_requires_admin(query)
            if record_user:
                self._parked_message_id = self.transcript.add(USER, query, deferred=True).id
            self.transcript.add(ASSISTANT, reply.text, refusal=True)
            return Turn(assistant_text=reply.text, triggered_login_prompt=True, replayed=replayed)

        visible_ids = set(context.visible_ids)
        cited = extract_sources(reply.text, [doc for doc in documents if doc.id in visible_ids])
        if record_user:
            self.transcript.add(USER, query)
        elif replayed:
            self._restore_parked_question(query)
        self.transcript.add(ASSISTANT, reply.text, sources=cited, replay=replayed)
        return Turn(assistant_text=reply.text, sources=sorted(cited), replayed=replayed)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def submit_credentials(self, username: str, password: str) -> LoginResult:
        """Verify credentials; on success replay the deferred query exactly once."""
        with self._single_flight():
            outcome = self.auth.submit_credentials(username, password)
            if not outcome.ok:
                return LoginResult(ok=False, error=outcome.error)

            if outcome.replay_query:
                LOGGER.info("Replaying deferred query after login")
                turn = self._answer(outcome.replay_query, record_user=False, replayed=True)
                return LoginResult(ok=True, turn=turn)

            reply = _localize(LOGIN_WELCOME_MESSAGE, self._last_user_text())
            self.transcript.add(ASSISTANT, reply, control=True)
            return LoginResult(ok=True, turn=Turn(assistant_text=reply))

    def get_authorization_state(self) -> Dict[str, bool]:
        return {"authorized": self.auth.authorized, "prompt_open": self.auth.prompt_open}

    def cancel_login(self) -> None:
        self.auth.cancel()
        self._parked_message_id = None

    def open_login(self) -> None:
        self.auth.open_login()

    def logout(self) -> None:
        """Drop privilege and keep answers given while privileged out of future history."""
        with self._single_flight():
            was_authorized = self.auth.authorized
            self.auth.logout()
            self._parked_message_id = None
            if was_authorized:
                self.transcript.add(ASSISTANT, LOGOUT_MESSAGE, control=True)
            self._history_floor = len(self.transcript)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def summarize_document(self, document_id: str) -> Turn:
        """
        Summarize one document into the transcript.

        Raises:
            DocumentNotFoundError: Unknown id.
            SessionBusyError: If another submission is in flight.
        """
        with self._single_flight():
            document = self.registry.get(document_id)
            if classify(document, self.auth.authorized) is Visibility.LOCKED:
                request = f"Summarize {document.name}"
                self.auth.engine_requires_admin(request)
                self._parked_message_id = None
                refusal = REFUSAL_SENTENCE_AR if is_arabic(document.name) else REFUSAL_SENTENCE_EN
                self.transcript.add(ASSISTANT, refusal, refusal=True)
                return Turn(assistant_text=refusal, triggered_login_prompt=True)

            try:
                summary = self.answer_engine.summarize(document)
            except TransportFailure as exc:
                LOGGER.error("Summary failed for %s: %s", document.id, exc)
                text = _localize(TRANSPORT_FAILURE_MESSAGE, document.name)
                self.transcript.add(ASSISTANT, text, error=True)
                return Turn(assistant_text=text, failed=True)

            text = f"### Summary: {document.name}\n\n{summary}"
            self.transcript.add(ASSISTANT, text, sources=[document.name])
            return Turn(assistant_text=text, sources=[document.name])

    def import_workspace(self, data: Any) -> int:
        """Replace the workspace from a backup and restart the conversation."""
        with self._single_flight():
            count = self.registry.import_workspace(data)
            self.transcript.reset(IMPORT_WELCOME_MESSAGE)
            self._history_floor = 0
            self._parked_message_id = None
            return count

    def import_shared_notebook(self, url: str) -> int:
        """
        Fetch a published backup and import it like an uploaded one.

        Raises:
            WorkspaceImportError: The download failed or the backup is malformed.
        """
        data = fetch_shared_notebook(url)
        return self.import_workspace(data)

    def reset_conversation(self) -> None:
        with self._single_flight():
            self.transcript.reset()
            self._history_floor = 0
            self._parked_message_id = None

    def _restore_parked_question(self, query: str) -> None:
        """Bring a replayed question back into history, ahead of its answer."""
        parked = self.transcript.find(self._parked_message_id) if self._parked_message_id else None
        self._parked_message_id = None
        if parked is not None and parked.text == query:
            self.transcript.update_flags(parked, deferred=None, replay=True)
        else:
            self.transcript.add(USER, query, replay=True)

    def _last_user_text(self) -> str:
        for message in reversed(self.transcript.messages):
            if message.role == USER:
                return message.text
        return ""


__all__ = ["SessionOrchestrator", "SessionBusyError", "Turn", "LoginResult"]

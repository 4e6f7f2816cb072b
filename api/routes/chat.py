"""Chat endpoints: queries, administrator login and the transcript."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from starlette.responses import PlainTextResponse

from api.dependencies import get_orchestrator
from notebook.orchestrator import SessionBusyError, SessionOrchestrator, Turn
from notebook.sessions import export_markdown

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


# --- Request / Response Models ---

class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=8000)


class TurnResponse(BaseModel):
    answer: str
    sources: List[str] = []
    triggered_login_prompt: bool = False
    already_authenticated: bool = False
    failed: bool = False
    replayed: bool = False

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnResponse":
        return cls(
            answer=turn.assistant_text,
            sources=turn.sources,
            triggered_login_prompt=turn.triggered_login_prompt,
            already_authenticated=turn.already_authenticated,
            failed=turn.failed,
            replayed=turn.replayed,
        )


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
    turn: Optional[TurnResponse] = None


class AuthStateResponse(BaseModel):
    authorized: bool
    prompt_open: bool


class MessageResponse(BaseModel):
    id: str
    role: str
    text: str
    timestamp: datetime
    sources: List[str] = []
    metadata: Dict[str, Any] = {}


def _busy() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="A request is already in progress for this session",
    )


# --- Endpoints ---

@router.post("/query", response_model=TurnResponse)
def submit_query(
    request: QueryRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Answer one question over the workspace.

    Synchronous endpoint: blocks until the engine replies. Login trigger
    phrases and locked-content refusals come back with
    ``triggered_login_prompt`` set.
    """
    try:
        turn = orchestrator.submit_query(request.query)
    except SessionBusyError:
        raise _busy()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return TurnResponse.from_turn(turn)


@router.post("/login", response_model=LoginResponse)
def submit_credentials(
    request: LoginRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Verify administrator credentials; a deferred question is answered in ``turn``."""
    try:
        result = orchestrator.submit_credentials(request.username, request.password)
    except SessionBusyError:
        raise _busy()
    return LoginResponse(
        ok=result.ok,
        error=result.error,
        turn=TurnResponse.from_turn(result.turn) if result.turn else None,
    )


@router.post("/login/open", response_model=AuthStateResponse)
def open_login(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    orchestrator.open_login()
    return AuthStateResponse(**orchestrator.get_authorization_state())


@router.post("/login/cancel", response_model=AuthStateResponse)
def cancel_login(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    orchestrator.cancel_login()
    return AuthStateResponse(**orchestrator.get_authorization_state())


@router.post("/logout", response_model=AuthStateResponse)
def logout(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    try:
        orchestrator.logout()
    except SessionBusyError:
        raise _busy()
    return AuthStateResponse(**orchestrator.get_authorization_state())


@router.get("/auth", response_model=AuthStateResponse)
def get_authorization_state(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    return AuthStateResponse(**orchestrator.get_authorization_state())


@router.get("/messages", response_model=List[MessageResponse])
def list_messages(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    return [MessageResponse(**message.to_dict()) for message in orchestrator.messages]


@router.post("/reset", response_model=List[MessageResponse])
def reset_conversation(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    try:
        orchestrator.reset_conversation()
    except SessionBusyError:
        raise _busy()
    return [MessageResponse(**message.to_dict()) for message in orchestrator.messages]


@router.get("/export", response_class=PlainTextResponse)
def export_transcript(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Download the conversation as markdown."""
    filename = f"chat-export-{datetime.now().strftime('%Y-%m-%d')}.md"
    return PlainTextResponse(
        export_markdown(orchestrator.messages),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

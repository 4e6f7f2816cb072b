"""Pytest configuration and fixtures."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import pytest

from notebook.auth import StaticCredentialVerifier
from notebook.config import AppConfig
from notebook.constants import CONFIDENTIAL_FOLDER_ID, GENERAL_FOLDER_ID, REFUSAL_SENTENCE_EN
from notebook.documents import Document, DocumentRegistry
from notebook.engine import AnswerEngine, EngineMessage
from notebook.orchestrator import SessionOrchestrator

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "s3cret"


@pytest.fixture(autouse=True)
def setup_test_env(tmp_path, monkeypatch):
    """Point every test at its own data directory and a fake API key."""
    monkeypatch.setenv("NOTEBOOK_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
    monkeypatch.setenv("NOTEBOOK_ADMIN_USERNAME", ADMIN_USERNAME)
    monkeypatch.setenv("NOTEBOOK_ADMIN_PASSWORD", ADMIN_PASSWORD)
    AppConfig.reset()
    yield
    AppConfig.reset()


@dataclass
class EngineCall:
    system_instruction: str
    messages: List[EngineMessage]
    temperature: float


def notebook_responder(system_instruction: str, messages: Sequence[EngineMessage]) -> str:
    """Behaves like a well-instructed model over the Notes/Salary workspace."""
    query = messages[-1].text.lower()
    if "summarizes documents" in system_instruction:
        return "- Meeting at 10am"
    if "salary" in query:
        if "250000" in system_instruction:
            return "The CEO salary is 250000 according to [Salary.txt]."
        if "CONFIDENTIAL (LOCKED)" in system_instruction:
            return REFUSAL_SENTENCE_EN
    if "meeting" in query and "10am" in system_instruction:
        return "The meeting is at 10am, see [Notes.txt]."
    return "I couldn't find information about that in your documents."


class FakeEngine:
    """Scripted generation engine that records every request."""

    def __init__(self, responder: Optional[Callable[[str, Sequence[EngineMessage]], str]] = None) -> None:
        self.responder = responder or notebook_responder
        self.calls: List[EngineCall] = []
        self.error: Optional[Exception] = None

    def generate(self, system_instruction, messages, temperature):
        self.calls.append(EngineCall(system_instruction, list(messages), temperature))
        if self.error is not None:
            raise self.error
        return self.responder(system_instruction, list(messages))


def make_document(doc_id: str, name: str, content: str, folder_id: Optional[str] = None) -> Document:
    return Document(
        id=doc_id,
        name=name,
        content=content,
        size_bytes=len(content.encode()),
        uploaded_at=datetime(2024, 1, 1, 12, 0, 0),
        folder_id=folder_id,
    )


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def registry():
    """In-memory workspace with one general and one confidential document."""
    registry = DocumentRegistry()
    registry.save(make_document("notes", "Notes.txt", "Team meeting at 10am on Monday.", GENERAL_FOLDER_ID))
    registry.save(make_document("salary", "Salary.txt", "CEO salary is 250000.", CONFIDENTIAL_FOLDER_ID))
    return registry


@pytest.fixture
def verifier():
    return StaticCredentialVerifier(ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def orchestrator(registry, fake_engine, verifier):
    return SessionOrchestrator(registry, AnswerEngine(fake_engine), verifier)

"""Session state helpers for the Streamlit app."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .auth import load_verifier
from .config import AppConfig
from .documents import DocumentRegistry, DocumentStore
from .engine import AnswerEngine, GeminiEngine, GenerationEngine
from .logger import LOGGER
from .orchestrator import SessionOrchestrator
from .sessions import Transcript, TranscriptStore


def build_registry(config: AppConfig) -> DocumentRegistry:
    store = DocumentStore(config.paths.documents_store, config.paths.folders_store)
    return DocumentRegistry(store)


def build_answer_engine(config: AppConfig, engine: Optional[GenerationEngine] = None) -> AnswerEngine:
    return AnswerEngine(engine or GeminiEngine(), temperature=config.engine.temperature)


@dataclass
class AppState:
    """Everything one browser session needs; lives in ``st.session_state``."""
    registry: Optional[DocumentRegistry] = None
    orchestrator: Optional[SessionOrchestrator] = None
    engine: Optional[GenerationEngine] = None

    def ensure_registry(self) -> DocumentRegistry:
        if self.registry is None:
            self.registry = build_registry(AppConfig.get())
            LOGGER.info("Loaded workspace: %d documents", len(self.registry.list()))
        return self.registry

    def ensure_orchestrator(self) -> SessionOrchestrator:
        """
        Lazily wire the orchestrator.

        The transcript persists to the data directory; authorization does not,
        so every new browser session starts unauthenticated.
        """
        if self.orchestrator is None:
            config = AppConfig.get()
            self.orchestrator = SessionOrchestrator(
                registry=self.ensure_registry(),
                answer_engine=build_answer_engine(config, self.engine),
                verifier=load_verifier(),
                transcript=Transcript(TranscriptStore(config.paths.transcript_store)),
            )
            LOGGER.info("Created session orchestrator")
        return self.orchestrator

    @property
    def authorized(self) -> bool:
        return self.orchestrator is not None and self.orchestrator.auth.authorized


__all__ = ["AppState", "build_registry", "build_answer_engine"]

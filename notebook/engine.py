"""Answer engine adapter: prompt construction, Gemini transport and refusal detection."""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from google.genai import types

from .constants import (
    DEFAULT_TEMPERATURE,
    HISTORY_WINDOW,
    REFUSAL_SENTENCE_AR,
    REFUSAL_SENTENCE_EN,
    REFUSAL_SENTENCES,
)
from .context import AssembledContext
from .documents import Document
from .logger import LOGGER
from .sessions import ASSISTANT, Message


class TransportFailure(Exception):
    """The generation engine failed or returned nothing usable."""


@dataclass(frozen=True)
class EngineMessage:
    role: str  # "user" or "assistant"
    text: str


class GenerationEngine(Protocol):
    """Black-box text generator: system instruction + turns in, text out."""

    def generate(
        self,
        system_instruction: str,
        messages: Sequence[EngineMessage],
        temperature: float,
    ) -> str:
        ...


class GeminiEngine:
    """Gemini-backed generation through ``google.genai``."""

    def __init__(self, client=None, model: Optional[str] = None) -> None:
        if model is None:
            from .config import AppConfig
            model = AppConfig.get().engine.model
        self._client = client
        self.model = model

    @property
    def client(self):
        """Resolved on first request so startup does not require an API key."""
        if self._client is None:
            from .config import AppConfig
            self._client = AppConfig.get().client
        return self._client

    def generate(
        self,
        system_instruction: str,
        messages: Sequence[EngineMessage],
        temperature: float,
    ) -> str:
        contents = [
            types.Content(
                role="model" if message.role == ASSISTANT else "user",
                parts=[types.Part(text=message.text)],
            )
            for message in messages
        ]
        try:
            # Missing API key surfaces here as a transport failure too
            response = self.client.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=temperature,
                ),
            )
        except Exception as exc:
            raise TransportFailure(f"Gemini request failed: {exc}") from exc

        return response.text or ""


# ==============================================================================
#  PROMPTS
# ==============================================================================

ROLE_INSTRUCTION = textwrap.dedent("""\
    You are an expert assistant working like a notebook over the user's own documents.
    Answer questions based ONLY on the documents in CONTEXT DOCUMENTS below.

    LANGUAGES:
    - If the user asks in English, answer in English.
    - If the user asks in Arabic, answer in Arabic.

    GUIDELINES:
    - If the answer is not in the documents, say "I couldn't find information about that in your documents."
    - Provide citations using [Document Name] when you reference specific parts.
    - Be concise but thorough, and keep a professional, helpful tone.
    - If multiple documents are provided, synthesize information across them.
    - Quote figures, names and dates exactly as written; do not guess.""")

LOCKED_PROTOCOL = textwrap.dedent(f"""\
    SECURITY PROTOCOL:
    - Documents marked "CONFIDENTIAL (LOCKED)" are withheld. You do not know their content.
    - If answering would require the content of a locked document, reply with EXACTLY this
      sentence and nothing else:
      English: {REFUSAL_SENTENCE_EN}
      Arabic: {REFUSAL_SENTENCE_AR}
    - Never guess, summarize or speculate about locked documents.
    - Questions answerable from unlocked documents are answered normally.""")

UNLOCKED_PROTOCOL = textwrap.dedent("""\
    SECURITY PROTOCOL:
    - The user is a verified administrator. All documents, including confidential ones,
      may be used to answer.""")


def build_system_instruction(context: AssembledContext, authorized: bool) -> str:
    protocol = UNLOCKED_PROTOCOL if authorized else LOCKED_PROTOCOL
    documents = context.text or "(no documents uploaded)"
    return f"{ROLE_INSTRUCTION}\n\n{protocol}\n\nCONTEXT DOCUMENTS:\n{documents}\n"


def _normalize_reply(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().strip('"').strip()


_NORMALIZED_REFUSALS = frozenset(_normalize_reply(sentence) for sentence in REFUSAL_SENTENCES)


def is_locked_refusal(text: str) -> bool:
    """Verbatim (whitespace-normalised) comparison with the refusal sentences."""
    return _normalize_reply(text) in _NORMALIZED_REFUSALS


# ==============================================================================
#  ADAPTER
# ==============================================================================

@dataclass(frozen=True)
class EngineReply:
    text: str
    locked_refusal: bool = False


class AnswerEngine:
    """Sends context, a bounded history window and the query to the engine."""

    def __init__(
        self,
        engine: GenerationEngine,
        temperature: float = DEFAULT_TEMPERATURE,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self.engine = engine
        self.temperature = temperature
        self.history_window = history_window

    def recent_history(self, history: Sequence[Message]) -> List[EngineMessage]:
        window = list(history)[-self.history_window:] if self.history_window > 0 else []
        return [EngineMessage(role=message.role, text=message.text) for message in window]

    def answer(
        self,
        query: str,
        context: AssembledContext,
        history: Sequence[Message],
        authorized: bool,
    ) -> EngineReply:
        """
        Ask the engine.

        Raises:
            TransportFailure: Engine error or empty reply.
        """
        system_instruction = build_system_instruction(context, authorized)
        messages = self.recent_history(history) + [EngineMessage(role="user", text=query)]

        LOGGER.info(
            "Engine request: query='%s' history=%d visible=%d locked=%d authorized=%s",
            query[:80],
            len(messages) - 1,
            len(context.visible_ids),
            len(context.locked_ids),
            authorized,
        )
        text = self._generate(system_instruction, messages)

        # Refusals only mean something while locked documents exist
        refusal = not authorized and context.has_locked and is_locked_refusal(text)
        if refusal:
            LOGGER.info("Engine signalled locked-content refusal")
        return EngineReply(text=text.strip(), locked_refusal=refusal)

    def summarize(self, document: Document) -> str:
        """Bullet-point summary of a single document the caller has cleared as visible."""
        system_instruction = "You are a helpful assistant that summarizes documents clearly. Use bullet points."
        prompt = f"Please provide a concise summary of this document:\n\n{document.content}"
        LOGGER.info("Engine summary request: document=%s", document.id)
        return self._generate(system_instruction, [EngineMessage(role="user", text=prompt)]).strip()

    def _generate(self, system_instruction: str, messages: Sequence[EngineMessage]) -> str:
        try:
            text = self.engine.generate(system_instruction, messages, self.temperature)
        except TransportFailure:
            raise
        except Exception as exc:
            raise TransportFailure(str(exc)) from exc

        if not text or not text.strip():
            raise TransportFailure("Engine returned an empty response")
        return text


__all__ = [
    "AnswerEngine",
    "EngineMessage",
    "EngineReply",
    "GeminiEngine",
    "GenerationEngine",
    "TransportFailure",
    "build_system_instruction",
    "is_locked_refusal",
]

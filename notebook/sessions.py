"""Conversation transcript: messages, JSONL storage and markdown export."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .constants import WELCOME_MESSAGE
from .logger import LOGGER

USER = "user"
ASSISTANT = "assistant"

# Message metadata flags that keep a message out of the engine's history window
HISTORY_EXCLUDED_FLAGS = ("control", "deferred", "refusal", "error")


@dataclass
class Message:
    """Represents a single message in the transcript."""
    role: str  # "user" or "assistant"
    text: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)
    sources: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)  # control / deferred / refusal / error / replay

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "sources": self.sources,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create Message from dictionary."""
        role = data["role"]
        if role not in (USER, ASSISTANT):
            raise ValueError(f"unknown role {role!r}")
        return cls(
            id=data["id"],
            role=role,
            text=data["text"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            sources=list(data.get("sources") or []),
            metadata=dict(data.get("metadata") or {}),
        )

    @property
    def in_history(self) -> bool:
        """Whether this message may be replayed to the engine as conversation history."""
        return not any(self.metadata.get(flag) for flag in HISTORY_EXCLUDED_FLAGS)


def welcome_transcript(text: str = WELCOME_MESSAGE) -> List[Message]:
    return [Message(role=ASSISTANT, text=text, metadata={"control": True})]


class TranscriptStore:
    """Persists one transcript in a fixed JSONL slot."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        LOGGER.debug("TranscriptStore initialized: %s", self.path)

    def load(self) -> List[Message]:
        """
        Load the transcript.

        Absent, empty or malformed data yields the welcome transcript.
        """
        if not self.path.exists():
            return welcome_transcript()

        messages: List[Message] = []
        try:
            for line in self.path.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    messages.append(Message.from_dict(json.loads(line)))
        except (json.JSONDecodeError, KeyError, ValueError, TypeError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to load transcript, starting fresh: %s", exc)
            return welcome_transcript()

        return messages or welcome_transcript()

    def append(self, message: Message) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(message.to_dict(), ensure_ascii=False) + "\n")

    def rewrite(self, messages: Sequence[Message]) -> None:
        with self.path.open("w", encoding="utf-8") as f:
            for message in messages:
                f.write(json.dumps(message.to_dict(), ensure_ascii=False) + "\n")


class Transcript:
    """Ordered message list with optional write-through storage; only flags change after append."""

    def __init__(self, store: Optional[TranscriptStore] = None) -> None:
        self.store = store
        self.messages: List[Message] = store.load() if store is not None else welcome_transcript()
        if store is not None and not store.path.exists():
            store.rewrite(self.messages)

    def add(
        self,
        role: str,
        text: str,
        sources: Optional[Sequence[str]] = None,
        **flags: Any,
    ) -> Message:
        message = Message(role=role, text=text, sources=sorted(sources or []), metadata=dict(flags))
        self.messages.append(message)
        if self.store is not None:
            self.store.append(message)
        LOGGER.debug("Added %s message (%s)", role, ",".join(flags) or "plain")
        return message

    def find(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def update_flags(self, message: Message, **flags: Any) -> None:
        """Set flags on a stored message; a value of None removes the flag."""
        for flag, value in flags.items():
            if value is None:
                message.metadata.pop(flag, None)
            else:
                message.metadata[flag] = value
        if self.store is not None:
            self.store.rewrite(self.messages)

    def reset(self, text: str = WELCOME_MESSAGE) -> None:
        self.messages = welcome_transcript(text)
        if self.store is not None:
            self.store.rewrite(self.messages)

    def history(self, since: int = 0) -> List[Message]:
        """Messages eligible for the engine, starting at transcript index ``since``."""
        return [message for message in self.messages[since:] if message.in_history]

    def __len__(self) -> int:
        return len(self.messages)


def export_markdown(messages: Sequence[Message]) -> str:
    """Render the conversation as a downloadable markdown document."""
    blocks = []
    for message in messages:
        lines = [f"{message.role.upper()} ({message.timestamp.strftime('%Y-%m-%d %H:%M:%S')}):", message.text]
        if message.sources:
            lines.append(f"Sources: {', '.join(message.sources)}")
        lines.append("-" * 20)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


__all__ = [
    "Message",
    "Transcript",
    "TranscriptStore",
    "export_markdown",
    "welcome_transcript",
    "USER",
    "ASSISTANT",
]

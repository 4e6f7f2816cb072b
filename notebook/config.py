"""Environment configuration and directory management."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from google import genai
from google.genai import types

from .constants import (
    DEFAULT_ENGINE_TIMEOUT_MS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_MODEL,
    DEFAULT_SESSION_IDLE_SECONDS,
    DEFAULT_TEMPERATURE,
)
from .logger import LOGGER


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not already exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def resolve_path(env_key: str, default: Path) -> Path:
    """Resolve a path from environment variables or revert to a default."""
    value = os.getenv(env_key)
    return ensure_directory(Path(value).expanduser().resolve()) if value else ensure_directory(default.resolve())


def load_api_key() -> str:
    """Retrieve the Gemini API key or raise a helpful error."""
    key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if not key:
        raise RuntimeError("GOOGLE_API_KEY environment variable is required.")
    return key


@dataclass(frozen=True)
class PathConfig:
    base_dir: Path
    data_dir: Path
    documents_store: Path
    folders_store: Path
    transcript_store: Path
    users_file: Path


def build_paths(base_dir: Optional[Path] = None) -> PathConfig:
    """Produce all filesystem paths used by the application."""
    base = base_dir or Path(__file__).resolve().parent.parent
    data_dir = resolve_path("NOTEBOOK_DATA_DIR", base / "data")
    return PathConfig(
        base_dir=base,
        data_dir=data_dir,
        documents_store=data_dir / "documents.jsonl",
        folders_store=data_dir / "folders.json",
        transcript_store=data_dir / "transcript.jsonl",
        users_file=base / "config" / "users.yaml",
    )


@dataclass(frozen=True)
class EngineSettings:
    model: str
    temperature: float
    timeout_ms: int


def load_engine_settings() -> EngineSettings:
    """Read generation settings, falling back to deterministic defaults."""
    return EngineSettings(
        model=os.getenv("NOTEBOOK_MODEL", DEFAULT_MODEL),
        temperature=float(os.getenv("NOTEBOOK_TEMPERATURE", DEFAULT_TEMPERATURE)),
        timeout_ms=int(os.getenv("NOTEBOOK_ENGINE_TIMEOUT_MS", DEFAULT_ENGINE_TIMEOUT_MS)),
    )


@dataclass(frozen=True)
class SessionLimits:
    max_sessions: int
    idle_seconds: float


def load_session_limits() -> SessionLimits:
    """Bounds for the API's in-memory session pool."""
    return SessionLimits(
        max_sessions=int(os.getenv("NOTEBOOK_MAX_SESSIONS", DEFAULT_MAX_SESSIONS)),
        idle_seconds=float(os.getenv("NOTEBOOK_SESSION_IDLE_SECONDS", DEFAULT_SESSION_IDLE_SECONDS)),
    )


@dataclass(frozen=True)
class AdminCredentials:
    username: str
    password: str


def load_admin_credentials() -> AdminCredentials:
    """Fixed administrator pair used when no users file is configured."""
    return AdminCredentials(
        username=os.getenv("NOTEBOOK_ADMIN_USERNAME", "admin"),
        password=os.getenv("NOTEBOOK_ADMIN_PASSWORD", "admin"),
    )


class AppConfig:
    """Singleton-like accessor around shared configuration."""

    _instance: Optional["AppConfig"] = None

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.paths = build_paths(base_dir)
        self.engine = load_engine_settings()
        self.admin = load_admin_credentials()
        self.sessions = load_session_limits()
        self._client: Optional[genai.Client] = None
        LOGGER.debug("Configuration initialised with data directory %s", self.paths.data_dir)
        LOGGER.info(
            "Engine model=%s temperature=%.2f timeout=%dms",
            self.engine.model,
            self.engine.temperature,
            self.engine.timeout_ms,
        )

    @property
    def client(self) -> genai.Client:
        """Gemini client, created on first use so the key is only needed for answering."""
        if self._client is None:
            self._client = genai.Client(
                api_key=load_api_key(),
                http_options=types.HttpOptions(timeout=self.engine.timeout_ms),
            )
        return self._client

    @classmethod
    def get(cls) -> "AppConfig":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next get() re-reads the environment."""
        cls._instance = None


__all__ = [
    "AppConfig",
    "PathConfig",
    "EngineSettings",
    "AdminCredentials",
    "SessionLimits",
    "build_paths",
    "load_api_key",
    "load_engine_settings",
    "load_admin_credentials",
    "load_session_limits",
]

"""Administrator verification and the per-session authorization state machine.

Credentials are checked through a pluggable verifier. The default verifier
compares against a fixed username/password pair; deployments should point
``config/users.yaml`` at bcrypt hashes instead.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import bcrypt
import yaml

from .constants import INVALID_CREDENTIALS_MESSAGE, NO_PROMPT_OPEN_MESSAGE
from .logger import LOGGER
from .router import is_trigger_phrase


# ==============================================================================
#  CREDENTIAL VERIFIERS
# ==============================================================================

class CredentialVerifier(Protocol):
    def verify(self, username: str, password: str) -> bool:
        ...


class StaticCredentialVerifier:
    """Accepts exactly one fixed username/password pair."""

    def __init__(self, username: str, password: str) -> None:
        self._username = username
        self._password = password

    def verify(self, username: str, password: str) -> bool:
        user_ok = hmac.compare_digest(username.strip().encode(), self._username.encode())
        password_ok = hmac.compare_digest(password.encode(), self._password.encode())
        return user_ok and password_ok


class YamlCredentialVerifier:
    """Checks bcrypt hashes stored under ``credentials.usernames`` in a YAML file."""

    def __init__(self, users: Dict[str, Dict[str, Any]]) -> None:
        self._users = users

    @classmethod
    def from_file(cls, path: Path) -> "YamlCredentialVerifier":
        """
        Load users from YAML.

        Raises:
            ValueError: If the file is not valid YAML or has no users.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in users file: {e}")

        users = config.get("credentials", {}).get("usernames")
        if not users:
            raise ValueError("Users file missing credentials.usernames section")

        LOGGER.debug("Loaded users file: %d users", len(users))
        return cls(users)

    def verify(self, username: str, password: str) -> bool:
        user = self._users.get(username.strip())
        if not user or not user.get("password"):
            return False
        try:
            return bcrypt.checkpw(password.encode(), str(user["password"]).encode())
        except ValueError:
            LOGGER.warning("Stored hash for '%s' is not a valid bcrypt hash", username)
            return False


def hash_password(password: str) -> str:
    """Generate a bcrypt hash suitable for users.yaml."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def load_verifier(users_file: Optional[Path] = None) -> CredentialVerifier:
    """Users file when present and valid, otherwise the configured fixed pair."""
    from .config import AppConfig

    config = AppConfig.get()
    users_file = users_file or config.paths.users_file
    if users_file.exists():
        try:
            verifier = YamlCredentialVerifier.from_file(users_file)
            LOGGER.info("Using users file for administrator verification: %s", users_file)
            return verifier
        except ValueError as exc:
            LOGGER.error("Ignoring users file %s: %s", users_file, exc)

    LOGGER.warning("Using the fixed administrator credential pair")
    return StaticCredentialVerifier(config.admin.username, config.admin.password)


# ==============================================================================
#  STATE MACHINE
# ==============================================================================

class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PROMPTING = "prompting"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class LoginOutcome:
    """Result of a credential submission.

    ``replay_query`` is set when a deferred query must be re-submitted once.
    """
    ok: bool
    error: Optional[str] = None
    replay_query: Optional[str] = None


class AuthorizationStateMachine:
    """Privilege level and pending query for one session. Never persisted."""

    def __init__(self, verifier: CredentialVerifier) -> None:
        self.verifier = verifier
        self.state = AuthState.UNAUTHENTICATED
        self.pending_query = ""

    @property
    def authorized(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def prompt_open(self) -> bool:
        return self.state is AuthState.PROMPTING

    def login_trigger(self, query: str) -> None:
        """Open the prompt; a bare trigger phrase leaves nothing to replay."""
        self._open_prompt("" if is_trigger_phrase(query) else query.strip())

    def engine_requires_admin(self, query: str) -> None:
        """The engine refused for lack of privilege; park the query for replay."""
        self._open_prompt(query.strip())

    def open_login(self) -> None:
        """Explicit login request with nothing to replay."""
        if self.state is AuthState.UNAUTHENTICATED:
            self._open_prompt("")

    def submit_credentials(self, username: str, password: str) -> LoginOutcome:
        if self.state is not AuthState.PROMPTING:
            return LoginOutcome(ok=False, error=NO_PROMPT_OPEN_MESSAGE)

        if not self.verifier.verify(username, password):
            LOGGER.warning("Administrator login failed for '%s'", username)
            return LoginOutcome(ok=False, error=INVALID_CREDENTIALS_MESSAGE)

        pending = self.pending_query
        self.pending_query = ""
        self.state = AuthState.AUTHENTICATED
        LOGGER.info("Administrator login succeeded for '%s'", username)

        replay = pending if pending and not is_trigger_phrase(pending) else None
        return LoginOutcome(ok=True, replay_query=replay)

    def cancel(self) -> None:
        if self.state is not AuthState.PROMPTING:
            return
        self.pending_query = ""
        self.state = AuthState.UNAUTHENTICATED
        LOGGER.info("Login prompt cancelled")

    def logout(self) -> None:
        self.state = AuthState.UNAUTHENTICATED
        self.pending_query = ""
        LOGGER.info("Administrator logged out")

    def _open_prompt(self, pending: str) -> None:
        self.state = AuthState.PROMPTING
        self.pending_query = pending
        LOGGER.info("Login prompt opened (pending query: %s)", "yes" if pending else "no")


__all__ = [
    "AuthState",
    "AuthorizationStateMachine",
    "CredentialVerifier",
    "LoginOutcome",
    "StaticCredentialVerifier",
    "YamlCredentialVerifier",
    "hash_password",
    "load_verifier",
]

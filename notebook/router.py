"""Intercept login control utterances before they reach the answer engine."""

from __future__ import annotations

import re
from enum import Enum

from .constants import LOGIN_TRIGGER_PHRASES

_ARABIC_PATTERN = re.compile(r"[\u0600-\u06FF]")


class Route(str, Enum):
    LOGIN_TRIGGER = "login_trigger"
    ALREADY_AUTHORIZED_NOTICE = "already_authorized_notice"
    NORMAL = "normal"


def normalize(text: str) -> str:
    return text.strip().lower()


def is_trigger_phrase(text: str) -> bool:
    """Exact (trimmed, case-insensitive) match against the reserved phrases."""
    return normalize(text) in LOGIN_TRIGGER_PHRASES


def route(text: str, authorized: bool) -> Route:
    if not is_trigger_phrase(text):
        return Route.NORMAL
    return Route.ALREADY_AUTHORIZED_NOTICE if authorized else Route.LOGIN_TRIGGER


def is_arabic(text: str) -> bool:
    """True when the text contains Arabic script; used to localise fixed replies."""
    return bool(_ARABIC_PATTERN.search(text))


__all__ = ["Route", "route", "is_trigger_phrase", "is_arabic", "normalize"]

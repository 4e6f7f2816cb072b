"""Per-document visibility verdicts for the current session."""

from __future__ import annotations

from enum import Enum

from .constants import CONFIDENTIAL_FOLDER_ID, LOCKED_PREVIEW, PREVIEW_CHARS
from .documents import Document


class Visibility(str, Enum):
    VISIBLE = "visible"
    LOCKED = "locked"


def classify(document: Document, authorized: bool) -> Visibility:
    """Confidential documents are locked until the session is authorized."""
    if document.folder_id == CONFIDENTIAL_FOLDER_ID and not authorized:
        return Visibility.LOCKED
    return Visibility.VISIBLE


def is_confidential(document: Document) -> bool:
    return document.folder_id == CONFIDENTIAL_FOLDER_ID


def document_preview(document: Document, authorized: bool, limit: int = PREVIEW_CHARS) -> str:
    """Opening text of a document for listings; locked documents get a placeholder."""
    if classify(document, authorized) is Visibility.LOCKED:
        return LOCKED_PREVIEW
    text = " ".join(document.content.split())
    return text if len(text) <= limit else text[:limit].rstrip() + "…"


__all__ = ["Visibility", "classify", "is_confidential", "document_preview"]

"""Assemble the document context handed to the answer engine."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .access import Visibility, classify, is_confidential
from .constants import UNFILED_FOLDER_NAME
from .documents import Document
from .logger import LOGGER

FolderNameLookup = Callable[[Optional[str]], Optional[str]]

WITHHELD_REASON = (
    "This document is stored in the confidential folder and the current session "
    "has not been verified as administrator. Its content is not available."
)
ANONYMOUS_WITHHELD = "[WITHHELD]"

BLOCK_SEPARATOR = "\n\n"
NONCE_LENGTH = 16
NONCE_ALPHABET = string.ascii_letters + string.digits + string.punctuation + "§¶•◆★☐※"

# Piece kinds
FRAME = "frame"
CONTENT = "content"
MARKER = "marker"


@dataclass
class AssembledContext:
    """Context text plus the manifest of which documents went in and how."""
    text: str
    visible_ids: List[str] = field(default_factory=list)
    locked_ids: List[str] = field(default_factory=list)

    @property
    def has_locked(self) -> bool:
        return bool(self.locked_ids)


@dataclass
class _Piece:
    text: str
    kind: str = FRAME
    document_id: Optional[str] = None


def _security_label(document: Document, visibility: Visibility) -> str:
    if visibility is Visibility.LOCKED:
        return "CONFIDENTIAL (LOCKED)"
    if is_confidential(document):
        return "CONFIDENTIAL (UNLOCKED)"
    return "PUBLIC"


# ==============================================================================
# FRAMINGS
# ==============================================================================

class _LabeledFraming:
    """Readable `=== DOCUMENT ===` blocks with location and security labels."""

    name = "labeled"
    separator = BLOCK_SEPARATOR

    def visible(self, document: Document, location: str, visibility: Visibility) -> List[_Piece]:
        header = (
            f"=== DOCUMENT: {document.name} ===\n"
            f"LOCATION: {location}\n"
            f"SECURITY: {_security_label(document, visibility)}\n"
        )
        return [
            _Piece(header),
            _Piece(document.content, CONTENT, document.id),
            _Piece("\n=== END OF DOCUMENT ==="),
        ]

    def locked(self, document: Document, location: str, position: int, level: int) -> Optional[str]:
        """Withheld markers from most to least descriptive; None once exhausted."""
        if level == 0:
            return (
                f"=== DOCUMENT: {document.name} ===\n"
                f"LOCATION: {location}\n"
                f"SECURITY: CONFIDENTIAL (LOCKED)\n"
                f"CONTENT WITHHELD: {WITHHELD_REASON}\n"
                f"=== END OF DOCUMENT ==="
            )
        if level == 1:
            return (
                f"=== DOCUMENT #{position} ===\n"
                f"SECURITY: CONFIDENTIAL (LOCKED)\n"
                f"{ANONYMOUS_WITHHELD}\n"
                f"=== END OF DOCUMENT ==="
            )
        return None


class _NonceFraming:
    """
    Blocks opened by a random boundary line drawn from characters that no
    locked content uses, so no locked text can straddle a block boundary.
    """

    separator = "\n"

    def __init__(self, nonce: str, named: bool):
        self.nonce = nonce
        self.named = named
        self.name = "nonce-named" if named else "nonce-bare"

    def visible(self, document: Document, location: str, visibility: Visibility) -> List[_Piece]:
        header = f"{self.nonce}\n"
        if self.named:
            header += f"{document.name}\n"
        return [_Piece(header), _Piece(document.content, CONTENT, document.id)]

    def locked(self, document: Document, location: str, position: int, level: int) -> Optional[str]:
        if self.named and level == 0:
            return f"{self.nonce}\n{document.name}\n{ANONYMOUS_WITHHELD}"
        if level <= (1 if self.named else 0):
            return f"{self.nonce}\n{ANONYMOUS_WITHHELD}"
        return None


def _make_nonce(needles: Sequence[str]) -> Optional[str]:
    used = set("".join(needles))
    alphabet = [char for char in NONCE_ALPHABET if char not in used]
    if not alphabet:
        return None
    return "".join(secrets.choice(alphabet) for _ in range(NONCE_LENGTH))


# ==============================================================================
# ASSEMBLY
# ==============================================================================

def _leaks(
    text: str,
    needles: Sequence[str],
    content_spans: Sequence[Tuple[int, int]],
) -> Iterator[Tuple[int, int]]:
    """Occurrences of locked text not wholly inside some visible document's content."""
    for needle in needles:
        start = text.find(needle)
        while start != -1:
            end = start + len(needle)
            if not any(low <= start and end <= high for low, high in content_spans):
                yield start, end
            start = text.find(needle, start + 1)


def _render(
    framing,
    documents: Sequence[Document],
    visibilities: Sequence[Visibility],
    locations: Sequence[str],
    levels: Dict[str, int],
) -> Tuple[str, List[Tuple[int, int]], List[Tuple[int, int, str]]]:
    """Join the blocks and record visible content spans and marker spans."""
    blocks: List[List[_Piece]] = []
    for position, (document, visibility, location) in enumerate(zip(documents, visibilities, locations), 1):
        if visibility is Visibility.VISIBLE:
            blocks.append(framing.visible(document, location, visibility))
            continue
        marker = framing.locked(document, location, position, levels[document.id])
        if marker is not None:
            blocks.append([_Piece(marker, MARKER, document.id)])

    parts: List[str] = []
    content_spans: List[Tuple[int, int]] = []
    marker_spans: List[Tuple[int, int, str]] = []
    offset = 0
    for index, pieces in enumerate(blocks):
        if index:
            parts.append(framing.separator)
            offset += len(framing.separator)
        for piece in pieces:
            end = offset + len(piece.text)
            if piece.kind == CONTENT:
                content_spans.append((offset, end))
            elif piece.kind == MARKER:
                marker_spans.append((offset, end, piece.document_id))
            parts.append(piece.text)
            offset = end
    return "".join(parts), content_spans, marker_spans


def assemble_context(
    documents: Sequence[Document],
    authorized: bool,
    folder_name: Optional[FolderNameLookup] = None,
) -> AssembledContext:
    """
    Build the labeled context for all documents, in registry order.

    Locked documents are named but their content is replaced by a withheld
    marker. The finished text is checked against every locked document: any
    occurrence of locked text outside a visible document's own content first
    downgrades the markers it touches (descriptive, anonymous, omitted) and
    then switches to a sparser framing until none is left.
    """
    visibilities = [classify(document, authorized) for document in documents]
    locations = [
        (folder_name(document.folder_id) if folder_name else None) or UNFILED_FOLDER_NAME
        for document in documents
    ]
    assembled = AssembledContext(
        text="",
        visible_ids=[d.id for d, v in zip(documents, visibilities) if v is Visibility.VISIBLE],
        locked_ids=[d.id for d, v in zip(documents, visibilities) if v is Visibility.LOCKED],
    )
    needles = [
        document.content.strip()
        for document, visibility in zip(documents, visibilities)
        if visibility is Visibility.LOCKED and document.content.strip()
    ]

    framings = [_LabeledFraming()]
    nonce = _make_nonce(needles) if needles else None
    if nonce is not None:
        framings += [_NonceFraming(nonce, named=True), _NonceFraming(nonce, named=False)]

    for framing in framings:
        levels = {document_id: 0 for document_id in assembled.locked_ids}
        while True:
            text, content_spans, marker_spans = _render(framing, documents, visibilities, locations, levels)
            leaks = list(_leaks(text, needles, content_spans))
            if not leaks:
                if framing.name != "labeled" or any(levels.values()):
                    LOGGER.warning(
                        "Locked content collided with context framing; using %s framing, %d marker(s) downgraded",
                        framing.name,
                        sum(1 for level in levels.values() if level),
                    )
                assembled.text = text
                LOGGER.debug(
                    "Assembled context: %d visible, %d locked, %d chars",
                    len(assembled.visible_ids),
                    len(assembled.locked_ids),
                    len(assembled.text),
                )
                return assembled

            touched = {
                document_id
                for low, high, document_id in marker_spans
                for start, end in leaks
                if start < high and low < end
            }
            if not touched:
                break
            for document_id in touched:
                levels[document_id] += 1

    LOGGER.error("Locked content could not be kept out of any context framing; sending an empty context")
    assembled.text = ""
    return assembled


__all__ = ["AssembledContext", "assemble_context", "WITHHELD_REASON", "ANONYMOUS_WITHHELD"]

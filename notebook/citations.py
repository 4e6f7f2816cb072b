"""Best-effort detection of which documents an answer refers to."""

from __future__ import annotations

from typing import Iterable, Set

from .documents import Document


def extract_sources(answer_text: str, documents: Iterable[Document]) -> Set[str]:
    """
    Names of documents mentioned in the answer.

    A document counts as cited when ``[name]`` appears literally or the name
    appears anywhere, case-insensitively. Substring collisions between
    similar names can over-match; this is not a verified citation.
    """
    lowered = answer_text.lower()
    cited: Set[str] = set()
    for document in documents:
        name = document.name.strip()
        if not name:
            continue
        if f"[{name}]" in answer_text or name.lower() in lowered:
            cited.add(document.name)
    return cited


__all__ = ["extract_sources"]

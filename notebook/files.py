"""File helpers: text extraction for uploads and batch ingestion."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import fitz  # PyMuPDF
import mammoth
import pandas as pd

from .documents import Document, DocumentRegistry, new_id
from .logger import LOGGER


class ExtractionFailure(Exception):
    """Raised when a single file cannot be turned into text."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


MEDIA_TYPES_BY_EXTENSION = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".pdf": "application/pdf",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def guess_media_type(filename: str, hint: Optional[str] = None) -> str:
    """Prefer the caller's hint, fall back to the file extension."""
    if hint and hint != "application/octet-stream":
        return hint
    return MEDIA_TYPES_BY_EXTENSION.get(PurePath(filename).suffix.lower(), "application/octet-stream")


def clean_text(text: str) -> str:
    """Normalise line endings and collapse runs of blank lines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n\s*\n\s*\n+", "\n\n", text)
    return text.strip()


# ==============================================================================
#  FORMAT HANDLERS
# ==============================================================================

def _extract_txt(data: bytes) -> str:
    """Plain text / markdown extraction."""
    return data.decode("utf-8", errors="ignore")


def _extract_pdf(data: bytes) -> str:
    """Concatenate page text, one blank line between pages."""
    pages: List[str] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for page in doc:
            pages.append((page.get_text("text") or "").strip())
    return "\n\n".join(pages)


def _extract_excel(data: bytes) -> str:
    """One section per sheet, tab-separated rows."""
    sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None)
    chunks: List[str] = []
    for sheet_name, df in sheets.items():
        df = df.dropna(axis=0, how="all").dropna(axis=1, how="all")
        rows = [
            "\t".join("" if pd.isna(value) else str(value) for value in row)
            for row in df.itertuples(index=False)
        ]
        chunks.append(f"--- SHEET: {sheet_name} ---\n" + "\n".join(rows))
        LOGGER.debug("Sheet '%s': %d rows", sheet_name, len(rows))
    return "\n\n".join(chunks)


def _extract_docx(data: bytes) -> str:
    """Raw text through Mammoth."""
    result = mammoth.extract_raw_text(io.BytesIO(data))
    return result.value


HANDLERS: Dict[str, Callable[[bytes], str]] = {
    "text/plain": _extract_txt,
    "text/markdown": _extract_txt,
    "text/csv": _extract_txt,
    "application/pdf": _extract_pdf,
    MEDIA_TYPES_BY_EXTENSION[".xlsx"]: _extract_excel,
    MEDIA_TYPES_BY_EXTENSION[".xls"]: _extract_excel,
    MEDIA_TYPES_BY_EXTENSION[".docx"]: _extract_docx,
}


# ==============================================================================
#  MAIN EXTRACTION LOGIC
# ==============================================================================

def extract_text(data: bytes, filename: str, media_type_hint: Optional[str] = None) -> str:
    """
    Extract text from an uploaded file.

    Raises:
        ExtractionFailure: Unsupported type, unreadable file, or no text at all.
    """
    media_type = guess_media_type(filename, media_type_hint)
    handler = HANDLERS.get(media_type)
    if handler is None and media_type.startswith("text/"):
        handler = _extract_txt
    if handler is None:
        raise ExtractionFailure(filename, f"unsupported file type {media_type}")

    try:
        text = handler(data)
    except Exception as exc:
        raise ExtractionFailure(filename, str(exc)) from exc

    text = clean_text(text)
    if not text:
        raise ExtractionFailure(filename, "no extractable text")
    return text


@dataclass
class IngestReport:
    """Outcome of a multi-file upload."""
    added: List[Document] = field(default_factory=list)
    failures: List[ExtractionFailure] = field(default_factory=list)


def ingest_files(
    registry: DocumentRegistry,
    files: Iterable[Tuple[str, bytes, Optional[str]]],
    folder_id: Optional[str] = None,
) -> IngestReport:
    """
    Extract and register a batch of ``(filename, bytes, media_type_hint)`` files.

    A failing file is logged and skipped; it never aborts the batch.
    """
    report = IngestReport()
    for filename, data, hint in files:
        try:
            content = extract_text(data, filename, hint)
        except ExtractionFailure as failure:
            LOGGER.error("Failed to process %s: %s", filename, failure.reason)
            report.failures.append(failure)
            continue

        document = Document(
            id=new_id(),
            name=filename,
            content=content,
            media_type=guess_media_type(filename, hint),
            size_bytes=len(data),
            uploaded_at=datetime.now(),
            folder_id=folder_id,
        )
        registry.save(document)
        report.added.append(document)

    LOGGER.info(
        "Ingested %d files into %s (%d failed)",
        len(report.added),
        folder_id or "unfiled",
        len(report.failures),
    )
    return report


__all__ = [
    "ExtractionFailure",
    "IngestReport",
    "extract_text",
    "guess_media_type",
    "ingest_files",
    "clean_text",
]

"""Document registry: ordered documents, folders, JSONL persistence and workspace backups."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .constants import DEFAULT_FOLDERS, PROTECTED_FOLDER_IDS
from .logger import LOGGER


class DocumentNotFoundError(KeyError):
    """Raised when a document id is not present in the registry."""


class FolderError(ValueError):
    """Raised for invalid folder operations (unknown or protected folders)."""


class WorkspaceImportError(ValueError):
    """Raised when a workspace backup cannot be imported."""


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        # JavaScript backups end in "Z"
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return datetime.now()


@dataclass
class Document:
    """A text-bearing file after extraction."""
    id: str
    name: str
    content: str
    media_type: str = "text/plain"
    size_bytes: int = 0
    uploaded_at: datetime = field(default_factory=datetime.now)
    folder_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "media_type": self.media_type,
            "size_bytes": self.size_bytes,
            "uploaded_at": self.uploaded_at.isoformat(),
            "folder_id": self.folder_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        """Create Document from dictionary.

        Also accepts the camelCase keys written by older browser backups
        (``type``, ``size``, ``uploadedAt``, ``folderId``).
        """
        if not isinstance(data.get("id"), str) or not isinstance(data.get("name"), str):
            raise ValueError("document requires string 'id' and 'name'")
        content = data.get("content", "")
        if not isinstance(content, str):
            raise ValueError(f"document {data['id']} has non-text content")
        return cls(
            id=data["id"],
            name=data["name"],
            content=content,
            media_type=data.get("media_type") or data.get("type") or "text/plain",
            size_bytes=int(data.get("size_bytes", data.get("size", 0)) or 0),
            uploaded_at=_parse_datetime(data.get("uploaded_at", data.get("uploadedAt"))),
            folder_id=data.get("folder_id", data.get("folderId")) or None,
        )


@dataclass
class Folder:
    """An inert container; documents reference it by id."""
    id: str
    name: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        if not isinstance(data.get("id"), str) or not isinstance(data.get("name"), str):
            raise ValueError("folder requires string 'id' and 'name'")
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=_parse_datetime(data.get("created_at", data.get("createdAt"))),
        )


def default_folders() -> List[Folder]:
    return [Folder(id=folder_id, name=name) for folder_id, name in DEFAULT_FOLDERS.items()]


class DocumentStore:
    """Persists documents as JSONL and folders as JSON under the data directory."""

    def __init__(self, documents_path: Path, folders_path: Path) -> None:
        self.documents_path = documents_path
        self.folders_path = folders_path
        self.documents_path.parent.mkdir(parents=True, exist_ok=True)
        self.folders_path.parent.mkdir(parents=True, exist_ok=True)

    def load_documents(self) -> List[Document]:
        """Read documents in stored order; unreadable lines are skipped."""
        documents: List[Document] = []
        if not self.documents_path.exists():
            return documents
        for line in self.documents_path.read_text(encoding="utf-8", errors="ignore").splitlines():
            if not line.strip():
                continue
            try:
                documents.append(Document.from_dict(json.loads(line)))
            except (json.JSONDecodeError, ValueError, TypeError) as exc:
                LOGGER.warning("Skipping malformed document record: %s", exc)
        return documents

    def write_documents(self, documents: Iterable[Document]) -> None:
        """Overwrite the JSONL file with records."""
        with self.documents_path.open("w", encoding="utf-8") as file:
            for document in documents:
                file.write(json.dumps(document.to_dict(), ensure_ascii=False) + "\n")

    def load_folders(self) -> List[Folder]:
        if not self.folders_path.exists():
            return []
        try:
            raw = json.loads(self.folders_path.read_text(encoding="utf-8"))
            return [Folder.from_dict(item) for item in raw]
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            LOGGER.warning("Failed to load folders, using defaults: %s", exc)
            return []

    def write_folders(self, folders: Iterable[Folder]) -> None:
        self.folders_path.write_text(
            json.dumps([folder.to_dict() for folder in folders], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )


class DocumentRegistry:
    """In-memory ordered collection of documents and folders.

    List order is insertion order. When a store is attached every mutation is
    written through to disk.
    """

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        self.store = store
        self._documents: List[Document] = []
        self._folders: List[Folder] = []
        if store is not None:
            self._documents = store.load_documents()
            self._folders = store.load_folders()
        self._ensure_default_folders()
        LOGGER.debug(
            "DocumentRegistry initialized: %d documents, %d folders",
            len(self._documents),
            len(self._folders),
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def list(self) -> List[Document]:
        return list(self._documents)

    def get(self, document_id: str) -> Document:
        for document in self._documents:
            if document.id == document_id:
                return document
        raise DocumentNotFoundError(document_id)

    def save(self, document: Document) -> None:
        """Insert a new document or replace the one with the same id in place."""
        for index, existing in enumerate(self._documents):
            if existing.id == document.id:
                self._documents[index] = document
                break
        else:
            self._documents.append(document)
        self._persist_documents()
        LOGGER.info("Saved document %s (%s)", document.id, document.name)

    def delete(self, document_id: str) -> None:
        document = self.get(document_id)
        self._documents.remove(document)
        self._persist_documents()
        LOGGER.info("Deleted document %s (%s)", document.id, document.name)

    def move(self, document_id: str, folder_id: Optional[str]) -> Document:
        """Reassign a document's folder; ``None`` leaves it unfiled."""
        if folder_id is not None and self.find_folder(folder_id) is None:
            raise FolderError(f"Unknown folder: {folder_id}")
        moved = replace(self.get(document_id), folder_id=folder_id)
        self.save(moved)
        return moved

    def clear(self) -> None:
        self._documents = []
        self._persist_documents()

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def folders(self) -> List[Folder]:
        return list(self._folders)

    def find_folder(self, folder_id: Optional[str]) -> Optional[Folder]:
        for folder in self._folders:
            if folder.id == folder_id:
                return folder
        return None

    def folder_name(self, folder_id: Optional[str]) -> Optional[str]:
        folder = self.find_folder(folder_id)
        return folder.name if folder else None

    def create_folder(self, name: str) -> Folder:
        name = name.strip()
        if not name:
            raise FolderError("Folder name must not be empty")
        folder = Folder(id=new_id(), name=name)
        self._folders.append(folder)
        self._persist_folders()
        LOGGER.info("Created folder %s (%s)", folder.id, folder.name)
        return folder

    def delete_folder(self, folder_id: str) -> int:
        """Remove a folder and unfile its documents. Returns the number unfiled."""
        if folder_id in PROTECTED_FOLDER_IDS:
            raise FolderError(f"Folder cannot be deleted: {folder_id}")
        folder = self.find_folder(folder_id)
        if folder is None:
            raise FolderError(f"Unknown folder: {folder_id}")

        self._folders.remove(folder)
        unfiled = 0
        for index, document in enumerate(self._documents):
            if document.folder_id == folder_id:
                self._documents[index] = replace(document, folder_id=None)
                unfiled += 1

        self._persist_folders()
        self._persist_documents()
        LOGGER.info("Deleted folder %s, %d documents unfiled", folder_id, unfiled)
        return unfiled

    # ------------------------------------------------------------------
    # Workspace backup
    # ------------------------------------------------------------------

    def export_workspace(self) -> Dict[str, Any]:
        return {
            "documents": [document.to_dict() for document in self._documents],
            "folders": [folder.to_dict() for folder in self._folders],
            "exported_at": datetime.now().isoformat(),
        }

    def import_workspace(self, data: Any) -> int:
        """Replace all documents (and folders when present) from a backup.

        The backup is fully validated before anything is replaced.

        Returns:
            Number of documents imported.

        Raises:
            WorkspaceImportError: If the backup is not a valid workspace.
        """
        if not isinstance(data, dict) or not isinstance(data.get("documents"), list):
            raise WorkspaceImportError("Invalid backup file format.")

        try:
            documents = [Document.from_dict(item) for item in data["documents"]]
            raw_folders = data.get("folders")
            folders = (
                [Folder.from_dict(item) for item in raw_folders]
                if isinstance(raw_folders, list)
                else None
            )
        except (ValueError, TypeError, AttributeError) as exc:
            raise WorkspaceImportError(f"Invalid backup file format: {exc}") from exc

        self._documents = documents
        if folders is not None:
            self._folders = folders
        self._ensure_default_folders()
        self._persist_documents()
        self._persist_folders()
        LOGGER.info("Imported workspace: %d documents, %d folders", len(documents), len(self._folders))
        return len(documents)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_default_folders(self) -> None:
        known = {folder.id for folder in self._folders}
        missing = [folder for folder in default_folders() if folder.id not in known]
        if missing:
            self._folders = missing + self._folders
            self._persist_folders()

    def _persist_documents(self) -> None:
        if self.store is not None:
            self.store.write_documents(self._documents)

    def _persist_folders(self) -> None:
        if self.store is not None:
            self.store.write_folders(self._folders)


__all__ = [
    "Document",
    "Folder",
    "DocumentStore",
    "DocumentRegistry",
    "DocumentNotFoundError",
    "FolderError",
    "WorkspaceImportError",
    "default_folders",
    "new_id",
]

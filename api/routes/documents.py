"""Document, folder and workspace backup endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from api.dependencies import get_orchestrator, get_registry
from api.routes.chat import TurnResponse
from notebook.access import Visibility, classify, document_preview
from notebook.constants import GENERAL_FOLDER_ID
from notebook.documents import (
    Document,
    DocumentNotFoundError,
    DocumentRegistry,
    FolderError,
    WorkspaceImportError,
)
from notebook.files import ingest_files
from notebook.orchestrator import SessionBusyError, SessionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["documents"])


# --- Request / Response Models ---

class DocumentInfo(BaseModel):
    """Listing entry. Content is never returned here."""
    id: str
    name: str
    media_type: str
    size_bytes: int
    uploaded_at: datetime
    folder_id: Optional[str] = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentInfo":
        return cls(
            id=document.id,
            name=document.name,
            media_type=document.media_type,
            size_bytes=document.size_bytes,
            uploaded_at=document.uploaded_at,
            folder_id=document.folder_id,
        )


class UploadFailure(BaseModel):
    filename: str
    reason: str


class UploadResponse(BaseModel):
    added: List[DocumentInfo] = []
    failures: List[UploadFailure] = []


class MoveRequest(BaseModel):
    folder_id: Optional[str] = Field(default=None, description="Target folder; null leaves the document unfiled.")


class FolderInfo(BaseModel):
    id: str
    name: str
    created_at: datetime


class CreateFolderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class DeleteFolderResponse(BaseModel):
    folder_id: str
    documents_unfiled: int


class ImportResponse(BaseModel):
    documents_imported: int


class ImportUrlRequest(BaseModel):
    url: str = Field(..., min_length=1, description="http(s) address of a published workspace backup.")


class DocumentPreview(BaseModel):
    id: str
    name: str
    locked: bool
    preview: str


def _sanitize_filename(raw_name: Optional[str]) -> Optional[str]:
    if not raw_name:
        return None
    name = PurePosixPath(raw_name.replace("\\", "/")).name
    if not name or name.startswith("."):
        return None
    return name


def _not_found(document_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Document not found: {document_id}")


def _require_admin(orchestrator: SessionOrchestrator) -> None:
    if not orchestrator.auth.authorized:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator login required",
        )


# --- Documents ---

@router.get("/documents", response_model=List[DocumentInfo])
def list_documents(registry: DocumentRegistry = Depends(get_registry)):
    return [DocumentInfo.from_document(document) for document in registry.list()]


@router.post("/documents", response_model=UploadResponse)
async def upload_documents(
    files: List[UploadFile] = File(..., description="Documents to upload"),
    folder_id: Optional[str] = Form(GENERAL_FOLDER_ID),
    registry: DocumentRegistry = Depends(get_registry),
):
    """Extract and register documents.

    Files that cannot be read are reported in ``failures``; the rest of the
    batch is still added.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    target = folder_id or None
    if target is not None and registry.find_folder(target) is None:
        raise HTTPException(status_code=400, detail=f"Unknown folder: {target}")

    batch = []
    failures: List[UploadFailure] = []
    for upload_file in files:
        safe = _sanitize_filename(upload_file.filename)
        if safe is None:
            failures.append(UploadFailure(filename=upload_file.filename or "<empty>", reason="Invalid filename"))
            continue
        batch.append((safe, await upload_file.read(), upload_file.content_type))

    report = ingest_files(registry, batch, folder_id=target)
    failures.extend(UploadFailure(filename=f.filename, reason=f.reason) for f in report.failures)
    return UploadResponse(
        added=[DocumentInfo.from_document(document) for document in report.added],
        failures=failures,
    )


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(document_id: str, registry: DocumentRegistry = Depends(get_registry)):
    try:
        registry.delete(document_id)
    except DocumentNotFoundError:
        raise _not_found(document_id)


@router.patch("/documents/{document_id}", response_model=DocumentInfo)
def move_document(
    document_id: str,
    request: MoveRequest,
    registry: DocumentRegistry = Depends(get_registry),
):
    try:
        document = registry.move(document_id, request.folder_id)
    except DocumentNotFoundError:
        raise _not_found(document_id)
    except FolderError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return DocumentInfo.from_document(document)


@router.get("/documents/{document_id}/preview", response_model=DocumentPreview)
def preview_document(
    document_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Opening text of a document as this session may see it."""
    try:
        document = orchestrator.registry.get(document_id)
    except DocumentNotFoundError:
        raise _not_found(document_id)
    authorized = orchestrator.auth.authorized
    return DocumentPreview(
        id=document.id,
        name=document.name,
        locked=classify(document, authorized) is Visibility.LOCKED,
        preview=document_preview(document, authorized),
    )


@router.post("/documents/{document_id}/summary", response_model=TurnResponse)
def summarize_document(
    document_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Summarize one document into the session transcript.

    A locked document opens the login prompt instead of being summarized.
    """
    try:
        turn = orchestrator.summarize_document(document_id)
    except DocumentNotFoundError:
        raise _not_found(document_id)
    except SessionBusyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A request is already in progress for this session")
    return TurnResponse.from_turn(turn)


# --- Folders ---

@router.get("/folders", response_model=List[FolderInfo])
def list_folders(registry: DocumentRegistry = Depends(get_registry)):
    return [FolderInfo(**folder.to_dict()) for folder in registry.folders()]


@router.post("/folders", response_model=FolderInfo, status_code=status.HTTP_201_CREATED)
def create_folder(request: CreateFolderRequest, registry: DocumentRegistry = Depends(get_registry)):
    try:
        folder = registry.create_folder(request.name)
    except FolderError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return FolderInfo(**folder.to_dict())


@router.delete("/folders/{folder_id}", response_model=DeleteFolderResponse)
def delete_folder(folder_id: str, registry: DocumentRegistry = Depends(get_registry)):
    """Delete a user folder; its documents become unfiled. Default folders are protected."""
    try:
        unfiled = registry.delete_folder(folder_id)
    except FolderError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return DeleteFolderResponse(folder_id=folder_id, documents_unfiled=unfiled)


# --- Workspace backup ---

@router.get("/workspace/export")
def export_workspace(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    """Full backup including confidential content, so administrators only."""
    _require_admin(orchestrator)
    return orchestrator.registry.export_workspace()


@router.post("/workspace/import", response_model=ImportResponse)
def import_workspace(
    data: Dict[str, Any],
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Replace every document (and folders when present) from a backup."""
    _require_admin(orchestrator)
    try:
        count = orchestrator.import_workspace(data)
    except WorkspaceImportError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SessionBusyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A request is already in progress for this session")
    return ImportResponse(documents_imported=count)


@router.post("/workspace/import-url", response_model=ImportResponse)
def import_shared_notebook(
    request: ImportUrlRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Replace the workspace with a backup published at a URL."""
    _require_admin(orchestrator)
    try:
        count = orchestrator.import_shared_notebook(request.url)
    except WorkspaceImportError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SessionBusyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A request is already in progress for this session")
    logger.info("Imported shared notebook: %d document(s)", count)
    return ImportResponse(documents_imported=count)

"""Folder and document API endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from models.document import (
    Document,
    DocumentCreate,
    DocumentUpdate,
    Folder,
    FolderCreate,
    FolderRename,
    WorkspaceSnapshot,
)
from services.dependencies import ServiceContainer, get_services

router = APIRouter()


@router.get("/workspace", response_model=WorkspaceSnapshot)
async def get_workspace(services: ServiceContainer = Depends(get_services)) -> WorkspaceSnapshot:
    """All folders, documents and the active selection"""
    return services.repository.snapshot()


# ========== Folders ==========


@router.get("/folders", response_model=list[Folder])
async def list_folders(services: ServiceContainer = Depends(get_services)) -> list[Folder]:
    return services.repository.list_folders()


@router.post("/folders", response_model=Folder, status_code=201)
async def create_folder(request: FolderCreate, services: ServiceContainer = Depends(get_services)) -> Folder:
    return services.repository.create_folder(request.name)


@router.patch("/folders/{folder_id}", response_model=Folder)
async def rename_folder(
    folder_id: str,
    request: FolderRename,
    services: ServiceContainer = Depends(get_services),
) -> Folder:
    return services.repository.rename_folder(folder_id, request.name)


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, services: ServiceContainer = Depends(get_services)) -> dict:
    """Delete a folder and every document in it"""
    removed = services.repository.delete_folder(folder_id)
    return {"status": "success", "deletedDocuments": removed}


# ========== Documents ==========


@router.get("/documents", response_model=list[Document])
async def list_documents(
    folder_id: str | None = None,
    services: ServiceContainer = Depends(get_services),
) -> list[Document]:
    return services.repository.list_documents(folder_id=folder_id)


@router.post("/documents", response_model=Document, status_code=201)
async def create_document(request: DocumentCreate, services: ServiceContainer = Depends(get_services)) -> Document:
    """Create a document; it becomes the active one"""
    return services.repository.create_document(request.folder_id, request.title)


@router.get("/documents/active", response_model=Document | None)
async def get_active_document(services: ServiceContainer = Depends(get_services)) -> Document | None:
    return services.repository.get_active()


@router.put("/documents/active/{document_id}", response_model=Document)
async def set_active_document(document_id: str, services: ServiceContainer = Depends(get_services)) -> Document:
    return services.repository.set_active(document_id)


@router.get("/documents/{document_id}", response_model=Document)
async def get_document(document_id: str, services: ServiceContainer = Depends(get_services)) -> Document:
    return services.repository.get_document(document_id)


@router.patch("/documents/{document_id}", response_model=Document)
async def update_document(
    document_id: str,
    request: DocumentUpdate,
    services: ServiceContainer = Depends(get_services),
) -> Document:
    """Direct user edit of title, revisions, patch text, mode or persona"""
    changes = {name: getattr(request, name) for name in request.model_fields_set}
    return services.repository.update_document(document_id, **changes)


@router.delete("/documents/{document_id}")
async def delete_document(document_id: str, services: ServiceContainer = Depends(get_services)) -> dict:
    services.repository.delete_document(document_id)
    return {"status": "success"}


@router.post("/documents/{document_id}/demo", response_model=Document)
async def load_demo(document_id: str, services: ServiceContainer = Depends(get_services)) -> Document:
    """Fill the document with sample revisions"""
    return services.repository.load_demo(document_id)


@router.post("/documents/{document_id}/restore/{record_id}", response_model=Document)
async def restore_snapshot(
    document_id: str,
    record_id: str,
    services: ServiceContainer = Depends(get_services),
) -> Document:
    """Load a history snapshot into v1 and clear v2 and the patch text"""
    record = services.history.get(record_id)
    document = services.repository.restore_from_history(document_id, record)
    services.workflow.reset(document_id)
    return document

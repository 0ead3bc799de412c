"""History snapshot API endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from models.history import HistoryEntry, HistoryRecord
from services.dependencies import ServiceContainer, get_services
from services.metadata import DocumentBody

router = APIRouter()


@router.get("", response_model=list[HistoryRecord])
async def list_history(
    document_id: str | None = None,
    q: str | None = None,
    services: ServiceContainer = Depends(get_services),
) -> list[HistoryRecord]:
    """Snapshots newest first; scoping to a document includes legacy title matches"""
    if document_id is None:
        return services.history.list(query=q)
    document = services.repository.get_document(document_id)
    return services.history.list(document_id=document.id, title=document.title, query=q)


@router.delete("")
async def clear_history(services: ServiceContainer = Depends(get_services)) -> dict:
    services.history.clear()
    return {"status": "success", "message": "History cleared"}


@router.get("/{record_id}", response_model=HistoryRecord)
async def get_history_record(record_id: str, services: ServiceContainer = Depends(get_services)) -> HistoryRecord:
    return services.history.get(record_id)


@router.get("/documents/{document_id}/entries", response_model=list[HistoryEntry])
async def list_document_entries(
    document_id: str,
    services: ServiceContainer = Depends(get_services),
) -> list[HistoryEntry]:
    """In-document history blocks of the current revision, oldest first"""
    document = services.repository.get_document(document_id)
    return DocumentBody.parse(document.v2 or document.v1).history

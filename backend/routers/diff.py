"""Diff API endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from models.diff import DiffLayout, DiffRequest, DiffResult, DiffRow, UnifiedRow
from services.dependencies import ServiceContainer, get_services
from services.diff_generator import compute_split_rows, compute_unified_rows
from services.exceptions import NotFoundError
from services.metadata import strip_metadata

router = APIRouter()


@router.post("/split", response_model=list[DiffRow])
async def split_diff(request: DiffRequest) -> list[DiffRow]:
    """Two-column rows for a raw text pair"""
    return compute_split_rows(request.old_text, request.new_text)


@router.post("/unified", response_model=list[UnifiedRow])
async def unified_diff(request: DiffRequest) -> list[UnifiedRow]:
    """Single-column rows for a raw text pair"""
    return compute_unified_rows(request.old_text, request.new_text)


@router.get("/documents/{document_id}", response_model=DiffResult)
async def document_diff(
    document_id: str,
    layout: DiffLayout = DiffLayout.SPLIT,
    change_id: str | None = None,
    services: ServiceContainer = Depends(get_services),
) -> DiffResult:
    """Diff of a stored document's v1 against its marker-free v2

    `change_id` highlights the v2 line range of a change from the current
    analysis and reports the row to scroll to.
    """
    document = services.repository.get_document(document_id)
    focus = None
    if change_id:
        result = services.workflow.current_result(document_id)
        change = result.change(change_id) if result else None
        if change is None:
            raise NotFoundError(f"Change not found: {change_id}")
        focus = change.lines

    return services.diff_generator.generate(
        strip_metadata(document.v1),
        strip_metadata(document.v2),
        layout=layout,
        focus=focus,
    )

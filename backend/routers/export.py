"""Export API endpoints"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from models.analysis import AnalysisResult
from models.document import Document
from services.dependencies import ServiceContainer, get_services
from services.exceptions import ValidationError
from services.exporter import build_commit_message, build_export, build_team_summary, sanitize_title
from services.metadata import DocumentBody, strip_metadata

router = APIRouter()


def _latest_result(services: ServiceContainer, document: Document) -> AnalysisResult:
    """Current analysis, else the newest one logged inside the document"""
    result = services.workflow.current_result(document.id)
    if result is not None:
        return result
    for entry in reversed(DocumentBody.parse(document.v2).history):
        if entry.analysis is not None:
            return entry.analysis
    raise ValidationError("Nothing to export yet; run an analysis first")


@router.get("/{document_id}/export")
async def export_document(document_id: str, services: ServiceContainer = Depends(get_services)) -> Response:
    """Markdown download with the full history region"""
    document = services.repository.get_document(document_id)
    artifact = build_export(document, _latest_result(services, document), services.language())
    return Response(
        content=artifact.content,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(artifact.filename)}"},
    )


@router.get("/{document_id}/summary")
async def team_summary(document_id: str, services: ServiceContainer = Depends(get_services)) -> dict:
    """Team update text and commit message, plus the unified diff of the revisions"""
    document = services.repository.get_document(document_id)
    result = _latest_result(services, document)
    return {
        "summary": build_team_summary(document, result),
        "commitMessage": build_commit_message(document, result),
        "diff": services.diff_generator.generate_unified_text(
            strip_metadata(document.v1),
            strip_metadata(document.v2),
            name=f"{sanitize_title(document.title)}.md",
        ),
    }

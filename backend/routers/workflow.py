"""Analysis and Smart Patch workflow API endpoints"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from models.patch import ConfirmPlanRequest, ProposedVersionUpdate
from models.workflow import WorkflowStatus
from services.dependencies import ServiceContainer, get_services

router = APIRouter()


@router.get("/{document_id}/workflow", response_model=WorkflowStatus)
async def get_workflow(document_id: str, services: ServiceContainer = Depends(get_services)) -> WorkflowStatus:
    return services.workflow.status(document_id)


@router.post("/{document_id}/analyze", response_model=WorkflowStatus)
async def analyze(document_id: str, services: ServiceContainer = Depends(get_services)) -> WorkflowStatus:
    """Global mode: analyze v1 against v2. Patch mode: request a plan."""
    return await services.workflow.analyze(document_id)


@router.post("/{document_id}/plan", response_model=WorkflowStatus)
async def request_plan(document_id: str, services: ServiceContainer = Depends(get_services)) -> WorkflowStatus:
    return await services.workflow.request_plan(document_id)


@router.put("/{document_id}/plan/version", response_model=WorkflowStatus)
async def update_plan_version(
    document_id: str,
    request: ProposedVersionUpdate,
    services: ServiceContainer = Depends(get_services),
) -> WorkflowStatus:
    return services.workflow.update_proposed_version(document_id, request.version)


@router.delete("/{document_id}/plan", response_model=WorkflowStatus)
async def cancel_plan(document_id: str, services: ServiceContainer = Depends(get_services)) -> WorkflowStatus:
    return services.workflow.cancel_plan(document_id)


@router.post("/{document_id}/plan/confirm", response_model=WorkflowStatus)
async def confirm_plan(
    document_id: str,
    request: ConfirmPlanRequest,
    services: ServiceContainer = Depends(get_services),
) -> WorkflowStatus:
    """Generate, re-analyze and commit the reviewed plan"""
    return await services.workflow.confirm_plan(document_id, request.target_version)


@router.post("/{document_id}/reset", response_model=WorkflowStatus)
async def reset(document_id: str, services: ServiceContainer = Depends(get_services)) -> WorkflowStatus:
    return services.workflow.reset(document_id)

"""Workflow session data models"""

from __future__ import annotations

from enum import Enum

from .analysis import AnalysisResult
from .base import CamelModel
from .document import DocumentMode
from .patch import PatchPlan


class WorkflowState(str, Enum):
    """States of the per-document workflow"""

    IDLE = "idle"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    PLAN_READY = "plan_ready"
    GENERATING = "generating"
    COMMITTED = "committed"


class WorkflowStatus(CamelModel):
    """Externally visible view of a workflow session"""

    document_id: str
    mode: DocumentMode
    state: WorkflowState
    plan: PatchPlan | None = None
    result: AnalysisResult | None = None
    error: str | None = None
    analysis_in_flight: bool = False
    generation_in_flight: bool = False

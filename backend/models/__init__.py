"""Models module - Pydantic data models"""

from .analysis import (
    AnalysisResult,
    BumpType,
    ChangeItem,
    ChangeType,
    Language,
    LineRange,
    Persona,
    TokenUsage,
)
from .diff import DiffCell, DiffHunk, DiffLayout, DiffResult, DiffRow, HunkKind, UnifiedRow
from .document import Document, DocumentMode, Folder, GithubConfig, WorkspaceSnapshot
from .history import HistoryEntry, HistoryRecord
from .patch import GeneratedDocument, PatchAction, PatchOperation, PatchPlan
from .workflow import WorkflowState, WorkflowStatus

__all__ = [
    # Analysis models
    "AnalysisResult",
    "BumpType",
    "ChangeItem",
    "ChangeType",
    "Language",
    "LineRange",
    "Persona",
    "TokenUsage",
    # Diff models
    "DiffCell",
    "DiffHunk",
    "DiffLayout",
    "DiffResult",
    "DiffRow",
    "HunkKind",
    "UnifiedRow",
    # Document models
    "Document",
    "DocumentMode",
    "Folder",
    "GithubConfig",
    "WorkspaceSnapshot",
    # History models
    "HistoryEntry",
    "HistoryRecord",
    # Patch models
    "GeneratedDocument",
    "PatchAction",
    "PatchOperation",
    "PatchPlan",
    # Workflow models
    "WorkflowState",
    "WorkflowStatus",
]

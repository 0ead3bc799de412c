"""Services module - Business logic layer"""

from .analysis_service import AnalysisService
from .config_manager import ConfigManager
from .diff_generator import DiffGenerator, compute_split_rows, compute_unified_rows
from .document_repository import DocumentRepository
from .history_store import HistoryStore
from .llm_service import LLMService
from .patch_workflow import WorkflowEngine

__all__ = [
    "AnalysisService",
    "ConfigManager",
    "DiffGenerator",
    "DocumentRepository",
    "HistoryStore",
    "LLMService",
    "WorkflowEngine",
    "compute_split_rows",
    "compute_unified_rows",
]

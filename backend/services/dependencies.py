"""Service container shared by the routers"""

from __future__ import annotations

from typing import Callable

from models.analysis import Language

from .analysis_service import AnalysisService
from .config_manager import ConfigManager
from .diff_generator import DiffGenerator
from .document_repository import DocumentRepository
from .history_store import DEFAULT_CAPACITY, HistoryStore
from .llm_service import LLMService
from .patch_workflow import WorkflowEngine


class ServiceContainer:
    """Container for service instances."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        analysis_factory: Callable[[], AnalysisService] | None = None,
    ):
        self.config_manager = config_manager or ConfigManager.get_instance()
        config = self.config_manager.get_config()
        data_dir = self.config_manager.data_dir

        self.repository = DocumentRepository(data_dir / "documents.json")
        self.history = HistoryStore(
            data_dir / "history.json",
            capacity=int(config.get("historyLimit") or DEFAULT_CAPACITY),
        )
        self.diff_generator = DiffGenerator()
        self.workflow = WorkflowEngine(
            self.repository,
            self.history,
            analysis_factory or self.build_analysis_service,
            language=self.language,
        )

    def build_analysis_service(self) -> AnalysisService:
        """Fresh collaborator per call so config edits apply immediately"""
        return AnalysisService(LLMService(self.config_manager.get_config()))

    def language(self) -> Language:
        try:
            return Language(self.config_manager.get("language", Language.EN.value))
        except ValueError:
            return Language.EN


_container: ServiceContainer | None = None


def get_services() -> ServiceContainer:
    """Lazily build the process-wide container"""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_services(container: ServiceContainer | None):
    """Install a container (tests) or drop the current one"""
    global _container
    _container = container

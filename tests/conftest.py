# tests/conftest.py

from __future__ import annotations

import pytest

from models.analysis import AnalysisResult, BumpType, ChangeItem, ChangeType, LineRange
from models.patch import GeneratedDocument, PatchAction, PatchOperation, PatchPlan
from services.document_repository import DocumentRepository
from services.exceptions import CollaboratorError
from services.history_store import HistoryStore
from services.patch_workflow import WorkflowEngine


def make_result(version: str = "1.1.0", summary: str = "Added pricing", start: int = 3, end: int = 4) -> AnalysisResult:
    return AnalysisResult(
        version=version,
        previous_version="1.0.0",
        bump_type=BumpType.MINOR,
        summary=summary,
        changes=[
            ChangeItem(
                id="c1",
                type=ChangeType.FEAT,
                title="Pricing section",
                description="New pricing tiers",
                lines=LineRange(start=start, end=end),
            )
        ],
    )


def make_plan(version: str = "1.1.0") -> PatchPlan:
    return PatchPlan(
        actions=[
            PatchAction(
                operation=PatchOperation.INSERT,
                target_section_header="## Pricing",
                description="Add a pricing section",
                reason="Requested by the patch",
            )
        ],
        proposed_version=version,
        bump_type=BumpType.MINOR,
        summary="Insert pricing",
    )


class FakeAnalysis:
    """Stands in for AnalysisService; records calls and can be told to fail"""

    def __init__(self, generated_text: str = "# Doc\n\nBody\n\n## Pricing\nFree tier"):
        self.generated_text = generated_text
        self.fail_on: set[str] = set()
        self.calls: list[tuple] = []
        self.before_return = None

    async def _maybe_fail(self, name: str):
        if self.before_return is not None:
            await self.before_return(name)
        if name in self.fail_on:
            raise CollaboratorError(f"{name} rejected by provider")

    async def analyze_diff(self, previous_text, new_text, language=None, known_version=None, persona=None):
        self.calls.append(("analyze", previous_text, new_text, known_version))
        await self._maybe_fail("analyze")
        return make_result(version=known_version or "1.1.0")

    async def create_patch_plan(self, previous_text, patch_fragment, language=None):
        self.calls.append(("plan", previous_text, patch_fragment))
        await self._maybe_fail("plan")
        return make_plan()

    async def generate_patched_document(self, previous_text, patch_fragment, plan, target_version, language=None):
        self.calls.append(("generate", previous_text, patch_fragment, target_version))
        await self._maybe_fail("generate")
        return GeneratedDocument(text=self.generated_text)


@pytest.fixture
def fake_analysis() -> FakeAnalysis:
    return FakeAnalysis()


@pytest.fixture
def repository(tmp_path) -> DocumentRepository:
    return DocumentRepository(tmp_path / "documents.json")


@pytest.fixture
def history(tmp_path) -> HistoryStore:
    return HistoryStore(tmp_path / "history.json")


@pytest.fixture
def engine(repository, history, fake_analysis) -> WorkflowEngine:
    return WorkflowEngine(repository, history, lambda: fake_analysis)

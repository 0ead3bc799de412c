"""Smart Patch planning data models"""

from __future__ import annotations

from enum import Enum

from .analysis import BumpType, TokenUsage
from .base import CamelModel


class PatchOperation(str, Enum):
    """Edit operation proposed by the planner"""

    INSERT = "insert"
    REPLACE = "replace"
    DELETE = "delete"


class PatchAction(CamelModel):
    """One planned edit; the section header is for display only"""

    operation: PatchOperation
    target_section_header: str
    description: str
    reason: str = ""


class PatchPlan(CamelModel):
    """Ordered edit plan with a proposed version"""

    actions: list[PatchAction]
    proposed_version: str
    bump_type: BumpType
    summary: str
    usage: TokenUsage | None = None

    def describe_actions(self) -> str:
        return "\n".join(
            f"{i}. [{a.operation.value.upper()}] Target: {a.target_section_header}. Intent: {a.description}"
            for i, a in enumerate(self.actions, start=1)
        )


class GeneratedDocument(CamelModel):
    """Full new document text returned by the generation step"""

    text: str
    usage: TokenUsage | None = None


class ConfirmPlanRequest(CamelModel):
    """Confirm the pending plan, optionally overriding the version"""

    target_version: str | None = None


class ProposedVersionUpdate(CamelModel):
    """User edit of the proposed version while reviewing"""

    version: str

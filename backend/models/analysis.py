"""Semantic analysis data models"""

from __future__ import annotations

from enum import Enum

from pydantic import ConfigDict, Field, model_validator

from .base import CamelModel


class ChangeType(str, Enum):
    """Conventional-commit style change categories"""

    FEAT = "feat"
    FIX = "fix"
    DOCS = "docs"
    REFACTOR = "refactor"
    STYLE = "style"
    PERF = "perf"


class BumpType(str, Enum):
    """Semantic version bump classification"""

    MAJOR = "Major"
    MINOR = "Minor"
    PATCH = "Patch"


class Language(str, Enum):
    """Output language for generated descriptions"""

    ZH = "zh"
    EN = "en"


class Persona(str, Enum):
    """Target audience steering tone and detail level"""

    GENERAL = "general"
    DEVELOPER = "developer"
    EXECUTIVE = "executive"
    PUBLIC = "public"


class TokenUsage(CamelModel):
    """Token accounting reported by the provider"""

    prompt_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class LineRange(CamelModel):
    """1-based inclusive line range in the new revision"""

    start: int = Field(ge=1)
    end: int = Field(ge=1)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data):
        # Models occasionally return 0-based or reversed ranges
        if isinstance(data, dict) and "start" in data and "end" in data:
            try:
                start = max(int(data["start"]), 1)
                end = max(int(data["end"]), 1)
            except (TypeError, ValueError) as e:
                raise ValueError(f"line range bounds must be integers: {e}") from e
            if start > end:
                start, end = end, start
            data = {**data, "start": start, "end": end}
        return data

    def contains(self, line_number: int) -> bool:
        return self.start <= line_number <= self.end


class ChangeItem(CamelModel):
    """A single semantic change located in the new revision"""

    id: str
    type: ChangeType
    title: str
    description: str
    lines: LineRange


class AnalysisResult(CamelModel):
    """Structured change report for one revision; never mutated after creation"""

    model_config = ConfigDict(frozen=True)

    version: str
    previous_version: str = ""
    bump_type: BumpType
    summary: str
    changes: list[ChangeItem] = []
    usage: TokenUsage | None = None

    def change(self, change_id: str) -> ChangeItem | None:
        for item in self.changes:
            if item.id == change_id:
                return item
        return None

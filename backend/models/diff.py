"""Diff-related data models"""

from __future__ import annotations

from enum import Enum

from .base import CamelModel


class HunkKind(str, Enum):
    """Classification of a contiguous run of lines"""

    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


class DiffHunk(CamelModel):
    """A maximal run of lines with a single classification"""

    kind: HunkKind
    lines: list[str]


class DiffCell(CamelModel):
    """One side of a split row"""

    content: str
    line_number: int  # 1-indexed
    kind: HunkKind


class DiffRow(CamelModel):
    """Paired row for the two-column layout; at least one side is present"""

    left: DiffCell | None = None
    right: DiffCell | None = None
    highlighted: bool = False


class UnifiedRow(CamelModel):
    """Single-column row in chronological order"""

    content: str
    kind: HunkKind
    v1_line_number: int | None = None
    v2_line_number: int | None = None


class DiffLayout(str, Enum):
    SPLIT = "split"
    UNIFIED = "unified"


class DiffRequest(CamelModel):
    """Raw text pair to diff"""

    old_text: str = ""
    new_text: str = ""


class DiffResult(CamelModel):
    """Rows for one layout plus line totals"""

    layout: DiffLayout
    rows: list[DiffRow] = []
    unified_rows: list[UnifiedRow] = []
    added: int
    removed: int
    unchanged: int
    focus_row: int | None = None

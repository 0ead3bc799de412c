"""
Diff Generator Service - Line-level diffs projected into renderable rows
"""

from __future__ import annotations

from difflib import SequenceMatcher, unified_diff

from models.analysis import LineRange
from models.diff import DiffCell, DiffHunk, DiffLayout, DiffResult, DiffRow, HunkKind, UnifiedRow


def split_lines(text: str) -> list[str]:
    """Split on newline; a single trailing newline does not add an empty line"""
    if not text:
        return []
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


def compute_hunks(old_text: str, new_text: str) -> list[DiffHunk]:
    """Longest-common-subsequence line diff as ordered hunks"""
    old_lines = split_lines(old_text)
    new_lines = split_lines(new_text)

    # autojunk would treat frequent lines (blank lines, rules) as noise
    matcher = SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    hunks: list[DiffHunk] = []

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            hunks.append(DiffHunk(kind=HunkKind.UNCHANGED, lines=old_lines[i1:i2]))
            continue
        # A replacement reads as removal followed by addition
        if tag in ("replace", "delete"):
            hunks.append(DiffHunk(kind=HunkKind.REMOVED, lines=old_lines[i1:i2]))
        if tag in ("replace", "insert"):
            hunks.append(DiffHunk(kind=HunkKind.ADDED, lines=new_lines[j1:j2]))

    return hunks


def compute_split_rows(old_text: str, new_text: str) -> list[DiffRow]:
    """Paired rows for the two-column layout"""
    rows: list[DiffRow] = []
    v1_counter = 1
    v2_counter = 1

    for hunk in compute_hunks(old_text, new_text):
        for line in hunk.lines:
            if hunk.kind == HunkKind.ADDED:
                rows.append(DiffRow(right=DiffCell(content=line, line_number=v2_counter, kind=HunkKind.ADDED)))
                v2_counter += 1
            elif hunk.kind == HunkKind.REMOVED:
                rows.append(DiffRow(left=DiffCell(content=line, line_number=v1_counter, kind=HunkKind.REMOVED)))
                v1_counter += 1
            else:
                rows.append(
                    DiffRow(
                        left=DiffCell(content=line, line_number=v1_counter, kind=HunkKind.UNCHANGED),
                        right=DiffCell(content=line, line_number=v2_counter, kind=HunkKind.UNCHANGED),
                    )
                )
                v1_counter += 1
                v2_counter += 1

    return rows


def compute_unified_rows(old_text: str, new_text: str) -> list[UnifiedRow]:
    """Single-column rows in chronological order"""
    rows: list[UnifiedRow] = []
    v1_counter = 1
    v2_counter = 1

    for hunk in compute_hunks(old_text, new_text):
        for line in hunk.lines:
            if hunk.kind == HunkKind.ADDED:
                rows.append(UnifiedRow(content=line, kind=hunk.kind, v2_line_number=v2_counter))
                v2_counter += 1
            elif hunk.kind == HunkKind.REMOVED:
                rows.append(UnifiedRow(content=line, kind=hunk.kind, v1_line_number=v1_counter))
                v1_counter += 1
            else:
                rows.append(
                    UnifiedRow(
                        content=line,
                        kind=hunk.kind,
                        v1_line_number=v1_counter,
                        v2_line_number=v2_counter,
                    )
                )
                v1_counter += 1
                v2_counter += 1

    return rows


def find_row_for_line(rows: list[DiffRow], v2_line: int) -> int | None:
    """Index of the first row whose right cell carries the given v2 line"""
    for index, row in enumerate(rows):
        if row.right and row.right.line_number == v2_line:
            return index
    return None


def highlight_rows(rows: list[DiffRow], line_range: LineRange) -> list[DiffRow]:
    """Mark rows whose v2 line falls inside a change's range"""
    return [
        row.model_copy(update={"highlighted": bool(row.right and line_range.contains(row.right.line_number))})
        for row in rows
    ]


class DiffGenerator:
    """Build diff projections for two revisions of a document"""

    def generate(
        self,
        old_text: str,
        new_text: str,
        layout: DiffLayout = DiffLayout.SPLIT,
        focus: LineRange | None = None,
    ) -> DiffResult:
        """Rows for one layout plus totals; `focus` highlights a v2 line range"""
        hunks = compute_hunks(old_text, new_text)
        added = sum(len(h.lines) for h in hunks if h.kind == HunkKind.ADDED)
        removed = sum(len(h.lines) for h in hunks if h.kind == HunkKind.REMOVED)
        unchanged = sum(len(h.lines) for h in hunks if h.kind == HunkKind.UNCHANGED)

        if layout == DiffLayout.UNIFIED:
            return DiffResult(
                layout=layout,
                unified_rows=compute_unified_rows(old_text, new_text),
                added=added,
                removed=removed,
                unchanged=unchanged,
            )

        rows = compute_split_rows(old_text, new_text)
        focus_row = None
        if focus is not None:
            rows = highlight_rows(rows, focus)
            focus_row = find_row_for_line(rows, focus.start)

        return DiffResult(
            layout=layout,
            rows=rows,
            added=added,
            removed=removed,
            unchanged=unchanged,
            focus_row=focus_row,
        )

    def generate_unified_text(self, old_text: str, new_text: str, name: str = "document.md") -> str:
        """Standard unified diff text, e.g. for a commit description"""
        old_lines = [line + "\n" for line in split_lines(old_text)]
        new_lines = [line + "\n" for line in split_lines(new_text)]
        return "".join(unified_diff(old_lines, new_lines, fromfile=f"a/{name}", tofile=f"b/{name}"))

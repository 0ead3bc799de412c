"""
Metadata Protocol - In-band history log separated from live content by a marker

A persisted document looks like:

    <content>

    <br/>
    <hr/>

    <HISTORY_MARKER>

    ### v1.0.0 (2026-01-01 10:00:00)
    <summary>
    ```json
    {...AnalysisResult...}
    ```

History blocks are stacked oldest first. Everything before the first marker
is live content and is the only part ever sent for analysis.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError

from models.analysis import AnalysisResult
from models.history import HistoryEntry

HISTORY_MARKER = "<!-- 🛡️ SMARTDIFF HISTORY LOG 🛡️ -->"

AI_GUIDE_COMMENT = (
    "<!-- 🤖 SMARTDIFF_AI_GUIDE: For structured changes and version history, "
    'refer to the "Analysis JSON" section at the end of this file. -->'
)

LEGACY_SENTINEL = "SMARTDIFF AI METADATA"
CONTENT_SEPARATOR = "\n\n<br/>\n<hr/>\n\n"
TITLE_MAX_LENGTH = 100
HISTORY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_SEPARATOR_TAIL = CONTENT_SEPARATOR.strip()
_LEGACY_SPLIT = re.compile(r"<!--\s*=+\s*SMARTDIFF AI METADATA")
_TRAILING_SEPARATORS = re.compile(r"(<br\s*/?>\s*)?(<hr\s*/?>\s*)?$", re.IGNORECASE)
_ENTRY_HEADER = re.compile(r"^### v(?P<version>\S+) \((?P<timestamp>[^)]*)\)[ \t]*$", re.MULTILINE)
_JSON_FENCE = re.compile(r"```json\s*\n(?P<body>[\s\S]*?)\n```")


def strip_metadata(text: str) -> str:
    """Live content only: everything before the first marker, trimmed"""
    if not text:
        return ""

    content = text
    marker_index = text.find(HISTORY_MARKER)
    if marker_index != -1:
        content = text[:marker_index].strip()
        # Drop the separator written by compose_document so it never accumulates
        if content.endswith(_SEPARATOR_TAIL):
            content = content[: -len(_SEPARATOR_TAIL)].strip()

    # Legacy metadata may sit before the marker or stand alone
    if LEGACY_SENTINEL in content:
        parts = _LEGACY_SPLIT.split(content, maxsplit=1)
        if len(parts) > 1:
            return _TRAILING_SEPARATORS.sub("", parts[0].rstrip()).strip()

    return content


def extract_history(text: str) -> str:
    """History region: everything after the first marker, trimmed"""
    if not text:
        return ""
    marker_index = text.find(HISTORY_MARKER)
    if marker_index == -1:
        return ""
    return text[marker_index + len(HISTORY_MARKER):].strip()


def _find_h1(lines: list[str]) -> int:
    for index, line in enumerate(lines):
        if line.strip().startswith("# "):
            return index
    return -1


def insert_after_title(text: str, block: str) -> str:
    """Insert a block after the first top-level heading, or at the top"""
    lines = text.split("\n")
    h1_index = _find_h1(lines)
    if h1_index == -1:
        return f"{block}\n\n{text}"
    lines[h1_index + 1:h1_index + 1] = ["", block, ""]
    return "\n".join(lines)


def ensure_guide_comment(text: str) -> str:
    """Add the invisible AI guide comment once"""
    if not text:
        return ""
    if AI_GUIDE_COMMENT in text:
        return text
    return insert_after_title(text, AI_GUIDE_COMMENT)


def detect_title(text: str) -> str:
    """First H1 text, else a short first non-blank line, else empty"""
    if not text:
        return ""
    lines = text.split("\n")
    h1_index = _find_h1(lines)
    if h1_index != -1:
        return lines[h1_index].strip()[2:].strip()
    for line in lines:
        if line.strip():
            return line.strip() if len(line) < TITLE_MAX_LENGTH else ""
    return ""


def format_timestamp(moment: datetime | None = None) -> str:
    return (moment or datetime.now()).strftime(HISTORY_TIMESTAMP_FORMAT)


def analysis_json(result: AnalysisResult) -> str:
    return json.dumps(result.to_wire(), indent=2, ensure_ascii=False)


def version_marker(version: str) -> str:
    """Substring identifying a serialized analysis of this version"""
    return f'"version": "{version}"'


def build_history_entry(result: AnalysisResult, timestamp: str | None = None) -> str:
    """One history block for a committed analysis"""
    stamp = timestamp or format_timestamp()
    return f"### v{result.version} ({stamp})\n{result.summary}\n```json\n{analysis_json(result)}\n```\n"


def stack_history(prior_history: str, entry: str, version: str) -> str:
    """Append the newest entry after older ones unless this version is already logged"""
    prior = prior_history.strip()
    if not prior:
        return entry.strip()
    if version_marker(version) in prior:
        return prior
    return f"{prior}\n\n{entry.strip()}"


def compose_document(content: str, history: str) -> str:
    """Serialize content plus history region with a single marker"""
    if not history:
        return content
    return f"{content}{CONTENT_SEPARATOR}{HISTORY_MARKER}\n\n{history}"


def parse_history_entries(history: str) -> list[HistoryEntry]:
    """Read stacked history blocks back, oldest first"""
    headers = list(_ENTRY_HEADER.finditer(history))
    entries: list[HistoryEntry] = []

    for index, header in enumerate(headers):
        end = headers[index + 1].start() if index + 1 < len(headers) else len(history)
        block = history[header.start():end].strip()
        body = history[header.end():end]

        analysis = None
        fence = _JSON_FENCE.search(body)
        summary = body[:fence.start()] if fence else body
        if fence:
            try:
                analysis = AnalysisResult.model_validate(json.loads(fence.group("body")))
            except (json.JSONDecodeError, PydanticValidationError):
                analysis = None

        entries.append(
            HistoryEntry(
                version=header.group("version"),
                timestamp=header.group("timestamp"),
                summary=summary.strip(),
                analysis=analysis,
                raw=block,
            )
        )

    return entries


@dataclass
class DocumentBody:
    """Tagged two-part view of a persisted document text"""

    content: str
    history: list[HistoryEntry] = field(default_factory=list)
    history_text: str = ""

    @classmethod
    def parse(cls, text: str) -> "DocumentBody":
        history_text = extract_history(text)
        return cls(
            content=strip_metadata(text),
            history=parse_history_entries(history_text),
            history_text=history_text,
        )

    def versions(self) -> list[str]:
        return [entry.version for entry in self.history]

    def with_entry(self, result: AnalysisResult, timestamp: str | None = None) -> "DocumentBody":
        """New body with the analysis appended to the history region"""
        history_text = stack_history(self.history_text, build_history_entry(result, timestamp), result.version)
        return DocumentBody(
            content=self.content,
            history=parse_history_entries(history_text),
            history_text=history_text,
        )

    def serialize(self) -> str:
        return compose_document(self.content, self.history_text)

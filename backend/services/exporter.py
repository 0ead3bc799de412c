"""
Exporter - Markdown artifacts that carry the full version history
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from models.analysis import AnalysisResult, ChangeType, Language
from models.document import Document

from .metadata import (
    CONTENT_SEPARATOR,
    HISTORY_MARKER,
    analysis_json,
    ensure_guide_comment,
    extract_history,
    insert_after_title,
    strip_metadata,
    version_marker,
)

CHANGE_TYPE_DESCRIPTIONS = {
    Language.ZH: {
        ChangeType.FEAT: "新功能 (Features) - 引入了新的功能或特性",
        ChangeType.FIX: "修复 (Fixes) - 修复了 bug 或错误",
        ChangeType.DOCS: "文档 (Documentation) - 仅修改了文档",
        ChangeType.REFACTOR: "重构 (Refactor) - 代码结构调整，不影响功能",
        ChangeType.STYLE: "样式 (Style) - 代码格式、UI 样式调整",
        ChangeType.PERF: "性能 (Performance) - 提升性能的修改",
    },
    Language.EN: {
        ChangeType.FEAT: "Features - Introduced new features",
        ChangeType.FIX: "Fixes - Bug fixes",
        ChangeType.DOCS: "Documentation - Documentation only changes",
        ChangeType.REFACTOR: "Refactor - Code change that neither fixes a bug nor adds a feature",
        ChangeType.STYLE: "Style - Changes that do not affect the meaning of the content (white-space, formatting, etc)",
        ChangeType.PERF: "Performance - A change that improves performance",
    },
}

EXPORT_TEXT = {
    Language.ZH: {
        "legend": "变更类型说明 (Change Types Legend)",
        "note": "备注",
        "note_content": "所有更新和变动请查看 `### 结构化分析数据 (Analysis JSON)` 这一章节",
        "meta_header": "SMARTDIFF AI METADATA\n此部分包含结构化版本数据，专为 AI 编程助手 (如 Cursor, Copilot) 设计。",
        "section": "结构化分析数据 (Analysis JSON)",
    },
    Language.EN: {
        "legend": "Change Types Legend",
        "note": "Note",
        "note_content": "For all updates and changes, please refer to the `### Analysis JSON` section.",
        "meta_header": (
            "SMARTDIFF AI METADATA\nThis section contains structured version data designed for AI coding "
            "assistants (e.g., Cursor, Copilot)."
        ),
        "section": "Analysis JSON",
    },
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9一-龥\-_ ]")


@dataclass
class ExportArtifact:
    filename: str
    content: str


def sanitize_title(title: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("", title or "SmartDiff").strip() or "SmartDiff"


def export_filename(title: str, version: str, moment: datetime) -> str:
    """`<title>_v<version>_<YYYY-MM-DDTHH-MM-SS>.md`"""
    stamp = moment.isoformat(timespec="seconds").replace(":", "-")
    return f"{sanitize_title(title)}_v{version}_{stamp[:19]}.md"


def build_metadata_block(result: AnalysisResult, language: Language, moment: datetime) -> str:
    """Legend plus the fenced JSON of the current analysis"""
    text = EXPORT_TEXT[language]
    legend = "\n".join(f"- **{kind.value}**: {desc}" for kind, desc in CHANGE_TYPE_DESCRIPTIONS[language].items())
    rule = "=" * 77
    return (
        f"<!-- \n{rule}\n{text['meta_header']}\nGenerated at: {moment.strftime('%Y-%m-%d %H:%M:%S')}\n{rule}\n-->\n\n"
        f"### {text['legend']}\n{legend}\n\n"
        f"### {text['section']} (v{result.version})\n```json\n{analysis_json(result)}\n```\n"
    )


def build_export(
    document: Document,
    result: AnalysisResult,
    language: Language = Language.EN,
    moment: datetime | None = None,
) -> ExportArtifact:
    """Content with guide comment and note, then the marker and full history"""
    moment = moment or datetime.now()
    text = EXPORT_TEXT[language]

    content = ensure_guide_comment(strip_metadata(document.v2))
    content = insert_after_title(content, f"> **{text['note']}**: {text['note_content']}")

    existing_history = extract_history(document.v2)
    if existing_history and version_marker(result.version) in existing_history:
        history = existing_history
    elif existing_history:
        history = f"{existing_history}\n\n{build_metadata_block(result, language, moment)}"
    else:
        history = build_metadata_block(result, language, moment)

    body = f"{content}{CONTENT_SEPARATOR}{HISTORY_MARKER}\n\n{history}\n"
    return ExportArtifact(filename=export_filename(document.title, result.version, moment), content=body)


def build_team_summary(document: Document, result: AnalysisResult) -> str:
    """Short plain-text update suitable for chat or a PR description"""
    lines = [f"📄 {document.title or 'Document'} v{result.version} ({result.bump_type.value})"]
    if result.previous_version:
        lines.append(f"Previous: v{result.previous_version}")
    lines.extend(["", result.summary])
    if result.changes:
        lines.append("")
        lines.extend(f"- [{c.type.value}] {c.title} (L{c.lines.start}-{c.lines.end})" for c in result.changes)
    return "\n".join(lines)


def build_commit_message(document: Document, result: AnalysisResult | None) -> str:
    """Semantic commit message for pushing the current revision"""
    if result is None:
        return f"docs: update {document.title or 'document'} via SmartDiff"
    titles = ", ".join(c.title for c in result.changes)
    if not titles:
        summary = "General updates"
    elif len(titles) > 50:
        summary = titles[:50] + "..."
    else:
        summary = titles
    return f"docs: update to v{result.version} - {summary}"

"""History snapshot data models"""

from __future__ import annotations

from pydantic import ConfigDict, Field

from .analysis import AnalysisResult
from .base import CamelModel
from .document import generate_id, now_ms


class HistoryRecord(CamelModel):
    """Out-of-band snapshot of a committed revision"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    doc_id: str | None = None  # absent on legacy records
    timestamp: int = Field(default_factory=now_ms)
    version: str
    summary: str
    full_content: str
    doc_title: str = "Untitled"


class HistoryEntry(CamelModel):
    """One stacked block of the in-document history region"""

    version: str
    timestamp: str
    summary: str = ""
    analysis: AnalysisResult | None = None
    raw: str = ""

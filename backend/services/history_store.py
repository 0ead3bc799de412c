"""
History Store - Bounded, newest-first log of revision snapshots
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from models.history import HistoryRecord

from .exceptions import NotFoundError, StorageReadError, StorageWriteError
from .json_store import read_json, write_json

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


class HistoryStore:
    """Append-only snapshot log; records are never mutated"""

    def __init__(self, path: Path | None = None, capacity: int = DEFAULT_CAPACITY):
        self.path = path
        self.capacity = capacity
        self._records = self._load()

    def _load(self) -> list[HistoryRecord]:
        """Read persisted records; corruption degrades to an empty log"""
        try:
            data = read_json(self.path, [])
            if not isinstance(data, list):
                raise StorageReadError(f"Expected a list in {self.path}")
            return [HistoryRecord.model_validate(item) for item in data]
        except (StorageReadError, PydanticValidationError) as e:
            logger.warning("History store unreadable, starting empty: %s", e)
            return []

    def _save(self):
        try:
            write_json(self.path, [record.to_wire() for record in self._records])
        except StorageWriteError as e:
            logger.error("Failed to save history: %s", e)

    def append(self, record: HistoryRecord) -> HistoryRecord:
        """Prepend a record, evicting the oldest beyond capacity"""
        self._records = [record, *self._records][: self.capacity]
        self._save()
        logger.info("History snapshot v%s saved for %s", record.version, record.doc_id or record.doc_title)
        return record

    def list(
        self,
        document_id: str | None = None,
        title: str | None = None,
        query: str | None = None,
    ) -> list[HistoryRecord]:
        """Records newest first, optionally scoped to one document and searched"""
        records = self._records
        if document_id is not None or title is not None:
            records = [r for r in records if self._belongs_to(r, document_id, title)]
        if query:
            needle = query.strip().lower()
            records = [
                r
                for r in records
                if needle in r.version.lower() or needle in r.summary.lower() or needle in r.doc_title.lower()
            ]
        return list(records)

    @staticmethod
    def _belongs_to(record: HistoryRecord, document_id: str | None, title: str | None) -> bool:
        if document_id is not None and record.doc_id == document_id:
            return True
        # Legacy records predate document linkage
        return record.doc_id is None and title is not None and record.doc_title == title

    def get(self, record_id: str) -> HistoryRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise NotFoundError(f"History record not found: {record_id}")

    def clear(self):
        self._records = []
        self._save()
        logger.info("History cleared")

    def __len__(self) -> int:
        return len(self._records)

"""
Document Repository - Folders, documents and the active document selection
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from models.document import Document, DocumentMode, Folder, WorkspaceSnapshot, now_ms
from models.history import HistoryRecord

from .exceptions import NotFoundError, StorageReadError, StorageWriteError, ValidationError
from .json_store import read_json, write_json
from .metadata import detect_title

logger = logging.getLogger(__name__)

UNTITLED_DOCUMENT = "Untitled Doc"
UNTITLED_FOLDER = "Untitled Project"
DEFAULT_FOLDER = "Default Project"

SAMPLE_V1 = """# SmartDiff Product Requirements (V1.0)

## Introduction
SmartDiff is a tool for manually comparing text files.

## Features
1. Upload text files.
2. View files side by side.
3. Highlight simple differences.

## Tech Stack
- jQuery
- Bootstrap
- PHP backend"""

SAMPLE_V2 = """# SmartDiff Product Requirements (V1.1)

## Introduction
SmartDiff is an AI-driven document version manager that analyzes semantic differences automatically.

## Features
1. Upload text files (V1 and V2).
2. **AI analysis**: generate changelogs and version numbers automatically.
3. **Smart navigation**: selecting a change card scrolls to its location.
4. JSON export for IDE integration.
5. **Compare mode**: toggle the old/new comparison with one click.

## Tech Stack
- React
- Tailwind CSS
- Google Gemini API

## Pricing
- Free: 10 analyses per day
- Pro: unlimited"""

_EDITABLE_FIELDS = {"title", "v1", "v2", "patch_text", "mode", "persona", "folder_id", "github_config"}


class DocumentRepository:
    """Arena of folders and documents referenced by id"""

    def __init__(self, path: Path | None = None):
        self.path = path
        self._folders: dict[str, Folder] = {}
        self._documents: dict[str, Document] = {}
        self._active_id: str | None = None
        self._delete_listeners: list[Callable[[str], None]] = []
        self._mode_listeners: list[Callable[[str], None]] = []
        self._load()

    # ========== Persistence ==========

    def _load(self):
        """Load the workspace; unreadable data starts a fresh workspace"""
        try:
            data = read_json(self.path, None)
            snapshot = WorkspaceSnapshot.model_validate(data) if data is not None else None
        except (StorageReadError, PydanticValidationError) as e:
            logger.warning("Document store unreadable, starting empty: %s", e)
            snapshot = None

        if snapshot is None or not snapshot.documents:
            self._bootstrap()
            return

        self._folders = {f.id: f for f in snapshot.folders}
        self._documents = {d.id: d for d in snapshot.documents}
        active = snapshot.active_document_id
        self._active_id = active if active in self._documents else None

    def _bootstrap(self):
        """Fresh workspace: one default folder holding one untitled document"""
        folder = Folder(name=DEFAULT_FOLDER)
        document = Document(folder_id=folder.id, title=UNTITLED_DOCUMENT)
        self._folders = {folder.id: folder}
        self._documents = {document.id: document}
        self._active_id = document.id
        self._save()

    def _save(self):
        snapshot = WorkspaceSnapshot(
            folders=list(self._folders.values()),
            documents=list(self._documents.values()),
            active_document_id=self._active_id,
        )
        try:
            write_json(self.path, snapshot.to_wire())
        except StorageWriteError as e:
            logger.error("Failed to save documents: %s", e)

    def on_delete(self, listener: Callable[[str], None]):
        """Register a callback invoked with each deleted document id"""
        self._delete_listeners.append(listener)

    def on_mode_change(self, listener: Callable[[str], None]):
        """Register a callback invoked with the id of a document whose mode changed"""
        self._mode_listeners.append(listener)

    def _notify_deleted(self, document_ids: list[str]):
        for document_id in document_ids:
            for listener in self._delete_listeners:
                listener(document_id)

    # ========== Folders ==========

    def list_folders(self) -> list[Folder]:
        return sorted(self._folders.values(), key=lambda f: f.created_at)

    def get_folder(self, folder_id: str) -> Folder:
        folder = self._folders.get(folder_id)
        if folder is None:
            raise NotFoundError(f"Folder not found: {folder_id}")
        return folder

    def create_folder(self, name: str | None = None) -> Folder:
        folder = Folder(name=(name or "").strip() or UNTITLED_FOLDER)
        self._folders[folder.id] = folder
        self._save()
        return folder

    def rename_folder(self, folder_id: str, name: str) -> Folder:
        if not name.strip():
            raise ValidationError("Folder name is required")
        folder = self.get_folder(folder_id).model_copy(update={"name": name.strip()})
        self._folders[folder_id] = folder
        self._save()
        return folder

    def delete_folder(self, folder_id: str) -> list[str]:
        """Delete a folder and every document referencing it"""
        self.get_folder(folder_id)
        removed = [d.id for d in self._documents.values() if d.folder_id == folder_id]
        for document_id in removed:
            del self._documents[document_id]
        del self._folders[folder_id]
        if self._active_id in removed:
            self._active_id = None
        self._save()
        self._notify_deleted(removed)
        logger.info("Deleted folder %s with %d document(s)", folder_id, len(removed))
        return removed

    # ========== Documents ==========

    def list_documents(self, folder_id: str | None = None, ungrouped: bool = False) -> list[Document]:
        documents = sorted(self._documents.values(), key=lambda d: d.created_at)
        if ungrouped:
            return [d for d in documents if d.folder_id is None]
        if folder_id is not None:
            return [d for d in documents if d.folder_id == folder_id]
        return documents

    def get_document(self, document_id: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return document

    def create_document(self, folder_id: str | None = None, title: str | None = None) -> Document:
        """Create a document and make it the active one"""
        if folder_id is not None:
            self.get_folder(folder_id)
        document = Document(folder_id=folder_id, title=(title or "").strip() or UNTITLED_DOCUMENT)
        self._documents[document.id] = document
        self._active_id = document.id
        self._save()
        return document

    def update_document(self, document_id: str, **changes: Any) -> Document:
        """Apply field updates, bump updated_at and auto-detect a missing title"""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown document fields: {', '.join(sorted(unknown))}")
        current = self.get_document(document_id)
        if changes.get("folder_id") is not None:
            self.get_folder(changes["folder_id"])

        try:
            updated = Document.model_validate(
                {**current.model_dump(), **changes, "updated_at": max(now_ms(), current.updated_at + 1)}
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid document update: {e}") from e

        if "title" not in changes and updated.title in ("", UNTITLED_DOCUMENT):
            detected = detect_title(updated.v2 or updated.v1)
            if detected:
                updated = updated.model_copy(update={"title": detected})

        self._documents[document_id] = updated
        self._save()
        if updated.mode != current.mode:
            for listener in self._mode_listeners:
                listener(document_id)
        return updated

    def rename_document(self, document_id: str, title: str) -> Document:
        return self.update_document(document_id, title=title.strip())

    def delete_document(self, document_id: str):
        self.get_document(document_id)
        del self._documents[document_id]
        if self._active_id == document_id:
            self._active_id = None
        self._save()
        self._notify_deleted([document_id])

    def set_mode(self, document_id: str, mode: DocumentMode) -> Document:
        return self.update_document(document_id, mode=mode)

    def load_demo(self, document_id: str) -> Document:
        """Fill a document with the built-in sample revisions"""
        return self.update_document(
            document_id,
            v1=SAMPLE_V1,
            v2=SAMPLE_V2,
            title="SmartDiff Product Requirements",
        )

    def restore_from_history(self, document_id: str, record: HistoryRecord) -> Document:
        """Load a snapshot as the new baseline revision"""
        return self.update_document(
            document_id,
            v1=record.full_content,
            v2="",
            patch_text="",
            title=record.doc_title,
        )

    # ========== Active selection ==========

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def set_active(self, document_id: str | None) -> Document | None:
        if document_id is not None:
            self.get_document(document_id)
        self._active_id = document_id
        self._save()
        return self.get_active()

    def get_active(self) -> Document | None:
        if self._active_id is None:
            return None
        return self._documents.get(self._active_id)

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            folders=self.list_folders(),
            documents=self.list_documents(),
            active_document_id=self._active_id,
        )

"""Document and folder data models"""

from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import Field

from .analysis import Persona
from .base import CamelModel


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def now_ms() -> int:
    return int(time.time() * 1000)


class DocumentMode(str, Enum):
    """Which workflow the document currently uses"""

    GLOBAL = "global"
    PATCH = "patch"


class GithubConfig(CamelModel):
    """Remote file location the document is synced with"""

    owner: str
    repo: str
    branch: str = "main"
    path: str


class Folder(CamelModel):
    """Named group of documents; documents hold the back-reference"""

    id: str = Field(default_factory=generate_id)
    name: str
    created_at: int = Field(default_factory=now_ms)


class Document(CamelModel):
    """A managed document with its previous (v1) and current (v2) revisions"""

    id: str = Field(default_factory=generate_id)
    folder_id: str | None = None
    title: str = ""
    v1: str = ""
    v2: str = ""
    patch_text: str = ""
    mode: DocumentMode = DocumentMode.GLOBAL
    persona: Persona = Persona.GENERAL
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    github_config: GithubConfig | None = None


class FolderCreate(CamelModel):
    name: str | None = None


class FolderRename(CamelModel):
    name: str


class DocumentCreate(CamelModel):
    folder_id: str | None = None
    title: str | None = None


class DocumentUpdate(CamelModel):
    """Partial update of user-editable fields"""

    title: str | None = None
    v1: str | None = None
    v2: str | None = None
    patch_text: str | None = None
    mode: DocumentMode | None = None
    persona: Persona | None = None
    folder_id: str | None = None
    github_config: GithubConfig | None = None


class WorkspaceSnapshot(CamelModel):
    """Persisted shape of the repository"""

    folders: list[Folder] = []
    documents: list[Document] = []
    active_document_id: str | None = None

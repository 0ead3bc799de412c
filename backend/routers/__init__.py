"""Routers module - FastAPI route handlers"""

from . import config, diff, documents, export, history, workflow

__all__ = ["config", "diff", "documents", "export", "history", "workflow"]

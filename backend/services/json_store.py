"""JSON file persistence shared by the document and history stores"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .exceptions import StorageReadError, StorageWriteError


def read_json(path: Path | None, default: Any) -> Any:
    """Load a JSON file; missing file returns `default`, malformed raises StorageReadError"""
    if path is None or not path.exists():
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        raise StorageReadError(f"Cannot read {path}: {e}") from e


def write_json(path: Path | None, data: Any):
    """Atomically replace a JSON file; a None path keeps data in memory only"""
    if path is None:
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as e:
        raise StorageWriteError(f"Cannot write {path}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageWriteError(f"Cannot write {path}: {e}") from e

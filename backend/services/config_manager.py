"""
Configuration Manager - Provider credentials, output language and storage location
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .exceptions import StorageReadError
from .json_store import read_json, write_json

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "SMARTDIFF_CONFIG_DIR"
CONFIG_FILENAME = "config.json"


def resolve_config_dir(config_dir: str | os.PathLike | None = None) -> Path:
    """Explicit argument, then $SMARTDIFF_CONFIG_DIR, then ~/.smartdiff, then the temp dir"""
    candidate = Path(config_dir or os.environ.get(CONFIG_DIR_ENV) or os.path.expanduser("~/.smartdiff"))
    try:
        candidate.mkdir(parents=True, exist_ok=True)
        return candidate
    except OSError as e:
        logger.warning("Cannot write to %s: %s", candidate, e)

    fallback = Path(tempfile.gettempdir()) / "smartdiff"
    fallback.mkdir(parents=True, exist_ok=True)
    logger.info("Using temporary config dir: %s", fallback)
    return fallback


class ConfigManager:
    """Process-wide settings backed by a JSON file"""

    _instance = None

    def __init__(self, config_dir: str | os.PathLike | None = None):
        self._config_file = resolve_config_dir(config_dir) / CONFIG_FILENAME
        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls, instance: "ConfigManager | None" = None):
        """Replace the shared instance (tests, alternate config dirs)"""
        cls._instance = instance

    @property
    def config_dir(self) -> Path:
        return self._config_file.parent

    @property
    def data_dir(self) -> Path:
        """Directory holding documents.json and history.json"""
        configured = self._config.get("dataDir")
        return Path(configured).expanduser() if configured else self.config_dir

    def _load_config(self) -> dict[str, Any]:
        """Stored values merged over defaults; an unreadable file means defaults"""
        defaults = self._default_config()
        try:
            stored = read_json(self._config_file, {})
        except StorageReadError as e:
            logger.warning("Ignoring unreadable config: %s", e)
            return defaults

        if not isinstance(stored, dict):
            logger.warning("Ignoring config %s: expected an object", self._config_file)
            return defaults
        return {**defaults, **stored}

    @staticmethod
    def _default_config() -> dict[str, Any]:
        return {
            "provider": "gemini",
            "gemini": {"apiKey": "", "model": "gemini-2.5-flash"},
            "openai": {"apiKey": "", "model": "gpt-4o-mini"},
            "vllm": {
                "endpoint": "http://localhost:8000",
                "apiKey": "",
                "model": "meta-llama/Llama-2-7b-chat-hf",
            },
            "language": "en",
            "historyLimit": 50,
            "dataDir": "",
            "server": {"host": "0.0.0.0", "port": 8000},
        }

    def get_config(self) -> dict[str, Any]:
        """Current configuration, re-read so edits made elsewhere are visible"""
        self._config = self._load_config()
        return self._config.copy()

    def save_config(self, config: dict[str, Any]):
        """Merge and persist; raises StorageWriteError when the file cannot be written"""
        self._config.update(config)
        write_json(self._config_file, self._config)

    def get(self, key: str, default=None):
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        self._config[key] = value
        self.save_config(self._config)

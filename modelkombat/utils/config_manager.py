"""
Configuration Persistence
=========================

Storage backends for the per-user LLM configuration. The configuration session
talks to a backend only through the ``ConfigBackend`` interface, so the local
and the account-scoped stores are interchangeable.

Key Responsibilities:
---------------------
- Identity: ``current_user_id`` names whose configuration is being edited, or
  None when nobody is signed in.
- File-System Persistence: ``LocalConfigBackend`` stores the configuration in a
  hidden JSON file in the user's home directory
  (``~/.modelkombat_llm_config.json``), under a fixed namespace key.
- Security Logging: Save/load events are logged with the credential redacted.

Author: Model Kombat Project
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from modelkombat.core import config
from modelkombat.core.errors import PersistenceError
from modelkombat.utils.logger import log_config


class ConfigBackend:
    """
    Interface of a configuration store.

    Documents are plain dicts in the persisted shape produced by
    ``LLMConfig.to_dict``.
    """

    storage_mode = "abstract"

    def current_user_id(self) -> Optional[str]:
        raise NotImplementedError

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None when the user has none yet."""
        raise NotImplementedError

    def save(self, user_id: str, data: Dict[str, Any]):
        """Write ``data``, merging into any existing document. Raises PersistenceError."""
        raise NotImplementedError

    def clear(self, user_id: str):
        """Forget the user's configuration on logout or reset."""
        raise NotImplementedError


class LocalConfigBackend(ConfigBackend):
    """
    Process-local store backed by a JSON file.

    There is no authentication gate: the current user is always
    ``config.LOCAL_USER_ID``. The file holds a single namespace key whose value is
    ``{"config": {...}}``.
    """

    storage_mode = "local"

    def __init__(self, path: Optional[Path] = None, namespace: str = config.LOCAL_STORAGE_NAMESPACE):
        self.path = Path(path) if path else config.LOCAL_CONFIG_PATH
        self.namespace = namespace
        self.logger = logging.getLogger(__name__)

    def current_user_id(self) -> Optional[str]:
        return config.LOCAL_USER_ID

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except json.JSONDecodeError as e:
            self.logger.error(f"Configuration file is corrupted: {e}", exc_info=True)
            return {}
        except OSError as e:
            self.logger.error(f"Failed to read configuration from {self.path}: {e}", exc_info=True)
            return {}

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            self.logger.info(f"No existing configuration file found at {self.path}")
            return None

        self.logger.info(f"Loading configuration from {self.path}")
        stored = (self._read_file().get(self.namespace) or {}).get("config")
        if not isinstance(stored, dict):
            return None

        log_config("Loaded Configuration", stored, self.logger)
        return stored

    def save(self, user_id: str, data: Dict[str, Any]):
        file_data = self._read_file()
        namespace = file_data.get(self.namespace) or {}
        merged = dict(namespace.get("config") or {})
        merged.update(data)
        namespace["config"] = merged
        file_data[self.namespace] = namespace

        log_config("Saving Configuration", merged, self.logger)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(file_data, f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to save configuration: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save configuration to {self.path}: {e}") from e

        self.logger.info(f"Configuration saved successfully to {self.path}")

    def clear(self, user_id: str):
        file_data = self._read_file()
        if self.namespace not in file_data:
            return
        del file_data[self.namespace]
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(file_data, f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to clear configuration: {e}", exc_info=True)
            raise PersistenceError(f"Failed to clear configuration at {self.path}: {e}") from e
        self.logger.info(f"Cleared local configuration at {self.path}")

"""
Hybrid Configuration Store
==========================

Account-scoped storage with a local fallback. The configuration is kept in the
user's Firestore document while Firestore answers, and every write is mirrored
to the local JSON file. When Firestore cannot be reached (project without a
database, missing credentials, outage) the backend switches to the local file
for the rest of the session and ``storage_mode`` reports ``"local"``.

Usage:
    backend = HybridConfigBackend(
        FirestoreConfigBackend(user_provider=lambda: auth.current_uid),
        LocalConfigBackend(),
    )
    session = ConfigSession(backend)

Author: Model Kombat Project
"""

import logging
from typing import Any, Dict, Optional

from modelkombat.core.errors import PersistenceError
from modelkombat.integrations.firestore_store import FirestoreConfigBackend
from modelkombat.utils.config_manager import ConfigBackend, LocalConfigBackend

logger = logging.getLogger(__name__)


class HybridConfigBackend(ConfigBackend):
    """
    Firestore first, local JSON file as fallback and mirror.

    Attributes:
        remote: Account-scoped backend, also the source of the user identity
        local: Local file backend; receives a copy of every write
    """

    def __init__(self, remote: FirestoreConfigBackend, local: LocalConfigBackend):
        self.remote = remote
        self.local = local
        self._remote_available = True

    @property
    def storage_mode(self) -> str:
        return self.remote.storage_mode if self._remote_available else self.local.storage_mode

    @property
    def remote_available(self) -> bool:
        return self._remote_available

    def reconnect(self):
        """Try Firestore again on the next load or save."""
        self._remote_available = True

    def _fall_back(self, error: PersistenceError):
        if self._remote_available:
            logger.warning(f"Firestore not available, using local storage: {error}")
        self._remote_available = False

    def current_user_id(self) -> Optional[str]:
        return self.remote.current_user_id()

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        if self._remote_available:
            try:
                return self.remote.load(user_id)
            except PersistenceError as e:
                self._fall_back(e)
        return self.local.load(user_id)

    def save(self, user_id: str, data: Dict[str, Any]):
        # The local copy must succeed; a Firestore failure only changes the mode
        self.local.save(user_id, data)
        if not self._remote_available:
            return
        try:
            self.remote.save(user_id, data)
        except PersistenceError as e:
            self._fall_back(e)

    def clear(self, user_id: str):
        self.local.clear(user_id)
        if self._remote_available:
            self.remote.clear(user_id)

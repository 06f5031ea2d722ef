"""
Firestore Configuration Store
=============================

Account-scoped configuration backend. Each signed-in user owns one document in
the ``llm-configs`` collection, keyed by user id. Writes use ``set(merge=True)``
so concurrent field updates from another device are not overwritten wholesale.

Transient Firestore errors (DeadlineExceeded, ServiceUnavailable, Aborted...)
and missing Google credentials surface as ``PersistenceError``; the session
then leaves its in-memory state untouched.

Usage:
    from modelkombat.integrations.firestore_store import FirestoreConfigBackend

    backend = FirestoreConfigBackend(user_provider=lambda: auth.current_uid)
    session = ConfigSession(backend)
"""

import logging
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore

from modelkombat.core import config
from modelkombat.core.errors import PersistenceError
from modelkombat.utils.config_manager import ConfigBackend

logger = logging.getLogger(__name__)


class FirestoreConfigBackend(ConfigBackend):
    """
    Configuration store keyed by an authenticated user identity.

    Attributes:
        user_provider: Returns the signed-in user's id, or None when signed out
        collection: Firestore collection name
    """

    storage_mode = "firestore"

    def __init__(
        self,
        user_provider: Callable[[], Optional[str]],
        client: Optional[firestore.Client] = None,
        collection: str = config.FIRESTORE_COLLECTION,
    ):
        self.user_provider = user_provider
        self._client = client
        self.collection = collection

    @property
    def client(self) -> firestore.Client:
        # Created lazily so constructing the backend needs no credentials
        if self._client is None:
            self._client = firestore.Client()
        return self._client

    def current_user_id(self) -> Optional[str]:
        return self.user_provider() or None

    def _doc(self, user_id: str):
        return self.client.collection(self.collection).document(user_id)

    def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self._doc(user_id).get()
        except (GoogleAPICallError, GoogleAuthError, RetryError) as e:
            logger.error(f"Failed to load configuration for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load configuration: {e}") from e

        if not snapshot.exists:
            logger.info(f"No configuration document for user {user_id}")
            return None
        return snapshot.to_dict() or {}

    def save(self, user_id: str, data: Dict[str, Any]):
        try:
            self._doc(user_id).set(data, merge=True)
        except (GoogleAPICallError, GoogleAuthError, RetryError) as e:
            logger.error(f"Failed to save configuration for user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save configuration: {e}") from e
        logger.info(f"Configuration saved to {self.collection}/{user_id}")

    def clear(self, user_id: str):
        # The account document outlives the session; logout only resets local state
        logger.info(f"Signed out of configuration {self.collection}/{user_id}; document kept")

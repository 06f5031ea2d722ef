"""
Configuration Session
=====================

This module defines the per-user LLM configuration and the session object that
owns it for the lifetime of an interactive session.

The ``ConfigSession`` holds:
- The user's ``LLMConfig`` (obfuscated API key, enabled models, default roles,
  default refinement rounds, last catalog sync)
- The shared ``OpenRouterClient`` and the ``CatalogSynchronizer`` built on it
- ``last_error``: the message of the most recent failed operation

Persistence is delegated to a ``ConfigBackend`` chosen at composition time
(local JSON file or account-scoped Firestore document). The session logic is the
same for both: every mutation resolves the current user, builds the updated
config, writes it through to the backend, and only then swaps it into memory.
Mutations for one user are serialized with a per-user lock.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from modelkombat.core import config
from modelkombat.core.catalog import CatalogModel, CatalogSynchronizer
from modelkombat.core.credentials import decode_credential, encode_credential
from modelkombat.core.errors import (
    CredentialError,
    ModelKombatError,
    PersistenceError,
    ValidationError,
)
from modelkombat.core.model_selection import get_flagship_models, get_model_for_round
from modelkombat.integrations.openrouter_client import OpenRouterClient
from modelkombat.utils.concurrency import KeyedLock
from modelkombat.utils.config_manager import ConfigBackend
from modelkombat.utils.notifications import DESTRUCTIVE, LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION DATACLASS
# ============================================================================


@dataclass
class LLMConfig:
    """
    LLM configuration of one user (or of the local session).

    Attributes:
        user_id: Owner id; ``config.LOCAL_USER_ID`` for the local backend
        openrouter_api_key: Obfuscated API key (see ``core.credentials``); None
            until the user saves one
        enabled_model_ids: Models opted into refinement rounds, in rotation
            order, without duplicates. May name models missing from the catalog.
        default_refiner_id: Default model for the refiner role
        default_judge_id: Default model for the judge role
        default_refinement_rounds: Rounds per refinement run, 1-10
        last_catalog_sync: UTC time of the last successful catalog fetch
    """
    user_id: str = config.LOCAL_USER_ID
    openrouter_api_key: Optional[str] = None
    enabled_model_ids: List[str] = field(default_factory=list)
    default_refiner_id: Optional[str] = None
    default_judge_id: Optional[str] = None
    default_refinement_rounds: int = config.DEFAULT_REFINEMENT_ROUNDS
    last_catalog_sync: Optional[datetime] = None

    @property
    def has_api_key(self) -> bool:
        return bool(self.openrouter_api_key)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted document shape. Unset optional fields are omitted."""
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "enabledModelIds": list(self.enabled_model_ids),
            "defaultRefinementRounds": self.default_refinement_rounds,
        }
        if self.openrouter_api_key:
            data["openRouterApiKey"] = self.openrouter_api_key
        if self.default_refiner_id:
            data["defaultRefinerId"] = self.default_refiner_id
        if self.default_judge_id:
            data["defaultJudgeId"] = self.default_judge_id
        if self.last_catalog_sync:
            data["lastCatalogSync"] = self.last_catalog_sync.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], user_id: Optional[str] = None) -> "LLMConfig":
        """
        Build a config from a stored document, tolerating missing and unknown keys.

        Older documents used ``defaultRefinerModel``, ``defaultJudgeModel`` and
        ``catalogLastFetched``; those are read as fallbacks.
        """
        enabled: List[str] = []
        for model_id in data.get("enabledModelIds") or []:
            if isinstance(model_id, str) and model_id and model_id not in enabled:
                enabled.append(model_id)

        rounds = data.get("defaultRefinementRounds", config.DEFAULT_REFINEMENT_ROUNDS)
        if not _valid_rounds(rounds):
            logger.warning(f"Ignoring stored refinement rounds {rounds!r}; using default")
            rounds = config.DEFAULT_REFINEMENT_ROUNDS

        return cls(
            user_id=user_id or data.get("userId") or config.LOCAL_USER_ID,
            openrouter_api_key=data.get("openRouterApiKey") or None,
            enabled_model_ids=enabled,
            default_refiner_id=data.get("defaultRefinerId") or data.get("defaultRefinerModel") or None,
            default_judge_id=data.get("defaultJudgeId") or data.get("defaultJudgeModel") or None,
            default_refinement_rounds=rounds,
            last_catalog_sync=_parse_timestamp(data.get("lastCatalogSync") or data.get("catalogLastFetched")),
        )


def _valid_rounds(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return config.MIN_REFINEMENT_ROUNDS <= value <= config.MAX_REFINEMENT_ROUNDS


def _parse_timestamp(value: Any) -> Optional[datetime]:
    # Firestore hands back datetime subclasses; the JSON store holds ISO strings
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp {value!r}")
    return None


# ============================================================================
# SESSION CLASS
# ============================================================================


class ConfigSession:
    """
    Owns the LLM configuration of the current user and the OpenRouter connection.

    Attributes:
        backend: Where the configuration is persisted
        client: Shared OpenRouter client, initialized from the stored key
        catalog: Catalog synchronizer built on ``client``
        notifier: Sink for user-facing success/failure messages
        auto_enable_flagships: When True, flagship models found by a catalog sync
            are added to the enabled set
        last_error: Message of the most recent failure, None after a success
    """

    def __init__(
        self,
        backend: ConfigBackend,
        client: Optional[OpenRouterClient] = None,
        notifier: Optional[Notifier] = None,
        auto_enable_flagships: bool = False,
        catalog_ttl_seconds: int = config.CATALOG_CACHE_SECONDS,
    ):
        self.backend = backend
        self.client = client or OpenRouterClient()
        self.catalog = CatalogSynchronizer(self.client, ttl_seconds=catalog_ttl_seconds)
        self.notifier = notifier or LoggingNotifier()
        self.auto_enable_flagships = auto_enable_flagships
        self.last_error: Optional[str] = None
        self._config: Optional[LLMConfig] = None
        self._locks = KeyedLock()
        logger.info(f"Configuration session created - storage: {self.storage_mode}")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def config(self) -> Optional[LLMConfig]:
        return self._config

    @property
    def models(self) -> List[CatalogModel]:
        return list(self.catalog.models)

    @property
    def storage_mode(self) -> str:
        return self.backend.storage_mode

    def model_for_round(self, round_index: int) -> str:
        """Model to use for a zero-based refinement round with the current enabled set."""
        enabled = self._config.enabled_model_ids if self._config else []
        return get_model_for_round(enabled, round_index)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fail(self, title: str, error: Exception):
        self.last_error = str(error) or type(error).__name__
        logger.error(f"{title}: {self.last_error}")
        self.notifier.notify(title, self.last_error, DESTRUCTIVE)

    def _authenticated_user(self, operation: str) -> Optional[str]:
        user_id = self.backend.current_user_id()
        if not user_id:
            logger.warning(f"{operation} ignored: no authenticated user")
        return user_id

    def _ensure_config(self, user_id: str) -> LLMConfig:
        """Config of ``user_id``, loaded from (or created in) the backend on first use."""
        if self._config is not None and self._config.user_id == user_id:
            return self._config

        data = self.backend.load(user_id)
        if data is None:
            cfg = LLMConfig(user_id=user_id)
            self.backend.save(user_id, cfg.to_dict())
            logger.info(f"Created default configuration for user {user_id}")
        else:
            cfg = LLMConfig.from_dict(data, user_id=user_id)
        self._config = cfg
        return cfg

    def _config_for_update(self, user_id: str, failure_title: str) -> LLMConfig:
        try:
            return self._ensure_config(user_id)
        except PersistenceError as e:
            self._fail(failure_title, e)
            raise

    def _commit(self, user_id: str, updated: LLMConfig, changes: Dict[str, Any], failure_title: str):
        """Write ``changes`` through to the backend, then adopt ``updated``."""
        try:
            self.backend.save(user_id, changes)
        except PersistenceError as e:
            self._fail(failure_title, e)
            raise
        self._config = updated

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def load_config(self) -> Optional[LLMConfig]:
        """
        Load the current user's configuration, creating defaults on first use.

        When a stored API key decodes, the client is initialized with it and a
        catalog sync is attempted. Sync failures are recorded in ``last_error``.

        Returns:
            The loaded config, or None when no user is authenticated.
        """
        user_id = self._authenticated_user("load_config")
        if not user_id:
            return None

        with self._locks.hold(user_id):
            self.last_error = None
            self._config = None
            try:
                cfg = self._ensure_config(user_id)
            except PersistenceError as e:
                self._fail("Failed to Load Configuration", e)
                self._config = LLMConfig(user_id=user_id)
                return self._config

            logger.info(
                f"Configuration loaded for {user_id} - enabled models: {len(cfg.enabled_model_ids)}, "
                f"rounds: {cfg.default_refinement_rounds}, api key: {'set' if cfg.has_api_key else 'unset'}"
            )

            if cfg.openrouter_api_key:
                api_key = decode_credential(cfg.openrouter_api_key).strip()
                if not api_key:
                    self._fail("Invalid Stored API Key", CredentialError(
                        "The saved API key could not be decoded. Please enter it again."
                    ))
                    return cfg
                self.client.initialize(api_key)
                self.sync_catalog()

            return self._config

    def verify(self, credential: Optional[str] = None) -> bool:
        """
        Check that a credential can talk to OpenRouter. Never raises.

        The shared client is initialized with ``credential`` (or the decoded stored
        key) before the check, so a successful verify leaves it ready for a
        catalog sync.
        """
        self.last_error = None
        try:
            if credential is not None:
                api_key = credential.strip()
                if not api_key:
                    raise CredentialError("No API key provided")
            else:
                stored = self._config.openrouter_api_key if self._config else None
                if not stored:
                    raise CredentialError("No API key configured")
                api_key = decode_credential(stored).strip()
                if not api_key:
                    raise CredentialError("Failed to decode API key")

            self.client.initialize(api_key)
            if not self.client.test_connection():
                raise CredentialError("Connection test failed")
        except Exception as e:
            self._fail("Connection Failed", e)
            return False

        self.notifier.notify("Connection Successful", "Successfully connected to OpenRouter API.")
        return True

    test_connection = verify

    def save_credential(self, api_key: str):
        """
        Verify, store and start using a new OpenRouter API key.

        Order: verify the key, write the obfuscated key through to the backend,
        then force a catalog refresh.

        Raises:
            ValidationError: No authenticated user, or an empty key.
            CredentialError: OpenRouter rejected the key or could not be reached.
            PersistenceError: The key verified but could not be stored.
        """
        user_id = self.backend.current_user_id()
        if not user_id:
            error = ValidationError("User not authenticated")
            self._fail("Failed to Save API Key", error)
            raise error

        api_key = (api_key or "").strip()
        if not api_key:
            error = ValidationError("API key must not be empty")
            self._fail("Failed to Save API Key", error)
            raise error

        with self._locks.hold(user_id):
            current = self._config_for_update(user_id, "Failed to Save API Key")

            if not self.verify(api_key):
                error = CredentialError(self.last_error or "Invalid API key or connection failed")
                self._fail("Failed to Save API Key", error)
                raise error

            encoded = encode_credential(api_key)
            updated = replace(current, openrouter_api_key=encoded)
            self._commit(user_id, updated, {"openRouterApiKey": encoded}, "Failed to Save API Key")

            self.sync_catalog(force_refresh=True)

        where = "cloud" if self.storage_mode == "firestore" else "local"
        self.notifier.notify("API Key Saved", f"Your OpenRouter API key has been saved to {where} storage.")

    save_api_key = save_credential

    def sync_catalog(self, force_refresh: bool = False) -> bool:
        """
        Refresh the model catalog. Never raises.

        On failure the previous catalog and the enabled models are kept, the error
        is recorded in ``last_error`` and False is returned. On a real fetch the
        sync time is persisted and, with ``auto_enable_flagships``, flagship models
        from the new catalog are enabled.
        """
        self.last_error = None
        if not self.client.is_initialized():
            self._fail("Failed to Fetch Catalog", CredentialError("No API key configured"))
            return False

        previous_sync = self.catalog.last_sync_time
        try:
            models = self.catalog.sync(force_refresh=force_refresh)
        except ModelKombatError as e:
            self._fail("Failed to Fetch Catalog", e)
            return False

        if self.catalog.last_sync_time == previous_sync:
            logger.debug("Catalog served from cache")
            return True

        flagship_added = self._record_sync(models)

        if flagship_added:
            self.notifier.notify(
                "Models Loaded & Flagship Models Enabled",
                f"Loaded {len(models)} models, auto-enabled {len(flagship_added)} flagship models",
            )
        else:
            self.notifier.notify("Catalog Updated", f"Loaded {len(models)} models from OpenRouter.")
        return True

    fetch_model_catalog = sync_catalog

    def _record_sync(self, models: List[CatalogModel]) -> List[str]:
        user_id = self.backend.current_user_id()
        if not user_id or self._config is None or self._config.user_id != user_id:
            return []

        with self._locks.hold(user_id):
            current = self._config
            enabled = list(current.enabled_model_ids)
            added = []
            if self.auto_enable_flagships:
                for model in get_flagship_models(models):
                    if model.id not in enabled:
                        enabled.append(model.id)
                        added.append(model.id)

            updated = replace(current, enabled_model_ids=enabled, last_catalog_sync=self.catalog.last_sync_time)
            changes: Dict[str, Any] = {"lastCatalogSync": self.catalog.last_sync_time.isoformat()}
            if added:
                changes["enabledModelIds"] = enabled
            try:
                self._commit(user_id, updated, changes, "Failed to Save Catalog Sync")
            except PersistenceError:
                # Catalog itself is current; the failure is already in last_error
                return []
            return added

    def toggle_model(self, model_id: str, enabled: bool) -> bool:
        """
        Enable or disable a model for refinement rounds.

        Returns:
            False when no user is authenticated (nothing changes), True otherwise.

        Raises:
            PersistenceError: The backend write failed; memory is unchanged.
        """
        user_id = self._authenticated_user("toggle_model")
        if not user_id:
            return False

        with self._locks.hold(user_id):
            current = self._config_for_update(user_id, "Failed to Update Model")
            ids = list(current.enabled_model_ids)
            if enabled and model_id not in ids:
                ids.append(model_id)
            elif not enabled:
                ids = [i for i in ids if i != model_id]

            if ids == current.enabled_model_ids:
                return True

            updated = replace(current, enabled_model_ids=ids)
            self._commit(user_id, updated, {"enabledModelIds": ids}, "Failed to Update Model")
            logger.info(f"Model {model_id} {'enabled' if enabled else 'disabled'}")
            return True

    def set_default_refiner(self, model_id: str) -> bool:
        return self._set_role("defaultRefinerId", "default_refiner_id", model_id, "refiner")

    def set_default_judge(self, model_id: str) -> bool:
        return self._set_role("defaultJudgeId", "default_judge_id", model_id, "judge")

    def _set_role(self, key: str, attr: str, model_id: str, role: str) -> bool:
        user_id = self._authenticated_user(f"set default {role}")
        if not user_id:
            return False

        with self._locks.hold(user_id):
            current = self._config_for_update(user_id, "Failed to Update")
            updated = replace(current, **{attr: model_id})
            self._commit(user_id, updated, {key: model_id}, "Failed to Update")
            logger.info(f"Default {role} set to {model_id}")
            return True

    def set_default_rounds(self, rounds: int) -> bool:
        """
        Set the default number of refinement rounds.

        Raises:
            ValidationError: ``rounds`` is not an integer in [1, 10]. State is
                unchanged.
            PersistenceError: The backend write failed.
        """
        if not _valid_rounds(rounds):
            error = ValidationError(
                f"Refinement rounds must be between {config.MIN_REFINEMENT_ROUNDS} "
                f"and {config.MAX_REFINEMENT_ROUNDS}."
            )
            self._fail("Invalid Value", error)
            raise error

        user_id = self._authenticated_user("set_default_rounds")
        if not user_id:
            return False

        with self._locks.hold(user_id):
            current = self._config_for_update(user_id, "Failed to Update")
            updated = replace(current, default_refinement_rounds=rounds)
            self._commit(user_id, updated, {"defaultRefinementRounds": rounds}, "Failed to Update")
            return True

    def clear_config(self):
        """
        Reset the session on logout: drop the API key from the client, empty the
        catalog and return the configuration to defaults.
        """
        self.client.reset()
        self.catalog.reset()
        self.last_error = None

        user_id = self.backend.current_user_id() or (self._config.user_id if self._config else None)
        if not user_id:
            self._config = None
            return

        with self._locks.hold(user_id):
            try:
                self.backend.clear(user_id)
            except PersistenceError as e:
                self._fail("Failed to Clear Configuration", e)
            self._config = LLMConfig(user_id=user_id)
        logger.info("Configuration cleared")

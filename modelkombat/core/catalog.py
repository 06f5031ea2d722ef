"""
Model Catalog Synchronization
=============================

Keeps the list of models offered by OpenRouter for the current session.

The catalog is a cache, not a source of truth: it is replaced wholesale on every
successful fetch, and a failed fetch leaves the previous catalog in place. A fetch
without ``force_refresh`` is skipped while the cached catalog is younger than
``config.CATALOG_CACHE_SECONDS``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from modelkombat.core import config
from modelkombat.integrations.openrouter_client import OpenRouterClient

logger = logging.getLogger(__name__)


@dataclass
class CatalogModel:
    """
    One entry of the OpenRouter model catalog.

    Attributes:
        id: Provider-namespaced id, e.g. ``anthropic/claude-3.5-sonnet``
        name: Display name, when OpenRouter provides one
        description: Free text description
        context_length: Maximum context window in tokens
        pricing: ``{"prompt": float, "completion": float}`` in USD per token
        architecture: Raw architecture block (``modality``, ``input_modalities``...)
        supported_parameters: Request parameters the model accepts
    """
    id: str
    name: Optional[str] = None
    description: str = ""
    context_length: int = 0
    pricing: Dict[str, float] = field(default_factory=dict)
    architecture: Dict[str, Any] = field(default_factory=dict)
    supported_parameters: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CatalogModel":
        raw_pricing = data.get("pricing")
        pricing = {}
        for key, value in (raw_pricing if isinstance(raw_pricing, dict) else {}).items():
            try:
                pricing[key] = float(value)
            except (TypeError, ValueError):
                continue
        architecture = data.get("architecture")
        parameters = data.get("supported_parameters")
        return cls(
            id=data["id"],
            name=data.get("name"),
            description=data.get("description") or "",
            context_length=int(data.get("context_length") or 0),
            pricing=pricing,
            architecture=architecture if isinstance(architecture, dict) else {},
            supported_parameters=[p for p in parameters if isinstance(p, str)]
            if isinstance(parameters, (list, tuple)) else [],
        )


class CatalogSynchronizer:
    """
    Fetches and caches the OpenRouter model catalog.

    Attributes:
        client: Shared OpenRouter client; must be initialized before ``sync``
        ttl_seconds: Cache lifetime for non-forced syncs
        models: Current catalog, in OpenRouter order
        last_sync_time: UTC time of the last successful fetch
    """

    def __init__(self, client: OpenRouterClient, ttl_seconds: int = config.CATALOG_CACHE_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.models: List[CatalogModel] = []
        self.last_sync_time: Optional[datetime] = None

    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        if self.last_sync_time is None or not self.models:
            return False
        now = now or datetime.now(timezone.utc)
        return (now - self.last_sync_time).total_seconds() < self.ttl_seconds

    def sync(self, force_refresh: bool = False) -> List[CatalogModel]:
        """
        Return the catalog, fetching it unless a fresh cached copy exists.

        Raises:
            CredentialError, NetworkError: Propagated from the client. The cached
                catalog is left untouched.
        """
        if not force_refresh and self.is_fresh():
            logger.debug(f"Serving cached catalog ({len(self.models)} models)")
            return list(self.models)

        raw_models = self.client.fetch_model_catalog()
        models = []
        for raw in raw_models:
            try:
                models.append(CatalogModel.from_api(raw))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed catalog entry {raw.get('id')!r}: {e}")

        self.models = models
        self.last_sync_time = datetime.now(timezone.utc)
        logger.info(f"Catalog synchronized: {len(models)} models")
        return list(self.models)

    def get_model(self, model_id: str) -> Optional[CatalogModel]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def vision_capable(self) -> List[CatalogModel]:
        """Models accepting image input."""
        return [m for m in self.models if model_supports_capability(m, "vision")]

    def json_capable(self) -> List[CatalogModel]:
        """Models accepting ``response_format`` or ``structured_outputs``."""
        return [m for m in self.models if model_supports_capability(m, "json_mode")]

    def stream_capable(self) -> List[CatalogModel]:
        """Models that can stream; OpenRouter streams for every model it lists."""
        return [m for m in self.models if model_supports_capability(m, "supports_stream")]

    def estimate_cost(self, model_id: str, prompt_tokens: int, completion_tokens: int) -> float:
        """Estimated USD cost of a completion, 0.0 for unknown models or missing pricing."""
        model = self.get_model(model_id)
        if model is None or not model.pricing:
            return 0.0
        return (
            prompt_tokens * model.pricing.get("prompt", 0.0)
            + completion_tokens * model.pricing.get("completion", 0.0)
        )

    def reset(self):
        self.models = []
        self.last_sync_time = None


def model_supports_capability(model: CatalogModel, capability: str) -> bool:
    """
    Check a catalog model for a named capability.

    Known names (``json_mode``, ``vision``, ``function_calling`` and their
    ``supports_*`` aliases) map onto the catalog's parameters and modalities; any
    other name is looked up directly in ``supported_parameters``.
    """
    params = model.supported_parameters
    if capability in ("json_mode", "supports_response_schema"):
        return "response_format" in params or "structured_outputs" in params
    if capability in ("vision", "supports_vision"):
        modalities = model.architecture.get("input_modalities") or []
        return isinstance(modalities, (list, tuple)) and "image" in modalities
    if capability == "supports_stream":
        return True
    if capability in ("function_calling", "supports_functions"):
        return "tools" in params or "tool_choice" in params
    return capability in params

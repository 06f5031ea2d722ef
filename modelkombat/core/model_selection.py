"""
Model Classification and Round Rotation
=======================================

Helpers that annotate catalog entries for display and pick the model used in
each refinement round.

Key Components:
- Flagship detection: loose matching against ``config.FLAGSHIP_MODEL_IDS``
- Provider grouping: buckets catalog entries by their ``<provider>/`` prefix
- Round selection: deterministic round-robin over the enabled model ids

Catalog entries may be ``CatalogModel`` instances or plain dicts carrying an ``id``.
"""

from typing import Any, Dict, List, Sequence

from modelkombat.core import config


def _model_id(model: Any) -> str:
    if isinstance(model, dict):
        return model.get("id") or ""
    return getattr(model, "id", "") or ""


def is_flagship_model(model_id: str) -> bool:
    """
    Check whether a model id matches the curated flagship list.

    Matching is case-insensitive substring in either direction, so a dated catalog id
    such as ``openai/gpt-4o-2024-11-20`` matches the reference ``openai/gpt-4o``, and a
    shortened id matches the longer reference entry.
    """
    if not model_id:
        return False
    candidate = model_id.lower()
    for flagship in config.FLAGSHIP_MODEL_IDS:
        reference = flagship.lower()
        if reference in candidate or candidate in reference:
            return True
    return False


def get_flagship_models(models: Sequence[Any]) -> List[Any]:
    """Return the flagship entries of ``models`` in catalog order."""
    return [m for m in models if is_flagship_model(_model_id(m))]


def get_provider(model_id: str) -> str:
    if not model_id or "/" not in model_id:
        return "other"
    return model_id.split("/", 1)[0] or "other"


def group_models_by_provider(models: Sequence[Any]) -> Dict[str, List[Any]]:
    """
    Group catalog entries by provider namespace.

    The provider is the text before the first ``/``; ids without a prefix
    land in ``"other"``. Catalog order is preserved within each group and groups
    appear in order of first occurrence.
    """
    grouped: Dict[str, List[Any]] = {}
    for model in models:
        grouped.setdefault(get_provider(_model_id(model)), []).append(model)
    return grouped


def get_model_for_round(enabled_model_ids: Sequence[str], round_index: int) -> str:
    """
    Pick the model for a zero-based refinement round.

    Args:
        enabled_model_ids: The user's enabled models in rotation order. Ids missing
            from the current catalog are still used.
        round_index: Caller-supplied round counter, starting at 0.

    Returns:
        str: ``enabled_model_ids[round_index % len(enabled_model_ids)]``, or
        ``config.AUTO_MODEL_ID`` when nothing is enabled.
    """
    if round_index < 0:
        raise ValueError(f"round_index must be non-negative, got {round_index}")
    if not enabled_model_ids:
        return config.AUTO_MODEL_ID
    return enabled_model_ids[round_index % len(enabled_model_ids)]


def plan_rounds(enabled_model_ids: Sequence[str], rounds: int) -> List[str]:
    """Model id for each of ``rounds`` consecutive rounds starting at round 0."""
    return [get_model_for_round(enabled_model_ids, i) for i in range(max(rounds, 0))]

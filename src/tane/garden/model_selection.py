"""Pick the model a seed is researched with."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from tane.provider.base import ConfigurationError, ModelInfo

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ModelSelection:
    """Chosen model and the rule that chose it."""

    model: ModelInfo
    reason: str


def select_model(
    *,
    requested: str | None,
    available: list[ModelInfo],
    default_model: str | None = None,
    fallback_ids: tuple[str, ...] = (),
    lookup: Callable[[str], ModelInfo | None] | None = None,
) -> ModelSelection:
    """Resolve a model for one attempt.

    Order: the seed's requested model, the configured default, the last
    available model, then the first fallback id the catalog knows. Only the
    first two are deliberate choices; "last available" follows whatever order
    the provider lists models in.
    """

    by_id = {model.id: model for model in available}

    if requested:
        model = by_id.get(requested)
        if model is not None:
            return ModelSelection(model=model, reason="requested")
        logger.warning(
            "Requested model '%s' not found or not authenticated. Falling back.",
            requested,
        )

    if default_model:
        model = by_id.get(default_model)
        if model is not None:
            return ModelSelection(model=model, reason="configured_default")
        logger.warning("Configured default model '%s' is not available.", default_model)

    if available:
        return ModelSelection(model=available[-1], reason="last_available")

    for fallback_id in fallback_ids:
        model = lookup(fallback_id) if lookup is not None else None
        if model is not None:
            return ModelSelection(model=model, reason="named_fallback")

    raise ConfigurationError(
        "No models available. Please ensure you have API keys configured "
        "in auth.json or provider env vars.",
    )

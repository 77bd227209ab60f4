"""Use-case services shared by the CLI and the web app."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tane.garden.models import (
    FailureClass,
    SeedCreate,
    SeedDetails,
    SeedStatus,
    SeedView,
)
from tane.garden.plant_types import classify_plant_type
from tane.garden.repository import GardenRepository
from tane.provider.base import ModelInfo, ResearchProvider

logger = logging.getLogger(__name__)

MAX_SEED_CHARS = 2_000

FAILURE_MESSAGES: dict[FailureClass, str] = {
    FailureClass.CONFIGURATION: (
        "No research model is configured. Ask the operator to add an API key."
    ),
    FailureClass.ACCESS_OR_AUTH: "The research provider rejected our credentials.",
    FailureClass.BILLING_OR_QUOTA: "The research provider is out of quota right now.",
    FailureClass.MODEL_NOT_AVAILABLE: "The requested model is not available.",
    FailureClass.PROVIDER_TRANSIENT: (
        "The research provider was temporarily unavailable. Try regenerating."
    ),
    FailureClass.PROVIDER_ERROR: "The research provider returned an error.",
    FailureClass.OUTPUT_EMPTY: "The researcher finished without writing a report.",
}
DEFAULT_FAILURE_MESSAGE = "This seed failed to grow."


class SeedNotFoundError(LookupError):
    """Seed id does not exist."""


class SeedBusyError(RuntimeError):
    """Seed is being grown and cannot be changed right now."""


@dataclass(slots=True)
class PlantSeed:
    """High-level command to plant one idea."""

    content: str
    model: str | None = None


@dataclass(slots=True, frozen=True)
class ModelListing:
    """Model row shown by ``tane models`` and ``/api/models``."""

    id: str
    provider: str
    name: str
    description: str


class GardenService:
    """Coordinates seed validation, planting and manual seed mutations."""

    def __init__(
        self,
        *,
        repository: GardenRepository,
        provider: ResearchProvider | None = None,
    ) -> None:
        self.repository = repository
        self.provider = provider

    def plant(self, command: PlantSeed) -> SeedView:
        content = command.content.strip()
        if not content:
            raise ValueError("Idea is required.")
        if len(content) > MAX_SEED_CHARS:
            raise ValueError(f"Idea is too long (max {MAX_SEED_CHARS} characters).")

        seed = self.repository.plant_seed(
            SeedCreate(
                content=content,
                model=(command.model or "").strip() or None,
                plant_type=classify_plant_type(content),
            ),
        )
        logger.info("Planted seed %s (%s)", seed.id, seed.plant_type.value)
        return seed

    def list_recent(self, *, limit: int, status: SeedStatus | None = None) -> list[SeedView]:
        return self.repository.list_seeds(status=status, limit=limit)

    def details(self, seed_id: str) -> SeedDetails:
        details = self.repository.get_seed_details(seed_id)
        if details is None:
            raise SeedNotFoundError(seed_id)
        return details

    def delete(self, seed_id: str) -> None:
        if not self.repository.delete_seed(seed_id):
            raise SeedNotFoundError(seed_id)
        logger.info("Deleted seed %s", seed_id)

    def regenerate(self, seed_id: str) -> SeedView:
        """Drop the report and queue the seed again.

        Refused while the seed is ``processing``: a run already in flight
        would otherwise race the fresh one for the same report row.
        """

        seed = self.repository.get_seed(seed_id)
        if seed is None:
            raise SeedNotFoundError(seed_id)
        if seed.status == SeedStatus.PROCESSING:
            raise SeedBusyError(f"Seed {seed_id} is still growing.")
        try:
            regrown = self.repository.reset_seed_for_regrowth(seed_id)
        except RuntimeError as error:
            raise SeedBusyError(str(error)) from error
        logger.info("Seed %s queued for regeneration", seed_id)
        return regrown

    def list_models(self) -> list[ModelListing]:
        if self.provider is None:
            return []
        return list_model_listings(self.provider)


def list_model_listings(provider: ResearchProvider) -> list[ModelListing]:
    """Refresh the provider and list its usable models by provider, then id."""

    provider.refresh()
    models = sorted(
        provider.list_available_models(),
        key=lambda model: (model.provider, model.id),
    )
    return [_to_model_listing(model) for model in models]


def describe_failure(failure_class: FailureClass | None) -> str:
    """User-facing explanation for a failed seed."""

    if failure_class is None:
        return DEFAULT_FAILURE_MESSAGE
    return FAILURE_MESSAGES.get(failure_class, DEFAULT_FAILURE_MESSAGE)


def _to_model_listing(model: ModelInfo) -> ModelListing:
    if model.context_window:
        description = f"{model.provider}, {model.context_window // 1000}k context"
    else:
        description = model.provider
    return ModelListing(
        id=model.id,
        provider=model.provider,
        name=model.display_name,
        description=description,
    )

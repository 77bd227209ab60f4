from __future__ import annotations

import allure
import pytest

from tane.garden.models import FailureClass, PlantType, SeedStatus
from tane.garden.repository import GardenRepository
from tane.garden.services import (
    DEFAULT_FAILURE_MESSAGE,
    MAX_SEED_CHARS,
    GardenService,
    PlantSeed,
    SeedBusyError,
    SeedNotFoundError,
    describe_failure,
)
from tane.provider.base import ModelInfo
from tane.provider.echo_agent import EchoResearchProvider

pytestmark = [
    allure.epic("Garden"),
    allure.feature("Garden Service"),
]


@pytest.fixture()
def service(repository: GardenRepository) -> GardenService:
    return GardenService(
        repository=repository,
        provider=EchoResearchProvider(
            models=[
                ModelInfo("glm-4.7", "zai", "GLM 4.7", 200_000),
                ModelInfo("gemini-3-flash", "google", "Gemini 3 Flash", 1_048_576),
                ModelInfo("llama3.1", "local"),
            ],
        ),
    )


def test_plant_trims_classifies_and_queues(service: GardenService) -> None:
    seed = service.plant(PlantSeed(content="  Logo design marketplace  ", model=" "))

    assert seed.content == "Logo design marketplace"
    assert seed.status == SeedStatus.PENDING
    assert seed.plant_type == PlantType.SAKURA
    assert seed.model is None


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("", "Idea is required"),
        ("   \n", "Idea is required"),
        ("x" * (MAX_SEED_CHARS + 1), "too long"),
    ],
)
def test_plant_rejects_invalid_ideas(service: GardenService, content: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        service.plant(PlantSeed(content=content))
    assert service.list_recent(limit=10) == []


def test_details_and_delete_raise_for_missing_seed(service: GardenService) -> None:
    with pytest.raises(SeedNotFoundError):
        service.details("missing")
    with pytest.raises(SeedNotFoundError):
        service.delete("missing")


def test_regenerate_requeues_finished_seed(
    service: GardenService,
    repository: GardenRepository,
) -> None:
    seed = service.plant(PlantSeed(content="idea"))
    repository.claim_seed(seed.id)
    repository.upsert_report(seed_id=seed.id, content="# Old", logs=[])
    repository.complete_seed(seed.id)

    regrown = service.regenerate(seed.id)

    assert regrown.status == SeedStatus.PENDING
    assert service.details(seed.id).report is None


def test_regenerate_refuses_growing_and_missing_seeds(
    service: GardenService,
    repository: GardenRepository,
) -> None:
    seed = service.plant(PlantSeed(content="idea"))
    repository.claim_seed(seed.id)

    with pytest.raises(SeedBusyError, match="still growing"):
        service.regenerate(seed.id)
    with pytest.raises(SeedNotFoundError):
        service.regenerate("missing")


def test_list_models_sorted_by_provider_then_id(service: GardenService) -> None:
    listings = service.list_models()

    assert [listing.id for listing in listings] == ["gemini-3-flash", "llama3.1", "glm-4.7"]
    assert listings[0].name == "Gemini 3 Flash (google)"
    assert listings[0].description == "google, 1048k context"
    assert listings[1].description == "local"


def test_list_models_without_provider_is_empty(repository: GardenRepository) -> None:
    assert GardenService(repository=repository).list_models() == []


def test_describe_failure_has_message_for_every_class() -> None:
    for failure_class in FailureClass:
        assert describe_failure(failure_class) != DEFAULT_FAILURE_MESSAGE
    assert describe_failure(None) == DEFAULT_FAILURE_MESSAGE

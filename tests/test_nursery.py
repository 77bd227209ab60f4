from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from datetime import timedelta

import allure
import pytest
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from tane.garden.gardener import Gardener
from tane.garden.models import GrowOutcome, SeedCreate, SeedStatus, SeedView
from tane.garden.nursery import Nursery
from tane.garden.repository import GardenRepository
from tane.storage.common import to_db_datetime, utc_now
from tane.storage.sqlmodel_models import Seed

pytestmark = [
    allure.epic("Garden"),
    allure.feature("Nursery"),
]


class _GatedGardener:
    """Completes seeds once ``gate`` opens; crashes on ideas listed in ``crash_on``."""

    def __init__(
        self,
        repository: GardenRepository,
        *,
        gate: threading.Event | None = None,
        crash_on: tuple[str, ...] = (),
    ) -> None:
        self.repository = repository
        self.gate = gate
        self.crash_on = crash_on
        self.cultivated: list[str] = []
        self._lock = threading.Lock()

    def cultivate(self, seed: SeedView) -> GrowOutcome:
        with self._lock:
            self.cultivated.append(seed.id)
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if seed.content in self.crash_on:
            raise RuntimeError("gardener exploded")
        self.repository.complete_seed(seed.id)
        return GrowOutcome(seed_id=seed.id, status=SeedStatus.COMPLETED)


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


@pytest.fixture()
def make_nursery(repository: GardenRepository) -> Iterator[Callable[..., Nursery]]:
    created: list[Nursery] = []

    def _make(gardener: object, **kwargs) -> Nursery:
        kwargs.setdefault("poll_interval_seconds", 0.01)
        kwargs.setdefault("shutdown_grace_seconds", 5.0)
        nursery = Nursery(repository=repository, gardener=gardener, **kwargs)
        created.append(nursery)
        return nursery

    yield _make
    for nursery in created:
        nursery.stop(grace_seconds=5.0)


def test_tick_claims_one_seed_and_grows_it(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    seed = repository.plant_seed(SeedCreate(content="idea"))
    gardener = _GatedGardener(repository)
    nursery = make_nursery(gardener)

    assert nursery.tick() == seed.id
    assert nursery.drain(timeout=5) is True

    assert gardener.cultivated == [seed.id]
    assert repository.get_seed(seed.id).status == SeedStatus.COMPLETED
    assert nursery.summary.dispatched == 1
    assert nursery.summary.succeeded == 1
    assert nursery.in_flight == []


def test_tick_on_empty_garden_counts_idle_poll(make_nursery: Callable[..., Nursery]) -> None:
    nursery = make_nursery(object())

    assert nursery.tick() is None
    assert nursery.summary.idle_polls == 1


def test_in_flight_seed_is_never_dispatched_twice(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    seed = repository.plant_seed(SeedCreate(content="idea"))
    gate = threading.Event()
    gardener = _GatedGardener(repository, gate=gate)
    nursery = make_nursery(gardener)

    assert nursery.tick() == seed.id
    assert nursery.tick() is None
    assert nursery.in_flight == [seed.id]
    assert repository.get_seed(seed.id).status == SeedStatus.PROCESSING

    gate.set()
    assert nursery.drain(timeout=5)
    assert gardener.cultivated == [seed.id]


def test_full_pool_stops_claiming(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    seeds = [repository.plant_seed(SeedCreate(content=f"idea {index}")) for index in range(3)]
    gate = threading.Event()
    nursery = make_nursery(_GatedGardener(repository, gate=gate), max_concurrent_growers=2)

    assert nursery.tick() == seeds[0].id
    assert nursery.tick() == seeds[1].id
    assert nursery.tick() is None

    assert nursery.summary.saturated_polls == 1
    assert repository.get_seed(seeds[2].id).status == SeedStatus.PENDING

    gate.set()
    assert nursery.drain(timeout=5)
    assert nursery.tick() == seeds[2].id


def test_crashing_gardener_is_counted_and_logged(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
    caplog: pytest.LogCaptureFixture,
) -> None:
    repository.plant_seed(SeedCreate(content="doomed"))
    nursery = make_nursery(_GatedGardener(repository, crash_on=("doomed",)))

    nursery.tick()
    assert nursery.drain(timeout=5)

    assert nursery.summary.crashed == 1
    assert nursery.in_flight == []
    assert "gardener crashed" in caplog.text


def test_stale_processing_seed_is_requeued_and_grown(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    seed = repository.plant_seed(SeedCreate(content="abandoned"))
    repository.claim_seed(seed.id)
    with Session(repository.engine) as session:
        session.exec(
            sa_update(Seed)
            .where(col(Seed.id) == seed.id)
            .values(started_at=to_db_datetime(utc_now() - timedelta(hours=1))),
        )
        session.commit()

    nursery = make_nursery(_GatedGardener(repository), stale_processing_seconds=60)

    assert nursery.tick() == seed.id
    assert nursery.drain(timeout=5)
    assert nursery.summary.recovered == 1
    assert repository.get_seed(seed.id).attempt == 2


def test_run_loop_grows_backlog_then_exits_when_idle(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    for index in range(3):
        repository.plant_seed(SeedCreate(content=f"idea {index}"))
    nursery = make_nursery(_GatedGardener(repository), max_concurrent_growers=2)

    summary = nursery.run_loop(max_idle_polls=2)

    assert summary.dispatched == 3
    assert summary.succeeded == 3
    assert summary.idle_polls >= 2
    assert all(seed.status == SeedStatus.COMPLETED for seed in repository.list_seeds())


def test_run_loop_respects_max_seeds(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    for index in range(3):
        repository.plant_seed(SeedCreate(content=f"idea {index}"))
    nursery = make_nursery(_GatedGardener(repository))

    summary = nursery.run_loop(max_seeds=1, max_idle_polls=1)

    assert summary.dispatched == 1
    assert len(repository.list_seeds(status=SeedStatus.PENDING)) == 2


def test_background_thread_grows_new_seeds_and_stops(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
) -> None:
    nursery = make_nursery(_GatedGardener(repository))
    nursery.start()
    assert nursery.is_running

    seed = repository.plant_seed(SeedCreate(content="late arrival"))
    _wait_until(lambda: repository.get_seed(seed.id).status == SeedStatus.COMPLETED)

    assert nursery.stop(grace_seconds=5) is True
    assert not nursery.is_running
    with pytest.raises(RuntimeError, match="cannot be restarted"):
        nursery.start()


def test_nursery_accepts_real_gardener(
    repository: GardenRepository,
    gardener: Gardener,
    make_nursery: Callable[..., Nursery],
) -> None:
    seed = repository.plant_seed(SeedCreate(content="Uber for Dog Walking"))
    nursery = make_nursery(gardener)

    nursery.run_loop(max_seeds=1, max_idle_polls=1)

    assert repository.get_seed(seed.id).status == SeedStatus.COMPLETED
    assert "Rover" in repository.get_report(seed.id).content


def test_pool_size_must_be_positive(repository: GardenRepository) -> None:
    with pytest.raises(ValueError, match="max_concurrent_growers"):
        Nursery(repository=repository, gardener=object(), max_concurrent_growers=0)


def _fail_first_claim(repository: GardenRepository, monkeypatch: pytest.MonkeyPatch) -> list[int]:
    calls: list[int] = []
    claim = repository.claim_next_pending_seed

    def _flaky_claim() -> SeedView | None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database is locked")
        return claim()

    monkeypatch.setattr(repository, "claim_next_pending_seed", _flaky_claim)
    return calls


def test_stop_reports_seed_still_growing_after_grace(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
    caplog: pytest.LogCaptureFixture,
) -> None:
    seed = repository.plant_seed(SeedCreate(content="slow idea"))
    gate = threading.Event()
    nursery = make_nursery(_GatedGardener(repository, gate=gate))

    assert nursery.tick() == seed.id
    assert nursery.stop(grace_seconds=0.2) is False

    assert repository.get_seed(seed.id).status == SeedStatus.PROCESSING
    assert nursery.in_flight == [seed.id]
    assert "still growing after" in caplog.text

    gate.set()
    _wait_until(lambda: not nursery.in_flight)


def test_background_thread_survives_failed_poll(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
    caplog: pytest.LogCaptureFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = _fail_first_claim(repository, monkeypatch)
    seed = repository.plant_seed(SeedCreate(content="after the hiccup"))
    nursery = make_nursery(_GatedGardener(repository))

    nursery.start()
    _wait_until(lambda: repository.get_seed(seed.id).status == SeedStatus.COMPLETED)

    assert nursery.is_running
    assert len(calls) >= 2
    assert "poll failed" in caplog.text
    assert nursery.summary.succeeded == 1


def test_run_loop_survives_failed_poll(
    repository: GardenRepository,
    make_nursery: Callable[..., Nursery],
    caplog: pytest.LogCaptureFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _fail_first_claim(repository, monkeypatch)
    seed = repository.plant_seed(SeedCreate(content="after the hiccup"))
    nursery = make_nursery(_GatedGardener(repository))

    summary = nursery.run_loop(max_idle_polls=2)

    assert summary.dispatched == 1
    assert summary.succeeded == 1
    assert repository.get_seed(seed.id).status == SeedStatus.COMPLETED
    assert "poll failed" in caplog.text

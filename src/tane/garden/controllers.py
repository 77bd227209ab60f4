"""Controllers for garden CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from pathlib import Path

from tane.config import Settings
from tane.garden.gardener import Gardener
from tane.garden.models import SeedStatus
from tane.garden.nursery import Nursery
from tane.garden.repository import GardenRepository
from tane.garden.services import (
    GardenService,
    PlantSeed,
    SeedNotFoundError,
    describe_failure,
    list_model_listings,
)
from tane.provider import build_research_provider
from tane.tools import WebSearchTool


@dataclass(slots=True)
class PlantCommand:
    """CLI input for planting a seed."""

    db_path: Path | None
    content: str
    model: str | None


@dataclass(slots=True)
class ListSeedsCommand:
    """CLI input for listing seeds."""

    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class SeedCommand:
    """CLI input for commands addressing one seed."""

    db_path: Path | None
    seed_id: str


@dataclass(slots=True)
class RepairCommand:
    """CLI input for the integrity repair pass."""

    db_path: Path | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for the foreground nursery."""

    db_path: Path | None
    once: bool
    max_seeds: int | None


@dataclass(slots=True)
class GardenCliController:
    """Coordinates seed, worker and model CLI operations."""

    def plant(self, command: PlantCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            seed = GardenService(repository=repository).plant(
                PlantSeed(content=command.content, model=command.model),
            )
        return [
            f"Seed planted: seed_id={seed.id} status={seed.status.value} "
            f"plant_type={seed.plant_type.value}",
        ]

    def list_seeds(self, command: ListSeedsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = _parse_status(command.status)
        with _repository(settings) as repository:
            seeds = GardenService(repository=repository).list_recent(
                limit=command.limit,
                status=status_filter,
            )

        lines = [f"Seeds: {len(seeds)}"]
        for seed in seeds:
            lines.append(
                f"  {seed.id} status={seed.status.value} plant={seed.plant_type.value} "
                f"attempt={seed.attempt} created_at={seed.created_at.isoformat()} "
                f"{_shorten(seed.content)}",
            )
        return lines

    def show(self, command: SeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            try:
                details = GardenService(repository=repository).details(command.seed_id)
            except SeedNotFoundError:
                return [f"Seed not found: {command.seed_id}"]

        seed = details.seed
        lines = [
            f"Seed: {seed.id}",
            f"Idea: {seed.content}",
            f"Status: {seed.status.value}",
            f"Plant type: {seed.plant_type.value}",
            f"Requested model: {seed.model or '-'}",
            f"Attempt: {seed.attempt}",
            f"Started: {seed.started_at.isoformat() if seed.started_at else '-'}",
            f"Finished: {seed.finished_at.isoformat() if seed.finished_at else '-'}",
        ]
        if seed.status == SeedStatus.FAILED:
            lines.append(
                f"Failure class: {seed.failure_class.value if seed.failure_class else '-'}",
            )
            lines.append(f"Failure: {describe_failure(seed.failure_class)}")
            lines.append(f"Error: {seed.error_summary or '-'}")

        report = details.report
        if report is None:
            lines.append("Report: -")
            return lines
        lines.append(f"Report updated: {report.updated_at.isoformat()}")
        lines.extend(f"  log: {entry}" for entry in report.logs)
        lines.append("")
        lines.extend(report.content.splitlines())
        return lines

    def delete(self, command: SeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            try:
                GardenService(repository=repository).delete(command.seed_id)
            except SeedNotFoundError:
                return [f"Seed not found: {command.seed_id}"]
        return [f"Seed deleted: {command.seed_id}"]

    def regenerate(self, command: SeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            try:
                seed = GardenService(repository=repository).regenerate(command.seed_id)
            except SeedNotFoundError:
                return [f"Seed not found: {command.seed_id}"]
        return [f"Seed re-queued: seed_id={seed.id} status={seed.status.value}"]

    def repair(self, command: RepairCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            summary = repository.repair_integrity()

        lines = [
            "Repair summary: "
            f"ghost_reports={len(summary.ghost_reports)} "
            f"orphan_seeds={len(summary.orphan_seeds)}",
        ]
        lines.extend(f"  reset ghost report: {seed_id}" for seed_id in summary.ghost_reports)
        lines.extend(f"  reset orphan seed: {seed_id}" for seed_id in summary.orphan_seeds)
        if summary.total == 0:
            lines.append("Database is healthy.")
        return lines

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with (
            closing(build_research_provider(settings.research)) as provider,
            _repository(settings) as repository,
            WebSearchTool(
                base_url=settings.search.searxng_url,
                timeout_seconds=settings.search.timeout_seconds,
                max_results=settings.search.max_results,
            ) as search,
        ):
            nursery = Nursery(
                repository=repository,
                gardener=Gardener(
                    repository=repository,
                    provider=provider,
                    tools=[search.as_tool()],
                    default_model=settings.research.default_model,
                    fallback_model_ids=settings.research.fallback_model_ids,
                ),
                poll_interval_seconds=settings.nursery.poll_interval_seconds,
                max_concurrent_growers=settings.nursery.max_concurrent_growers,
                stale_processing_seconds=settings.nursery.stale_processing_seconds,
                shutdown_grace_seconds=settings.nursery.shutdown_grace_seconds,
            )
            try:
                summary = nursery.run_loop(
                    max_seeds=1 if command.once else command.max_seeds,
                    max_idle_polls=1 if command.once else None,
                )
            finally:
                nursery.stop()

        return [
            "Nursery summary: "
            f"dispatched={summary.dispatched} succeeded={summary.succeeded} "
            f"failed={summary.failed} crashed={summary.crashed} "
            f"recovered={summary.recovered} idle_polls={summary.idle_polls}",
        ]

    def models(self) -> list[str]:
        settings = Settings.from_env()
        settings.validate()
        with closing(build_research_provider(settings.research)) as provider:
            models = list_model_listings(provider)
        if not models:
            return ["No models available. Configure a provider API key or auth.json."]
        lines = [f"Models: {len(models)}"]
        lines.extend(f"  {model.id}  {model.name}  [{model.description}]" for model in models)
        return lines


def _parse_status(value: str | None) -> SeedStatus | None:
    if value is None:
        return None
    return SeedStatus(value.strip().lower())


def _shorten(text: str, limit: int = 60) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= limit:
        return single_line
    return single_line[: limit - 3] + "..."


@contextmanager
def _repository(settings: Settings) -> Iterator[GardenRepository]:
    repository = GardenRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()

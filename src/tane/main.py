"""CLI entrypoint for tane."""

import logging
from pathlib import Path

import rich_click as click

from tane import __version__
from tane.garden.controllers import (
    GardenCliController,
    ListSeedsCommand,
    PlantCommand,
    RepairCommand,
    SeedCommand,
    WorkerCommand,
)
from tane.garden.services import SeedBusyError

click.rich_click.USE_MARKDOWN = True
GARDEN_CONTROLLER = GardenCliController()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="tane")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Root logger level.",
)
def tane(log_level: str) -> None:
    """Tane: plant startup ideas, grow research reports."""

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@tane.command("serve")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--host", default=None, help="Bind address. Defaults to TANE_WEB_HOST.")
@click.option("--port", type=click.IntRange(min=1, max=65535), default=None, help="Bind port.")
@click.option(
    "--no-nursery",
    is_flag=True,
    default=False,
    help="Do not run the background poller in this process (overrides TANE_RUN_NURSERY).",
)
def serve(db_path: Path | None, host: str | None, port: int | None, no_nursery: bool) -> None:
    """Serve the web garden (and the nursery unless disabled)."""

    import uvicorn

    from tane.config import Settings
    from tane.web.app import create_app

    settings = Settings.from_env(db_path=db_path)
    if no_nursery:
        settings.nursery.enabled = False
    try:
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error

    uvicorn.run(
        create_app(settings),
        host=host or settings.web.host,
        port=port or settings.web.port,
        log_config=None,
    )


@tane.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Grow at most one pending seed, or poll until interrupted.",
)
@click.option(
    "--max-seeds",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for grown seeds in loop mode.",
)
def worker(db_path: Path | None, once: bool, max_seeds: int | None) -> None:
    """Run the nursery in the foreground without the web app."""

    try:
        lines = GARDEN_CONTROLLER.run_worker(
            WorkerCommand(db_path=db_path, once=once, max_seeds=max_seeds),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@tane.group()
def seeds() -> None:
    """Seed commands."""


@seeds.command("plant")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--model", default=None, help="Requested model id.")
@click.argument("idea")
def seeds_plant(db_path: Path | None, model: str | None, idea: str) -> None:
    """Plant a new idea; the nursery grows it."""

    try:
        lines = GARDEN_CONTROLLER.plant(PlantCommand(db_path=db_path, content=idea, model=model))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@seeds.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["pending", "processing", "completed", "failed"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max seeds to print.",
)
def seeds_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent seeds, newest first."""

    _emit_lines(
        GARDEN_CONTROLLER.list_seeds(
            ListSeedsCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@seeds.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("seed_id")
def seeds_show(db_path: Path | None, seed_id: str) -> None:
    """Show one seed with its report."""

    _emit_lines(GARDEN_CONTROLLER.show(SeedCommand(db_path=db_path, seed_id=seed_id)))


@seeds.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("seed_id")
def seeds_delete(db_path: Path | None, seed_id: str) -> None:
    """Delete a seed and its report."""

    _emit_lines(GARDEN_CONTROLLER.delete(SeedCommand(db_path=db_path, seed_id=seed_id)))


@seeds.command("regenerate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("seed_id")
def seeds_regenerate(db_path: Path | None, seed_id: str) -> None:
    """Drop a seed's report and queue it again."""

    try:
        lines = GARDEN_CONTROLLER.regenerate(SeedCommand(db_path=db_path, seed_id=seed_id))
    except SeedBusyError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@seeds.command("repair")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def seeds_repair(db_path: Path | None) -> None:
    """Reset seeds with empty reports or completed seeds without one."""

    _emit_lines(GARDEN_CONTROLLER.repair(RepairCommand(db_path=db_path)))


@tane.command("models")
def models() -> None:
    """List models usable with the configured credentials."""

    try:
        lines = GARDEN_CONTROLLER.models()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tane()

from __future__ import annotations

import re
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner, Result

from tane.garden.models import SeedStatus
from tane.garden.repository import GardenRepository
from tane.main import tane
from tane.provider.echo_agent import EchoResearchProvider

pytestmark = [
    allure.epic("Operator CLI"),
    allure.feature("Seed Commands"),
    pytest.mark.usefixtures("clean_env"),
]

_SEED_ID = re.compile(r"seed_id=(\S+)")


def _invoke(*args: str) -> Result:
    return CliRunner().invoke(tane, list(args))


def _plant(db_path: Path, idea: str = "Uber for Dog Walking", *extra: str) -> str:
    result = _invoke("seeds", "plant", "--db-path", str(db_path), *extra, idea)
    assert result.exit_code == 0, result.output
    return _SEED_ID.search(result.output).group(1)


def _status(db_path: Path, seed_id: str) -> SeedStatus:
    repository = GardenRepository(db_path)
    try:
        return repository.get_seed(seed_id).status
    finally:
        repository.close()


def test_plant_then_list_and_show(db_path: Path) -> None:
    seed_id = _plant(db_path, "AI logo studio", "--model", "glm-4.7")

    listed = _invoke("seeds", "list", "--db-path", str(db_path))
    shown = _invoke("seeds", "show", "--db-path", str(db_path), seed_id)

    assert "Seeds: 1" in listed.output
    assert f"{seed_id} status=pending plant=sakura" in listed.output
    assert "Status: pending" in shown.output
    assert "Requested model: glm-4.7" in shown.output
    assert "Report: -" in shown.output


def test_plant_blank_idea_fails(db_path: Path) -> None:
    result = _invoke("seeds", "plant", "--db-path", str(db_path), "   ")

    assert result.exit_code != 0
    assert "Idea is required." in result.output


def test_list_filters_by_status(db_path: Path) -> None:
    _plant(db_path, "first")

    result = _invoke("seeds", "list", "--db-path", str(db_path), "--status", "failed")

    assert result.exit_code == 0
    assert "Seeds: 0" in result.output


def test_unknown_seed_is_reported(db_path: Path) -> None:
    for command in ("show", "delete", "regenerate"):
        result = _invoke("seeds", command, "--db-path", str(db_path), "nope")
        assert result.exit_code == 0
        assert "Seed not found: nope" in result.output


def test_delete_removes_seed(db_path: Path) -> None:
    seed_id = _plant(db_path)

    result = _invoke("seeds", "delete", "--db-path", str(db_path), seed_id)

    assert f"Seed deleted: {seed_id}" in result.output
    assert "Seeds: 0" in _invoke("seeds", "list", "--db-path", str(db_path)).output


def test_regenerate_refuses_growing_seed(db_path: Path) -> None:
    seed_id = _plant(db_path)
    repository = GardenRepository(db_path)
    repository.claim_seed(seed_id)
    repository.close()

    result = _invoke("seeds", "regenerate", "--db-path", str(db_path), seed_id)

    assert result.exit_code != 0
    assert "still growing" in result.output


def test_repair_reports_healthy_database(db_path: Path) -> None:
    _plant(db_path)

    result = _invoke("seeds", "repair", "--db-path", str(db_path))

    assert result.exit_code == 0
    assert "Repair summary: ghost_reports=0 orphan_seeds=0" in result.output
    assert "Database is healthy." in result.output


def test_worker_once_grows_one_seed_with_echo_provider(
    db_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TANE_PROVIDER", "echo")
    monkeypatch.setenv("TANE_SEARXNG_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("TANE_SEARCH_TIMEOUT_SECONDS", "1")
    monkeypatch.setenv("TANE_POLL_INTERVAL_SECONDS", "0.05")
    first = _plant(db_path, "first idea")
    second = _plant(db_path, "second idea")

    result = _invoke("worker", "--db-path", str(db_path), "--once")

    assert result.exit_code == 0, result.output
    assert "Nursery summary: dispatched=1 succeeded=1" in result.output
    assert _status(db_path, first) == SeedStatus.COMPLETED
    assert _status(db_path, second) == SeedStatus.PENDING

    regrown = _invoke("seeds", "regenerate", "--db-path", str(db_path), first)
    assert f"Seed re-queued: seed_id={first} status=pending" in regrown.output

    shown = _invoke("seeds", "show", "--db-path", str(db_path), second)
    assert "Status: pending" in shown.output


def test_worker_and_models_close_the_provider(
    db_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TANE_PROVIDER", "echo")
    monkeypatch.setenv("TANE_SEARXNG_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("TANE_POLL_INTERVAL_SECONDS", "0.05")
    built: list[EchoResearchProvider] = []

    def _build(_settings: object) -> EchoResearchProvider:
        built.append(EchoResearchProvider())
        return built[-1]

    monkeypatch.setattr("tane.garden.controllers.build_research_provider", _build)

    assert _invoke("worker", "--db-path", str(db_path), "--once").exit_code == 0
    assert _invoke("models").exit_code == 0

    assert len(built) == 2
    assert all(provider.closed for provider in built)


def test_worker_rejects_invalid_configuration(
    db_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TANE_PROVIDER", "carrier-pigeon")

    result = _invoke("worker", "--db-path", str(db_path), "--once")

    assert result.exit_code != 0
    assert "Unsupported TANE_PROVIDER" in result.output


def test_models_lists_echo_model(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TANE_PROVIDER", "echo")

    result = _invoke("models")

    assert result.exit_code == 0
    assert "Models: 1" in result.output
    assert "echo-researcher" in result.output


def test_models_without_credentials_explains_setup() -> None:
    result = _invoke("models")

    assert result.exit_code == 0
    assert "No models available" in result.output


def test_version_option() -> None:
    result = _invoke("--version")

    assert result.exit_code == 0
    assert "tane" in result.output

from __future__ import annotations

import json
from pathlib import Path

import allure

from tane.provider.credentials import AuthStorage
from tane.provider.registry import ModelRegistry

pytestmark = [
    allure.epic("Provider"),
    allure.feature("Credentials & Model Catalog"),
]


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), "utf-8")
    return path


def test_auth_file_accepts_bare_keys_and_api_key_objects(tmp_path: Path) -> None:
    auth_path = _write_json(
        tmp_path / "auth.json",
        {
            "zai": "zai-key",
            "google": {"type": "api_key", "key": " google-key "},
            "openai": {"type": "oauth", "access": "token"},
            "openrouter": "   ",
        },
    )

    auth = AuthStorage(auth_path)

    assert auth.get_api_key("zai") == "zai-key"
    assert auth.get_api_key("google") == "google-key"
    assert auth.get_api_key("openai") is None
    assert auth.get_api_key("openrouter") is None


def test_runtime_keys_win_and_survive_reload(tmp_path: Path) -> None:
    auth_path = _write_json(tmp_path / "auth.json", {"zai": "from-file"})
    auth = AuthStorage(auth_path)
    auth.set_runtime_api_key("zai", "from-env")

    _write_json(auth_path, {"zai": "rotated"})
    auth.reload()

    assert auth.get_api_key("zai") == "from-env"


def test_unreadable_auth_file_is_ignored(tmp_path: Path) -> None:
    auth_path = tmp_path / "auth.json"
    auth_path.write_text("{not json", "utf-8")

    assert AuthStorage(auth_path).get_api_key("zai") is None
    assert AuthStorage(tmp_path / "missing.json").get_api_key("zai") is None


def test_available_models_follow_credentials(tmp_path: Path) -> None:
    auth = AuthStorage(tmp_path / "auth.json")
    registry = ModelRegistry(auth, tmp_path / "models.json")

    assert registry.get_available() == []
    assert registry.find("glm-4.7-flash").provider == "zai"

    auth.set_runtime_api_key("zai", "key")

    assert {model.id for model in registry.get_available()} == {"glm-4.7-flash", "glm-4.7"}


def test_refresh_picks_up_new_auth_file_entries(tmp_path: Path) -> None:
    auth_path = tmp_path / "auth.json"
    registry = ModelRegistry(AuthStorage(auth_path), tmp_path / "models.json")
    assert registry.get_available() == []

    _write_json(auth_path, {"google": "key"})
    registry.refresh()

    assert [model.id for model in registry.get_available()] == ["gemini-3-flash", "gemini-3-pro"]


def test_models_file_adds_keyless_local_provider(tmp_path: Path) -> None:
    models_path = _write_json(
        tmp_path / "models.json",
        {
            "providers": {
                "local": {
                    "base_url": "http://localhost:11434/v1/",
                    "api_key_required": False,
                    "models": [{"id": "llama3.1", "context_window": 8192}, {"name": "no id"}],
                },
                "broken": {"models": [{"id": "x"}]},
            },
        },
    )
    registry = ModelRegistry(AuthStorage(tmp_path / "auth.json"), models_path)

    available = registry.get_available()

    assert [model.id for model in available] == ["llama3.1"]
    assert available[0].context_window == 8192
    assert registry.endpoint("local").base_url == "http://localhost:11434/v1"
    assert registry.endpoint("broken") is None


def test_models_file_overrides_builtin_provider(tmp_path: Path) -> None:
    models_path = _write_json(
        tmp_path / "models.json",
        {"providers": {"zai": {"base_url": "https://proxy.test/v4", "models": [{"id": "glm-5"}]}}},
    )
    registry = ModelRegistry(AuthStorage(tmp_path / "auth.json"), models_path)

    assert registry.endpoint("zai").base_url == "https://proxy.test/v4"
    assert registry.find("glm-5") is not None
    assert registry.find("glm-4.7-flash") is None

"""API key storage: persisted ``auth.json`` plus runtime overrides."""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class AuthStorage:
    """Per-provider API keys.

    ``auth.json`` maps provider name to either a bare key string or an
    object ``{"type": "api_key", "key": "..."}``. Keys injected with
    :meth:`set_runtime_api_key` (usually from the environment) win over the
    file and survive :meth:`reload`.
    """

    def __init__(self, auth_path: Path) -> None:
        self.auth_path = auth_path
        self._stored: dict[str, str] = {}
        self._runtime: dict[str, str] = {}
        self.reload()

    def reload(self) -> None:
        self._stored = _read_auth_file(self.auth_path)

    def set_runtime_api_key(self, provider: str, key: str) -> None:
        self._runtime[provider] = key

    def get_api_key(self, provider: str) -> str | None:
        return self._runtime.get(provider) or self._stored.get(provider)


def _read_auth_file(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Ignoring unreadable credentials file %s: %s", path, error)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring credentials file %s: expected a JSON object", path)
        return {}

    keys: dict[str, str] = {}
    for provider, entry in payload.items():
        if isinstance(entry, str):
            key = entry
        elif isinstance(entry, dict) and entry.get("type", "api_key") == "api_key":
            key = str(entry.get("key") or "")
        else:
            continue
        if key.strip():
            keys[str(provider)] = key.strip()
    return keys

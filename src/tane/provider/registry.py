"""Model catalog: built-in OpenAI-compatible endpoints merged with ``models.json``."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from tane.provider.base import ModelInfo
from tane.provider.credentials import AuthStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProviderEndpoint:
    """Where and how to reach one provider."""

    name: str
    base_url: str
    models: tuple[ModelInfo, ...]
    api_key_required: bool = True


BUILTIN_ENDPOINTS: tuple[ProviderEndpoint, ...] = (
    ProviderEndpoint(
        name="google",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
        models=(
            ModelInfo("gemini-3-flash", "google", "Gemini 3 Flash", 1_048_576),
            ModelInfo("gemini-3-pro", "google", "Gemini 3 Pro", 1_048_576),
        ),
    ),
    ProviderEndpoint(
        name="openai",
        base_url="https://api.openai.com/v1",
        models=(
            ModelInfo("gpt-4o-mini", "openai", "GPT-4o mini", 128_000),
            ModelInfo("gpt-4o", "openai", "GPT-4o", 128_000),
        ),
    ),
    ProviderEndpoint(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        models=(ModelInfo("openrouter/auto", "openrouter", "OpenRouter Auto", 128_000),),
    ),
    ProviderEndpoint(
        name="zai",
        base_url="https://api.z.ai/api/paas/v4",
        models=(
            ModelInfo("glm-4.7-flash", "zai", "GLM 4.7 Flash", 128_000),
            ModelInfo("glm-4.7", "zai", "GLM 4.7", 200_000),
        ),
    ),
)


class ModelRegistry:
    """Known models and which of them the current credentials can use.

    ``models.json`` uses the shape::

        {"providers": {"local": {"base_url": "http://localhost:11434/v1",
                                 "api_key_required": false,
                                 "models": [{"id": "llama3.1", "context_window": 8192}]}}}

    Entries override built-in providers of the same name.
    """

    def __init__(self, auth: AuthStorage, models_path: Path) -> None:
        self.auth = auth
        self.models_path = models_path
        self._endpoints: dict[str, ProviderEndpoint] = {}
        self.refresh()

    def refresh(self) -> None:
        """Reload credentials and the model catalog from disk."""

        self.auth.reload()
        endpoints = {endpoint.name: endpoint for endpoint in BUILTIN_ENDPOINTS}
        endpoints.update(_read_models_file(self.models_path))
        self._endpoints = endpoints

    def endpoint(self, provider: str) -> ProviderEndpoint | None:
        return self._endpoints.get(provider)

    def all_models(self) -> list[ModelInfo]:
        return [model for endpoint in self._endpoints.values() for model in endpoint.models]

    def get_available(self) -> list[ModelInfo]:
        """Models whose provider is reachable with the configured credentials."""

        available: list[ModelInfo] = []
        for endpoint in self._endpoints.values():
            if endpoint.api_key_required and not self.auth.get_api_key(endpoint.name):
                continue
            available.extend(endpoint.models)
        return available

    def find(self, model_id: str) -> ModelInfo | None:
        for model in self.all_models():
            if model.id == model_id:
                return model
        return None


def _read_models_file(path: Path) -> dict[str, ProviderEndpoint]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Ignoring unreadable model catalog %s: %s", path, error)
        return {}

    providers = payload.get("providers") if isinstance(payload, dict) else None
    if not isinstance(providers, dict):
        logger.warning("Ignoring model catalog %s: missing 'providers' object", path)
        return {}

    endpoints: dict[str, ProviderEndpoint] = {}
    for name, entry in providers.items():
        if not isinstance(entry, dict) or not entry.get("base_url"):
            logger.warning("Skipping provider %r in %s: base_url is required", name, path)
            continue
        models: list[ModelInfo] = []
        for raw_model in entry.get("models") or []:
            if not isinstance(raw_model, dict) or not raw_model.get("id"):
                continue
            models.append(
                ModelInfo(
                    id=str(raw_model["id"]),
                    provider=str(name),
                    name=raw_model.get("name"),
                    context_window=int(raw_model.get("context_window") or 0),
                ),
            )
        endpoints[str(name)] = ProviderEndpoint(
            name=str(name),
            base_url=str(entry["base_url"]).rstrip("/"),
            models=tuple(models),
            api_key_required=bool(entry.get("api_key_required", True)),
        )
    return endpoints

"""Runtime configuration for the nursery, the gardener and the web app."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

SUPPORTED_PROVIDERS = ("openai_compat", "echo")
DEFAULT_FALLBACK_MODELS = ("glm-4.7-flash", "gemini-3-flash")
MIN_STALE_PROCESSING_SECONDS = 1_800

# provider name -> environment variable holding its API key
PROVIDER_KEY_ENV_VARS: dict[str, str] = {
    "zai": "ZAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


@dataclass(slots=True)
class NurserySettings:
    """Background poller settings."""

    enabled: bool = True
    poll_interval_seconds: float = 2.0
    max_concurrent_growers: int = 4
    stale_processing_seconds: int = 3_600
    shutdown_grace_seconds: float = 30.0


@dataclass(slots=True)
class ResearchSettings:
    """Research provider and model selection settings."""

    provider: str = "openai_compat"
    agent_dir: Path = field(default_factory=lambda: Path.home() / ".tane" / "agent")
    default_model: str | None = None
    fallback_model_ids: tuple[str, ...] = DEFAULT_FALLBACK_MODELS
    max_agent_turns: int = 12
    request_timeout_seconds: float = 300.0
    api_keys: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class SearchSettings:
    """Web search tool settings."""

    searxng_url: str = "http://searxng:8080"
    timeout_seconds: float = 5.0
    max_results: int = 5


@dataclass(slots=True)
class WebSettings:
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = 5173
    recent_seeds_limit: int = 50


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path("tane.sqlite")
    sqlite_busy_timeout_ms: int = 5_000
    nursery: NurserySettings = field(default_factory=NurserySettings)
    research: ResearchSettings = field(default_factory=ResearchSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    web: WebSettings = field(default_factory=WebSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        agent_dir = os.getenv("TANE_AGENT_DIR", "").strip()
        max_agent_turns = int(os.getenv("TANE_MAX_AGENT_TURNS", "12"))
        request_timeout_seconds = float(os.getenv("TANE_PROVIDER_TIMEOUT_SECONDS", "300.0"))
        stale_processing_seconds = os.getenv("TANE_STALE_PROCESSING_SECONDS", "").strip()
        return cls(
            db_path=db_path or Path(os.getenv("TANE_DB_PATH", "tane.sqlite")),
            sqlite_busy_timeout_ms=int(os.getenv("TANE_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            nursery=NurserySettings(
                enabled=_env_bool("TANE_RUN_NURSERY", default=True),
                poll_interval_seconds=float(os.getenv("TANE_POLL_INTERVAL_SECONDS", "2.0")),
                max_concurrent_growers=int(os.getenv("TANE_MAX_CONCURRENT_GROWERS", "4")),
                stale_processing_seconds=(
                    int(stale_processing_seconds)
                    if stale_processing_seconds
                    else default_stale_processing_seconds(max_agent_turns, request_timeout_seconds)
                ),
                shutdown_grace_seconds=float(
                    os.getenv("TANE_SHUTDOWN_GRACE_SECONDS", "30.0"),
                ),
            ),
            research=ResearchSettings(
                provider=os.getenv("TANE_PROVIDER", "openai_compat").strip().lower(),
                agent_dir=(
                    Path(agent_dir).expanduser()
                    if agent_dir
                    else Path.home() / ".tane" / "agent"
                ),
                default_model=os.getenv("TANE_DEFAULT_MODEL", "").strip() or None,
                fallback_model_ids=_collect_fallback_models(),
                max_agent_turns=max_agent_turns,
                request_timeout_seconds=request_timeout_seconds,
                api_keys=_collect_provider_keys(),
            ),
            search=SearchSettings(
                searxng_url=(
                    os.getenv("TANE_SEARXNG_URL")
                    or os.getenv("SEARXNG_URL")
                    or "http://searxng:8080"
                ).strip(),
                timeout_seconds=float(os.getenv("TANE_SEARCH_TIMEOUT_SECONDS", "5.0")),
                max_results=int(os.getenv("TANE_SEARCH_MAX_RESULTS", "5")),
            ),
            web=WebSettings(
                host=os.getenv("TANE_WEB_HOST", "127.0.0.1"),
                port=int(os.getenv("TANE_WEB_PORT", "5173")),
                recent_seeds_limit=int(os.getenv("TANE_RECENT_SEEDS_LIMIT", "50")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on values the nursery cannot run with."""

        if self.nursery.poll_interval_seconds <= 0:
            raise ValueError("TANE_POLL_INTERVAL_SECONDS must be > 0.")
        if self.nursery.max_concurrent_growers <= 0:
            raise ValueError("TANE_MAX_CONCURRENT_GROWERS must be a positive integer.")
        if self.nursery.stale_processing_seconds < 0:
            raise ValueError("TANE_STALE_PROCESSING_SECONDS must be >= 0.")
        if self.nursery.shutdown_grace_seconds < 0:
            raise ValueError("TANE_SHUTDOWN_GRACE_SECONDS must be >= 0.")
        if self.research.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported TANE_PROVIDER: {self.research.provider!r}. "
                f"Expected one of: {', '.join(SUPPORTED_PROVIDERS)}.",
            )
        if self.research.max_agent_turns <= 0:
            raise ValueError("TANE_MAX_AGENT_TURNS must be a positive integer.")
        if self.search.timeout_seconds <= 0:
            raise ValueError("TANE_SEARCH_TIMEOUT_SECONDS must be > 0.")
        if self.search.max_results <= 0:
            raise ValueError("TANE_SEARCH_MAX_RESULTS must be a positive integer.")
        _validate_base_url(self.search.searxng_url)


def default_stale_processing_seconds(max_agent_turns: int, request_timeout_seconds: float) -> int:
    """Stale threshold that outlasts the longest run the agent is allowed."""

    return max(MIN_STALE_PROCESSING_SECONDS, math.ceil(max_agent_turns * request_timeout_seconds))


def _collect_provider_keys() -> dict[str, str]:
    keys: dict[str, str] = {}
    for provider, env_var in PROVIDER_KEY_ENV_VARS.items():
        value = os.getenv(env_var, "").strip()
        if value:
            keys[provider] = value
    return keys


def _collect_fallback_models() -> tuple[str, ...]:
    raw = os.getenv("TANE_FALLBACK_MODELS", "").strip()
    if not raw:
        return DEFAULT_FALLBACK_MODELS
    values: list[str] = []
    for part in raw.split(","):
        normalized = part.strip()
        if normalized and normalized not in values:
            values.append(normalized)
    return tuple(values)


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid search backend URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")

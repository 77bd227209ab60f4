"""Construct the configured research provider."""

from __future__ import annotations

from tane.config import ResearchSettings
from tane.provider.base import ResearchProvider
from tane.provider.echo_agent import EchoResearchProvider
from tane.provider.openai_compat import OpenAICompatProvider


def build_research_provider(settings: ResearchSettings) -> ResearchProvider:
    """Provider named by ``TANE_PROVIDER``, created once per process."""

    if settings.provider == "echo":
        return EchoResearchProvider()
    if settings.provider == "openai_compat":
        return OpenAICompatProvider.from_agent_dir(
            settings.agent_dir,
            api_keys=settings.api_keys,
            timeout_seconds=settings.request_timeout_seconds,
            max_turns=settings.max_agent_turns,
        )
    raise ValueError(f"Unsupported research provider: {settings.provider!r}")

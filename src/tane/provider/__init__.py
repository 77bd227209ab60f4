"""Research provider implementations."""

from tane.provider.base import (
    AgentMessage,
    ConfigurationError,
    ContentPart,
    EmptyOutputError,
    GardenerError,
    ModelInfo,
    ProviderError,
    ResearchProvider,
    ResearchSession,
    SessionEvent,
    ToolDefinition,
)
from tane.provider.echo_agent import EchoResearchProvider
from tane.provider.factory import build_research_provider
from tane.provider.openai_compat import OpenAICompatProvider

__all__ = [
    "AgentMessage",
    "ConfigurationError",
    "ContentPart",
    "EchoResearchProvider",
    "EmptyOutputError",
    "GardenerError",
    "ModelInfo",
    "OpenAICompatProvider",
    "ProviderError",
    "ResearchProvider",
    "ResearchSession",
    "SessionEvent",
    "ToolDefinition",
    "build_research_provider",
]

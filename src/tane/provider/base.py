"""Research provider interface: models, agent sessions, messages and tools."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
TOOL_ROLE = "tool"

TEXT_PART = "text"
TOOL_CALL_PART = "tool_call"

TOOL_EXECUTION_START = "tool_execution_start"
TOOL_EXECUTION_END = "tool_execution_end"


class GardenerError(RuntimeError):
    """Base error for a failed research attempt."""


class ProviderError(GardenerError):
    """Research provider call failed."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class EmptyOutputError(ProviderError):
    """Agent finished without a usable assistant answer."""


class ConfigurationError(GardenerError):
    """No usable model or credentials."""


@dataclass(slots=True, frozen=True)
class ModelInfo:
    """One model offered by a provider."""

    id: str
    provider: str
    name: str | None = None
    context_window: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.name or self.id} ({self.provider})"


@dataclass(slots=True)
class ContentPart:
    """Typed fragment of a message body."""

    type: str
    text: str = ""
    tool_call_id: str | None = None
    tool_name: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentMessage:
    """One entry of a session's message history."""

    role: str
    content: str | list[ContentPart]
    tool_call_id: str | None = None

    def tool_calls(self) -> list[ContentPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if part.type == TOOL_CALL_PART]


@dataclass(slots=True)
class SessionEvent:
    """Progress notification emitted while a prompt runs."""

    type: str
    tool_name: str | None = None
    tool_call_id: str | None = None


SessionListener = Callable[[SessionEvent], None]


@dataclass(slots=True)
class ToolDefinition:
    """Callable tool exposed to the agent."""

    name: str
    label: str
    description: str
    parameters: dict[str, Any]
    execute: Callable[[dict[str, Any]], str]

    def to_function_schema(self) -> dict[str, Any]:
        """OpenAI-style function tool schema."""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ResearchSession(Protocol):
    """Ephemeral agent session bound to one model and a fixed tool set."""

    messages: list[AgentMessage]

    def prompt(self, text: str) -> None:
        """Run the prompt to completion, appending to ``messages``."""

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a progress listener; returns an unsubscribe callable."""


class ResearchProvider(Protocol):
    """Protocol implemented by research providers."""

    def refresh(self) -> None:
        """Reload credentials and the model catalog."""

    def list_available_models(self) -> list[ModelInfo]:
        """Models usable with the credentials currently configured."""

    def find_model(self, model_id: str) -> ModelInfo | None:
        """Look a model up in the whole catalog, usable or not."""

    def create_session(
        self,
        model: ModelInfo,
        tools: list[ToolDefinition],
    ) -> ResearchSession:
        """Open a research session."""

    def close(self) -> None:
        """Release network clients held by the provider."""


class EventEmitter:
    """Listener bookkeeping shared by session implementations."""

    def __init__(self) -> None:
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

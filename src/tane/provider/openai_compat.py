"""Research provider for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from tane.provider.base import (
    ASSISTANT_ROLE,
    TEXT_PART,
    TOOL_CALL_PART,
    TOOL_EXECUTION_END,
    TOOL_EXECUTION_START,
    TOOL_ROLE,
    USER_ROLE,
    AgentMessage,
    ConfigurationError,
    ContentPart,
    EventEmitter,
    ModelInfo,
    ProviderError,
    SessionEvent,
    SessionListener,
    ToolDefinition,
)
from tane.provider.credentials import AuthStorage
from tane.provider.registry import ModelRegistry, ProviderEndpoint

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_MAX_TURNS = 12
_TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


class OpenAICompatProvider:
    """Agent sessions over any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        *,
        registry: ModelRegistry,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_turns: int = DEFAULT_MAX_TURNS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.registry = registry
        self.max_turns = max_turns
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )

    @classmethod
    def from_agent_dir(
        cls,
        agent_dir: Path,
        *,
        api_keys: dict[str, str] | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> OpenAICompatProvider:
        """Build from ``auth.json``/``models.json`` with env keys layered on top."""

        auth = AuthStorage(agent_dir / "auth.json")
        for provider, key in (api_keys or {}).items():
            auth.set_runtime_api_key(provider, key)
        registry = ModelRegistry(auth, agent_dir / "models.json")
        return cls(registry=registry, timeout_seconds=timeout_seconds, max_turns=max_turns)

    def refresh(self) -> None:
        self.registry.refresh()

    def list_available_models(self) -> list[ModelInfo]:
        return self.registry.get_available()

    def find_model(self, model_id: str) -> ModelInfo | None:
        return self.registry.find(model_id)

    def create_session(
        self,
        model: ModelInfo,
        tools: list[ToolDefinition],
    ) -> OpenAICompatSession:
        endpoint = self.registry.endpoint(model.provider)
        if endpoint is None:
            raise ConfigurationError(f"Unknown provider for model {model.id}: {model.provider}")
        api_key = self.registry.auth.get_api_key(model.provider)
        if endpoint.api_key_required and not api_key:
            raise ConfigurationError(
                f"No API key configured for provider {model.provider!r}. "
                "Add it to auth.json or set the provider's API key env var.",
            )
        return OpenAICompatSession(
            client=self._client,
            endpoint=endpoint,
            api_key=api_key,
            model=model,
            tools=tools,
            max_turns=self.max_turns,
        )

    def close(self) -> None:
        self._client.close()


class OpenAICompatSession:
    """Function-calling loop: prompt, run requested tools, repeat until a plain answer."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: httpx.Client,
        endpoint: ProviderEndpoint,
        api_key: str | None,
        model: ModelInfo,
        tools: list[ToolDefinition],
        max_turns: int,
    ) -> None:
        self.model = model
        self.messages: list[AgentMessage] = []
        self._client = client
        self._endpoint = endpoint
        self._api_key = api_key
        self._tools = {tool.name: tool for tool in tools}
        self._max_turns = max_turns
        self._events = EventEmitter()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def prompt(self, text: str) -> None:
        self.messages.append(AgentMessage(role=USER_ROLE, content=text))
        for _ in range(self._max_turns):
            reply = self._complete()
            self.messages.append(reply)
            calls = reply.tool_calls()
            if not calls:
                return
            for call in calls:
                self.messages.append(self._run_tool(call))
        logger.warning(
            "Agent session for %s stopped after %d turns without a final answer",
            self.model.id,
            self._max_turns,
        )

    def _complete(self) -> AgentMessage:
        payload: dict[str, Any] = {
            "model": self.model.id,
            "messages": [_to_wire_message(message) for message in self.messages],
        }
        if self._tools:
            payload["tools"] = [tool.to_function_schema() for tool in self._tools.values()]

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        url = f"{self._endpoint.base_url}/chat/completions"
        try:
            response = self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as error:
            raise ProviderError(
                f"{self.model.provider} request timed out: {error}",
                transient=True,
            ) from error
        except httpx.HTTPError as error:
            raise ProviderError(
                f"{self.model.provider} network error: {error}",
                transient=True,
            ) from error

        if not response.is_success:
            raise ProviderError(
                f"{self.model.provider} returned HTTP {response.status_code}: "
                f"{response.text[:500]}",
                transient=response.status_code in _TRANSIENT_STATUS_CODES,
            )
        try:
            body = response.json()
            message = body["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as error:
            raise ProviderError(
                f"{self.model.provider} returned a malformed completion: {response.text[:500]}",
            ) from error

        logger.debug("chat completion model=%s usage=%s", self.model.id, body.get("usage"))
        return _from_wire_message(message)

    def _run_tool(self, call: ContentPart) -> AgentMessage:
        name = call.tool_name or ""
        self._events.emit(
            SessionEvent(type=TOOL_EXECUTION_START, tool_name=name, tool_call_id=call.tool_call_id),
        )
        tool = self._tools.get(name)
        if tool is None:
            output = json.dumps({"error": f"Unknown tool: {name}"})
        else:
            output = tool.execute(call.arguments)
        self._events.emit(
            SessionEvent(type=TOOL_EXECUTION_END, tool_name=name, tool_call_id=call.tool_call_id),
        )
        return AgentMessage(role=TOOL_ROLE, content=output, tool_call_id=call.tool_call_id)


def _to_wire_message(message: AgentMessage) -> dict[str, Any]:
    if message.role == TOOL_ROLE:
        return {
            "role": TOOL_ROLE,
            "tool_call_id": message.tool_call_id,
            "content": message.content if isinstance(message.content, str) else "",
        }
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}

    text = "".join(part.text for part in message.content if part.type == TEXT_PART)
    wire: dict[str, Any] = {"role": message.role, "content": text or None}
    calls = message.tool_calls()
    if calls:
        wire["tool_calls"] = [
            {
                "id": call.tool_call_id,
                "type": "function",
                "function": {
                    "name": call.tool_name,
                    "arguments": json.dumps(call.arguments, ensure_ascii=False),
                },
            }
            for call in calls
        ]
    return wire


def _from_wire_message(message: dict[str, Any]) -> AgentMessage:
    parts: list[ContentPart] = []
    content = message.get("content")
    if isinstance(content, str) and content:
        parts.append(ContentPart(type=TEXT_PART, text=content))
    elif isinstance(content, list):
        for fragment in content:
            if isinstance(fragment, dict) and fragment.get("type") == TEXT_PART:
                parts.append(ContentPart(type=TEXT_PART, text=str(fragment.get("text") or "")))

    for raw_call in message.get("tool_calls") or []:
        function = raw_call.get("function") or {}
        parts.append(
            ContentPart(
                type=TOOL_CALL_PART,
                tool_call_id=raw_call.get("id"),
                tool_name=function.get("name"),
                arguments=_parse_arguments(function.get("arguments")),
            ),
        )
    return AgentMessage(role=message.get("role") or ASSISTANT_ROLE, content=parts)


def _parse_arguments(raw: object) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON: %s", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}

"""Deterministic offline research provider for local development and tests."""

from __future__ import annotations

import json
import re
from collections.abc import Callable

from tane.provider.base import (
    ASSISTANT_ROLE,
    TEXT_PART,
    TOOL_CALL_PART,
    TOOL_EXECUTION_END,
    TOOL_EXECUTION_START,
    TOOL_ROLE,
    USER_ROLE,
    AgentMessage,
    ContentPart,
    EventEmitter,
    ModelInfo,
    SessionEvent,
    SessionListener,
    ToolDefinition,
)

ECHO_MODEL = ModelInfo(id="echo-researcher", provider="echo", name="Echo Researcher")

_IDEA_PATTERN = re.compile(r'Startup Idea: "(?P<idea>.*?)"\s*$', re.MULTILINE | re.DOTALL)


class EchoResearchProvider:
    """Provider that never leaves the machine.

    Each prompt calls every tool once with a query built from the idea and
    answers with a fixed-shape markdown report that quotes the idea and the
    tool output.
    """

    def __init__(self, models: list[ModelInfo] | None = None) -> None:
        self._models = list(models) if models is not None else [ECHO_MODEL]
        self.sessions: list[EchoResearchSession] = []
        self.closed = False

    def refresh(self) -> None:
        return None

    def list_available_models(self) -> list[ModelInfo]:
        return list(self._models)

    def find_model(self, model_id: str) -> ModelInfo | None:
        return next((model for model in self._models if model.id == model_id), None)

    def create_session(
        self,
        model: ModelInfo,
        tools: list[ToolDefinition],
    ) -> EchoResearchSession:
        session = EchoResearchSession(model=model, tools=tools)
        self.sessions.append(session)
        return session

    def close(self) -> None:
        self.closed = True


class EchoResearchSession:
    """Scripted agent session."""

    def __init__(self, *, model: ModelInfo, tools: list[ToolDefinition]) -> None:
        self.model = model
        self.messages: list[AgentMessage] = []
        self._tools = tools
        self._events = EventEmitter()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def prompt(self, text: str) -> None:
        self.messages.append(AgentMessage(role=USER_ROLE, content=text))
        idea = _extract_idea(text)

        findings: list[dict[str, str]] = []
        for index, tool in enumerate(self._tools, start=1):
            call_id = f"echo-call-{index}"
            arguments = {"query": f"{idea} competitors market"}
            self.messages.append(
                AgentMessage(
                    role=ASSISTANT_ROLE,
                    content=[
                        ContentPart(
                            type=TOOL_CALL_PART,
                            tool_call_id=call_id,
                            tool_name=tool.name,
                            arguments=arguments,
                        ),
                    ],
                ),
            )
            self._events.emit(
                SessionEvent(type=TOOL_EXECUTION_START, tool_name=tool.name, tool_call_id=call_id),
            )
            output = tool.execute(arguments)
            self._events.emit(
                SessionEvent(type=TOOL_EXECUTION_END, tool_name=tool.name, tool_call_id=call_id),
            )
            self.messages.append(AgentMessage(role=TOOL_ROLE, content=output, tool_call_id=call_id))
            findings.extend(_parse_findings(output))

        self.messages.append(
            AgentMessage(
                role=ASSISTANT_ROLE,
                content=[ContentPart(type=TEXT_PART, text=_render_report(idea, findings))],
            ),
        )


def _extract_idea(prompt: str) -> str:
    match = _IDEA_PATTERN.search(prompt)
    if match is None:
        return prompt.strip().splitlines()[0] if prompt.strip() else "Untitled idea"
    return match.group("idea").strip()


def _parse_findings(output: str) -> list[dict[str, str]]:
    try:
        parsed = json.loads(output)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [
        {"title": str(item.get("title") or ""), "snippet": str(item.get("snippet") or "")}
        for item in parsed
        if isinstance(item, dict)
    ]


def _render_report(idea: str, findings: list[dict[str, str]]) -> str:
    if findings:
        landscape = "\n".join(f"- **{item['title']}**: {item['snippet']}" for item in findings)
    else:
        landscape = "- No comparable products surfaced in search."
    return (
        f"# Growth Report: {idea}\n"
        "\n"
        "## Executive Summary\n"
        f'"{idea}" targets a real need; validate demand with a narrow pilot first.\n'
        "\n"
        "## Market Analysis\n"
        f"Demand for {idea} follows broader on-demand service adoption.\n"
        "\n"
        "## Competitive Landscape\n"
        f"{landscape}\n"
        "\n"
        "## Strategic Advice\n"
        "Ship an MVP to one city, measure retention, then expand.\n"
    )

"""Pull the final report text out of an agent session's message history."""

from __future__ import annotations

from tane.provider.base import ASSISTANT_ROLE, TEXT_PART, AgentMessage, EmptyOutputError


def last_assistant_message(messages: list[AgentMessage]) -> AgentMessage:
    """Most recent assistant-authored message."""

    for message in reversed(messages):
        if message.role == ASSISTANT_ROLE:
            return message
    raise EmptyOutputError("Agent did not return a final report.")


def message_text(message: AgentMessage) -> str:
    """Text of a message; typed content keeps only ``text`` parts, in order."""

    if isinstance(message.content, str):
        return message.content
    return "".join(part.text for part in message.content if part.type == TEXT_PART)


def extract_report_text(messages: list[AgentMessage]) -> str:
    """Report markdown from the last assistant message; raises if there is none."""

    text = message_text(last_assistant_message(messages))
    if not text.strip():
        raise EmptyOutputError("Agent finished but produced no text content.")
    return text

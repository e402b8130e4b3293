"""Domain models for the completion transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool offered to the model: name, description and JSON schema."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class CompletionRequest:
    """A unified request payload for one completion stream."""

    model: str
    messages: list[dict[str, Any]]
    system_instruction: str | None = None
    tools: tuple[ToolDescriptor, ...] = ()
    temperature: float | None = None


@dataclass(frozen=True)
class TextDelta:
    """A fragment of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model. ``arguments`` is raw JSON."""

    name: str
    arguments: str = "{}"
    id: str | None = field(default=None, compare=False)


CompletionEvent = TextDelta | ToolCall

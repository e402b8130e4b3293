"""Typed, immutable records for durable and view state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from finchat._ids import new_id


class Role(str, Enum):
    """Author of a durable message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    FUNCTION = "function"
    DATA = "data"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """One entry in the durable message log.

    ``content`` holds prose for most roles; for ``function`` messages it is the
    JSON-serialized tool result and ``name`` identifies the tool.
    """

    id: str
    role: Role
    content: str
    name: str | None = None

    def __post_init__(self) -> None:
        """Coerce wire roles and reject names on non-function messages."""
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if self.name is not None and self.role is not Role.FUNCTION:
            raise ValueError(
                f"Only function messages carry a name, got role={self.role.value!r}"
            )

    @classmethod
    def create(cls, role: Role | str, content: str, name: str | None = None) -> Message:
        """Create a message with a fresh id."""
        return cls(id=new_id(), role=Role(role), content=content, name=name)

    def to_prompt(self) -> dict[str, Any]:
        """Project to the ``{role, content, name}`` shape sent to the model."""
        entry: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name is not None:
            entry["name"] = self.name
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
        }
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message from its persisted form."""
        name = data.get("name")
        return cls(
            id=str(data["id"]),
            role=Role(data["role"]),
            content=str(data.get("content", "")),
            name=str(name) if name is not None else None,
        )


@dataclass(frozen=True)
class Conversation:
    """Immutable snapshot of one conversation's durable state.

    ``version`` counts commits and is used to detect stale snapshots when
    two writers race on the same conversation.
    """

    conversation_id: str
    messages: tuple[Message, ...] = ()
    version: int = 0

    @classmethod
    def start(cls, conversation_id: str | None = None) -> Conversation:
        """Create an empty conversation with a fresh id."""
        return cls(conversation_id=conversation_id or new_id())

    def append(self, *messages: Message) -> Conversation:
        """Return a copy with *messages* appended."""
        return replace(self, messages=(*self.messages, *messages))

    def replace_message(self, message: Message) -> Conversation:
        """Return a copy where the message sharing ``message.id`` is swapped."""
        if not any(m.id == message.id for m in self.messages):
            raise KeyError(message.id)
        return replace(
            self,
            messages=tuple(message if m.id == message.id else m for m in self.messages),
        )

    def last_function_message(self, name: str | None = None) -> Message | None:
        """Return the most recent function message, optionally by tool name."""
        for m in reversed(self.messages):
            if m.role is Role.FUNCTION and (name is None or m.name == name):
                return m
        return None

    def prompt_history(self) -> list[dict[str, Any]]:
        """Project every message (system included) for a completion request."""
        return [m.to_prompt() for m in self.messages]


@dataclass(frozen=True)
class ViewItem:
    """One render-ready entry in the view feed.

    ``node`` is opaque to finchat: a static node or a live view stream.
    """

    id: str
    node: Any = field(default=None)

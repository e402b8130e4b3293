"""Test helpers (small, reusable doubles and builders).

Keep this file tiny and purpose-built: it exists so suites do not grow their
own one-off providers and stores.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any

from finchat.errors import PersistenceError
from finchat.providers.models import TextDelta, ToolCall
from finchat.types import Conversation, Message, Role
from tests.conftest import ScriptedProvider

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.providers.models import CompletionEvent, CompletionRequest
    from finchat.store import Chat


def text(*deltas: str) -> list[Any]:
    """Script one completion that streams *deltas*."""
    return [TextDelta(d) for d in deltas]


def tool(name: str, **arguments: Any) -> list[Any]:
    """Script one completion that calls tool *name*."""
    return [ToolCall(name=name, arguments=json.dumps(arguments))]


def conversation(*pairs: tuple[str, str], conversation_id: str = "chat-1") -> Conversation:
    """Build a conversation from ``(role, content)`` pairs."""
    return Conversation(
        conversation_id=conversation_id,
        messages=tuple(Message.create(Role(role), content) for role, content in pairs),
    )


@dataclass
class GateProvider(ScriptedProvider):
    """ScriptedProvider that holds every stream until ``release`` is set.

    The first scripted event is delivered immediately so the engine can
    return its view item; the rest wait on the gate.
    """

    release: asyncio.Event = field(default_factory=asyncio.Event)

    async def open_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[CompletionEvent]:
        self.requests.append(request)
        events = self.script.pop(0) if self.script else [TextDelta("ok")]
        assert isinstance(events, list)
        return self._gated(events)

    async def _gated(self, events: list[Any]) -> AsyncIterator[CompletionEvent]:
        for i, event in enumerate(events):
            if i > 0:
                await self.release.wait()
            yield event


@dataclass
class FailingChatStore:
    """Chat store whose saves always fail."""

    exc: BaseException = field(default_factory=lambda: OSError("disk full"))
    attempts: int = 0

    async def save(self, chat: Chat) -> None:
        del chat
        self.attempts += 1
        raise self.exc

    async def load(self, chat_id: str) -> Chat | None:
        raise PersistenceError(f"cannot load {chat_id}")


def function_payload(message: Message) -> Any:
    assert message.role is Role.FUNCTION
    return json.loads(message.content)

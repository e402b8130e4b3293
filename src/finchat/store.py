"""Chat persistence: the `ChatStore` protocol and two implementations.

`InMemoryChatStore` keeps chats in a dict (tests, the CLI's default).
`JSONChatStore` persists every chat into a single JSON file mapping
chat id -> record, writing through a temp file and rename for atomicity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from finchat.errors import PersistenceError
from finchat.types import Conversation, Message

if TYPE_CHECKING:
    import os

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 100


@dataclass(frozen=True)
class Chat:
    """A persisted conversation plus the metadata the chat list needs."""

    id: str
    title: str
    user_id: str
    created_at: datetime
    path: str
    messages: tuple[Message, ...] = field(default=())

    @classmethod
    def from_conversation(
        cls,
        conversation: Conversation,
        *,
        user_id: str,
        created_at: datetime | None = None,
    ) -> Chat:
        """Derive title and path from *conversation*."""
        messages = conversation.messages
        title = messages[0].content[:TITLE_MAX_CHARS] if messages else ""
        return cls(
            id=conversation.conversation_id,
            title=title,
            user_id=user_id,
            created_at=created_at or datetime.now(timezone.utc),
            path=chat_path(conversation.conversation_id),
            messages=messages,
        )

    def conversation(self) -> Conversation:
        """Return the durable state held by this chat."""
        return Conversation(conversation_id=self.id, messages=self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "userId": self.user_id,
            "createdAt": self.created_at.isoformat(),
            "path": self.path,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chat:
        messages_raw = data.get("messages", [])
        messages = tuple(
            Message.from_dict(m) for m in messages_raw if isinstance(m, dict)
        )
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            user_id=str(data.get("userId", "")),
            created_at=datetime.fromisoformat(str(data["createdAt"])),
            path=str(data.get("path") or chat_path(str(data["id"]))),
            messages=messages,
        )


def chat_path(chat_id: str) -> str:
    """Return the route a chat is served under."""
    return f"/chat/{chat_id}"


@runtime_checkable
class ChatStore(Protocol):
    """Protocol for saving and loading chats."""

    async def save(self, chat: Chat) -> None:
        """Insert or replace *chat*."""
        ...

    async def load(self, chat_id: str) -> Chat | None:
        """Return the chat with *chat_id*, or None if unknown."""
        ...


class InMemoryChatStore:
    """Dict-backed store; contents vanish with the process."""

    def __init__(self) -> None:
        self._chats: dict[str, Chat] = {}
        self.saves = 0

    async def save(self, chat: Chat) -> None:
        self._chats[chat.id] = chat
        self.saves += 1

    async def load(self, chat_id: str) -> Chat | None:
        return self._chats.get(chat_id)


class JSONChatStore:
    """Single-file JSON store (chat id -> chat record)."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Initialize the store pointing at a JSON file path."""
        self._path = Path(path)

    async def save(self, chat: Chat) -> None:
        data = self._read_all()
        data[chat.id] = chat.to_dict()
        self._write_all(data)
        logger.debug("Saved chat %s (%d messages)", chat.id, len(chat.messages))

    async def load(self, chat_id: str) -> Chat | None:
        entry = self._read_all().get(chat_id)
        if not isinstance(entry, dict):
            return None
        try:
            return Chat.from_dict(entry)
        except (KeyError, ValueError) as e:
            raise PersistenceError(
                f"Stored chat {chat_id!r} is malformed",
                hint=f"Inspect or remove the entry in {self._path}.",
            ) from e

    def _read_all(self) -> dict[str, Any]:
        """Read and deserialize the entire JSON file into a mapping."""
        if not self._path.exists():
            return {}
        try:
            result = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read chat store {self._path}") from e
        return result if isinstance(result, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        """Persist data atomically via temp file rename."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise PersistenceError(f"Could not write chat store {self._path}") from e

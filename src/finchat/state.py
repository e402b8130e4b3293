"""Durable state: committed conversation log and its single commit path.

Writers never touch the committed `Conversation` directly. Each writer (one
dispatch turn, or one confirmation action) takes a `MutableAIState` handle,
stages full replacements with ``update`` and commits exactly once with
``done``. Commits for a conversation are serialized by a lock; a handle whose
base snapshot went stale in the meantime is merged onto the latest state
instead of overwriting it.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
import logging
from typing import TYPE_CHECKING

from finchat.errors import IllegalStateError, PersistenceError
from finchat.store import Chat

if TYPE_CHECKING:
    from finchat.auth import SessionProvider
    from finchat.store import ChatStore
    from finchat.types import Conversation, Message

logger = logging.getLogger(__name__)


def _check_append_only(base: tuple[Message, ...], final: tuple[Message, ...]) -> None:
    if [m.id for m in final[: len(base)]] != [m.id for m in base]:
        raise IllegalStateError(
            "Commit would drop or reorder existing messages",
            hint="The message log is append-only; only rewrite content by id.",
        )


def merge_messages(
    base: tuple[Message, ...],
    final: tuple[Message, ...],
    current: tuple[Message, ...],
) -> tuple[Message, ...]:
    """Three-way merge of a writer's log onto a log that moved on.

    *base* is what the writer read, *final* what it wants to commit, and
    *current* the committed log. Messages the writer rewrote (same id,
    new content) are swapped in place; messages it added are appended after
    everything already committed.

    Raises:
        IllegalStateError: *final* drops or reorders messages from *base*.
    """
    _check_append_only(base, final)
    rewritten = {m.id: m for m, old in zip(final, base) if m != old}
    added = final[len(base) :]
    merged = tuple(rewritten.get(m.id, m) for m in current)
    current_ids = {m.id for m in current}
    return merged + tuple(m for m in added if m.id not in current_ids)


class DurableStateStore:
    """Authoritative state for one conversation."""

    def __init__(
        self,
        conversation: Conversation,
        *,
        chat_store: ChatStore | None = None,
        sessions: SessionProvider | None = None,
    ) -> None:
        self._committed = conversation
        self._chat_store = chat_store
        self._sessions = sessions
        self._lock = asyncio.Lock()

    @property
    def conversation_id(self) -> str:
        return self._committed.conversation_id

    def get(self) -> Conversation:
        """Return the latest committed state."""
        return self._committed

    def handle(self) -> MutableAIState:
        """Open a writer handle based on the latest committed state."""
        return MutableAIState(self, self._committed)

    async def commit(self, final: Conversation, *, base: Conversation) -> Conversation:
        """Replace committed state with *final* and persist it.

        When another commit landed after *base* was read, *final* is merged
        onto the newer state rather than replacing it.
        """
        if final.conversation_id != self._committed.conversation_id:
            raise IllegalStateError(
                f"Cannot commit conversation {final.conversation_id!r} "
                f"into {self._committed.conversation_id!r}"
            )
        async with self._lock:
            current = self._committed
            if current.version == base.version:
                _check_append_only(base.messages, final.messages)
                messages = final.messages
            else:
                logger.debug(
                    "Merging stale commit for %s (base v%d, current v%d)",
                    current.conversation_id,
                    base.version,
                    current.version,
                )
                messages = merge_messages(base.messages, final.messages, current.messages)
            committed = replace(current, messages=messages, version=current.version + 1)
            self._committed = committed
            logger.debug(
                "Committed %s v%d (%d messages)",
                committed.conversation_id,
                committed.version,
                len(committed.messages),
            )
            await self._persist(committed)
            return committed

    async def _persist(self, conversation: Conversation) -> None:
        if self._chat_store is None or self._sessions is None:
            return
        session = await self._sessions.current_session()
        if session is None:
            logger.debug("No session; skipping persistence of %s", conversation.conversation_id)
            return
        chat = Chat.from_conversation(conversation, user_id=session.user_id)
        try:
            await self._chat_store.save(chat)
        except asyncio.CancelledError:
            raise
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Saving chat {chat.id!r} failed", hint="Check the chat store backend."
            ) from e


class MutableAIState:
    """Single-use writer handle over a `DurableStateStore`."""

    def __init__(self, store: DurableStateStore, base: Conversation) -> None:
        self._store = store
        self._base = base
        self._staged = base
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self) -> Conversation:
        """Return the staged state (the base snapshot until updated)."""
        return self._staged

    def update(self, patch: Conversation) -> None:
        """Stage *patch* as a full replacement without committing it."""
        self._ensure_open("update")
        self._staged = patch

    async def done(self, final: Conversation | None = None) -> Conversation:
        """Commit *final* (or the staged state) and close the handle."""
        self._ensure_open("done")
        self._closed = True
        target = final if final is not None else self._staged
        self._staged = target
        return await self._store.commit(target, base=self._base)

    def _ensure_open(self, op: str) -> None:
        if self._closed:
            raise IllegalStateError(
                f"Cannot {op}() a state handle that was already committed",
                hint="Open a new handle for each turn or action.",
            )

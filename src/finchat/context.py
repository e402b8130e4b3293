"""Per-conversation context: durable state, view feed and spawned tasks.

A `ChatContext` lives from session start to session end. Every operation
that reads or writes a conversation receives it explicitly. Background work
(the tail of a dispatch turn, purchase confirmations) is started through
``spawn`` so it is tracked, its failures are logged, and ``drain``/``aclose``
can wait for it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from types import TracebackType

    from finchat.state import DurableStateStore, MutableAIState
    from finchat.types import Conversation, ViewItem

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatContext:
    """Everything scoped to one conversation id."""

    def __init__(
        self, state: DurableStateStore, *, ui_state: list[ViewItem] | None = None
    ) -> None:
        self.state = state
        #: The caller's view feed; items are appended, never edited.
        self.ui_state: list[ViewItem] = list(ui_state or ())
        self.turn_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._failures: list[BaseException] = []
        self._closed = False

    @property
    def conversation_id(self) -> str:
        return self.state.conversation_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def ai_state(self) -> Conversation:
        """Return the latest committed conversation."""
        return self.state.get()

    def mutable_ai_state(self) -> MutableAIState:
        """Open a single-use writer handle on the durable state."""
        return self.state.handle()

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
        """Run *coro* in the background, tracked by this context."""
        if self._closed:
            coro.close()
            raise RuntimeError("Cannot spawn tasks on a closed ChatContext")
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s for %s failed",
                task.get_name(),
                self.conversation_id,
                exc_info=exc,
            )
            self._failures.append(exc)

    async def drain(self) -> None:
        """Wait until no spawned task is running.

        Re-raises the first failure recorded since the last drain.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._failures:
            failures, self._failures = self._failures, []
            raise failures[0]

    async def aclose(self) -> None:
        """End the session after letting in-flight work finish."""
        if self._closed:
            return
        self._closed = True
        await self.drain()

    async def __aenter__(self) -> ChatContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

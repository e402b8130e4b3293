"""Single-writer incremental values consumed by the rendering layer.

A view stream starts ``open`` and accepts ``update`` calls until ``done`` (or
``error``) moves it to ``closed``. Any number of readers may observe it:
``value`` is always the latest committed value, ``watch()`` yields each new
value as it lands, and ``wait_closed()`` resolves with the final one.

Streams are plain in-memory objects driven by the asyncio loop they are read
from; writers never block.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from finchat.errors import IllegalStateError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

T = TypeVar("T")

_UNSET: Any = object()


class StreamState(str, Enum):
    """Lifecycle of a view stream. Transitions are one-way."""

    OPEN = "open"
    CLOSED = "closed"


class ViewStream(Generic[T]):
    """An incrementally updatable render value.

    ``update`` replaces the current value; subclasses can merge instead.
    """

    def __init__(self, initial: T | None = None) -> None:
        """Create an open stream holding *initial*."""
        self._value: T | None = initial
        self._state = StreamState.OPEN
        self._error: BaseException | None = None
        self._revision = 0
        self._fragments: list[Any] = []
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def value(self) -> T | None:
        """Latest committed value."""
        return self._value

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is StreamState.CLOSED

    @property
    def fragments(self) -> tuple[Any, ...]:
        """Every fragment passed to ``update``/``done``, in emission order."""
        return tuple(self._fragments)

    def _merge(self, current: T | None, fragment: Any) -> T:
        return fragment

    def update(self, fragment: Any) -> None:
        """Merge *fragment* into the current value.

        Raises:
            IllegalStateError: The stream is already closed.
        """
        self._ensure_open("update")
        self._fragments.append(fragment)
        self._value = self._merge(self._value, fragment)
        self._bump()

    def done(self, final_value: Any = _UNSET) -> None:
        """Close the stream, optionally replacing the value one last time.

        Raises:
            IllegalStateError: The stream is already closed.
        """
        self._ensure_open("done")
        if final_value is not _UNSET:
            self._fragments.append(final_value)
            self._value = final_value
        self._state = StreamState.CLOSED
        self._bump()

    def error(self, exc: BaseException) -> None:
        """Close the stream with a failure that readers will re-raise."""
        self._ensure_open("error")
        self._error = exc
        self._state = StreamState.CLOSED
        self._bump()

    async def wait_closed(self) -> T | None:
        """Wait for the stream to close and return its final value."""
        while not self.closed:
            await self._next_change()
        if self._error is not None:
            raise self._error
        return self._value

    async def watch(self) -> AsyncIterator[T | None]:
        """Yield the current value, then each new value until the stream closes.

        Readers that fall behind see the latest value rather than every
        intermediate one.
        """
        seen = -1
        while True:
            if self._error is not None:
                raise self._error
            if self._revision != seen:
                seen = self._revision
                yield self._value
                continue
            if self.closed:
                return
            await self._next_change()

    def _ensure_open(self, op: str) -> None:
        if self._state is StreamState.CLOSED:
            raise IllegalStateError(
                f"Cannot {op}() a closed {type(self).__name__}",
                hint="Create a new stream instead of writing after done().",
            )

    def _bump(self) -> None:
        self._revision += 1
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)

    async def _next_change(self) -> None:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state.value}, value={self._value!r})"


class TextStream(ViewStream[str]):
    """A text value built from appended deltas."""

    def __init__(self, initial: str = "") -> None:
        super().__init__(initial)

    def _merge(self, current: str | None, fragment: Any) -> str:
        return (current or "") + str(fragment)

"""Provider protocol: minimal interface for completion providers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.providers.models import CompletionEvent, CompletionRequest


@runtime_checkable
class CompletionProvider(Protocol):
    """Open a completion stream of text deltas or tool calls.

    Awaiting ``open_stream`` issues the request; the returned iterator then
    yields `TextDelta` events and, when the model chose a tool, `ToolCall`
    events after the last delta. Exhaustion is the completion signal.
    """

    async def open_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[CompletionEvent]:
        """Issue *request* and return its event stream."""
        ...

    async def aclose(self) -> None:
        """Release client resources."""
        ...

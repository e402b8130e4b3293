"""Mock provider for offline use and demos."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

from finchat.providers.models import TextDelta, ToolCall

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.providers.models import CompletionEvent, CompletionRequest

_QUOTES: dict[str, tuple[float, float]] = {
    "AAPL": (189.84, 1.23),
    "DOGE": (0.12, -0.01),
    "MSFT": (415.5, 3.2),
    "NVDA": (121.44, -2.1),
}

_BUY_RE = re.compile(r"\b(?:buy|purchase)\s+(?:(\d+)\s+)?(?:shares of\s+)?\$?([A-Za-z]{2,5})\b", re.I)
_PRICE_RE = re.compile(r"\bprice\b.*?\$?\b([A-Z]{2,5})\b")


class MockProvider:
    """Deterministic offline provider.

    Routes a few recognizable requests to tools so every handler can be
    exercised without network access; everything else is echoed back as
    word-by-word text deltas.
    """

    async def open_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[CompletionEvent]:
        """Return the scripted response for the latest user message."""
        prompt = next(
            (str(m.get("content", "")) for m in reversed(request.messages) if m.get("role") == "user"),
            "",
        )
        offered = {t.name for t in request.tools}
        call = _route(prompt)
        if call is not None and call.name in offered:
            return _single(call)
        return _words(f"echo: {prompt[:100]}")

    async def aclose(self) -> None:
        return None


def _route(prompt: str) -> ToolCall | None:
    if m := _BUY_RE.search(prompt):
        symbol = m.group(2).upper()
        price, _ = _QUOTES.get(symbol, (100.0, 0.0))
        args: dict[str, object] = {"symbol": symbol, "price": price}
        if m.group(1):
            args["numberOfShares"] = int(m.group(1))
        return ToolCall(name="showStockPurchase", arguments=json.dumps(args))
    if m := _PRICE_RE.search(prompt):
        symbol = m.group(1)
        price, delta = _QUOTES.get(symbol, (100.0, 0.0))
        return ToolCall(
            name="showStockPrice",
            arguments=json.dumps({"symbol": symbol, "price": price, "delta": delta}),
        )
    lowered = prompt.lower()
    if "trending" in lowered:
        stocks = [
            {"symbol": s, "price": p, "delta": d} for s, (p, d) in list(_QUOTES.items())[:3]
        ]
        return ToolCall(name="listStocks", arguments=json.dumps({"stocks": stocks}))
    if "events" in lowered:
        events = [
            {
                "date": "2024-01-15",
                "headline": "Bunny buys the dip",
                "description": "A rabbit-led rally lifts carrot futures.",
            }
        ]
        return ToolCall(name="getEvents", arguments=json.dumps({"events": events}))
    return None


async def _single(call: ToolCall) -> AsyncIterator[CompletionEvent]:
    yield call


async def _words(text: str) -> AsyncIterator[CompletionEvent]:
    words = text.split(" ")
    for i, word in enumerate(words):
        yield TextDelta(word if i == 0 else f" {word}")

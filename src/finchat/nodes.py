"""Render values handed to the rendering layer.

finchat never inspects these once built; they only need to be comparable in
tests and printable by the CLI. A node's text field may hold a live
``TextStream`` instead of a string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from finchat.tools.models import Event, PurchaseProps, ShowStockPriceParams, StockQuote


@dataclass(frozen=True)
class Node:
    """Base class for all render values."""


@dataclass(frozen=True)
class SpinnerMessage(Node):
    """Bot-side loading bubble shown while awaiting the completion."""


@dataclass(frozen=True)
class UserMessage(Node):
    content: str


@dataclass(frozen=True)
class BotMessage(Node):
    # str or a TextStream still receiving deltas
    content: Any


@dataclass(frozen=True)
class SystemMessage(Node):
    content: str


@dataclass(frozen=True)
class BotCard(Node):
    child: Node | None
    show_avatar: bool = True


@dataclass(frozen=True)
class StatusLine(Node):
    """A line of progress text, optionally with a spinner."""

    text: str
    spinner: bool = False


@dataclass(frozen=True)
class StocksSkeleton(Node):
    pass


@dataclass(frozen=True)
class Stocks(Node):
    stocks: tuple[StockQuote, ...] = field(default=())


@dataclass(frozen=True)
class StockSkeleton(Node):
    pass


@dataclass(frozen=True)
class Stock(Node):
    quote: ShowStockPriceParams


@dataclass(frozen=True)
class Purchase(Node):
    props: PurchaseProps


@dataclass(frozen=True)
class EventsSkeleton(Node):
    pass


@dataclass(frozen=True)
class Events(Node):
    events: tuple[Event, ...] = field(default=())

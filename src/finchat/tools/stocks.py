"""Stock tools: handlers and the renderers shared with rehydration.

Each data handler shows a skeleton card, waits out the simulated fetch, records
a ``function`` message carrying its result payload, and returns the final
card. The purchase offer skips the skeleton and the wait.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from finchat.nodes import (
    BotCard,
    BotMessage,
    Events,
    EventsSkeleton,
    Purchase,
    Stock,
    Stocks,
    StockSkeleton,
    StocksSkeleton,
)
from finchat.tools.models import (
    DEFAULT_NUMBER_OF_SHARES,
    MAX_NUMBER_OF_SHARES,
    Event,
    GetEventsParams,
    ListStocksParams,
    PurchaseProps,
    ShowStockPriceParams,
    ShowStockPurchaseParams,
    StockQuote,
    dump_json,
)
from finchat.tools.registry import ToolName, ToolRegistry, ToolSpec
from finchat.types import Message, Role

if TYPE_CHECKING:
    from finchat.nodes import Node
    from finchat.tools.registry import ToolContext

logger = logging.getLogger(__name__)

INVALID_AMOUNT_NOTE = "[User has selected an invalid amount]"

_quotes = TypeAdapter(list[StockQuote])
_events = TypeAdapter(list[Event])


async def _record(ctx: ToolContext, name: ToolName, payload: Any) -> None:
    state = ctx.ai_state
    message = Message.create(Role.FUNCTION, dump_json(payload), name=name.value)
    await state.done(state.get().append(message))


# --- Renderers ---


def render_stocks(payload: Any) -> Node:
    return BotCard(Stocks(tuple(_quotes.validate_python(payload))))


def render_stock(payload: Any) -> Node:
    return BotCard(Stock(ShowStockPriceParams.model_validate(payload)))


def render_purchase(payload: Any) -> Node:
    return BotCard(Purchase(PurchaseProps.model_validate(payload)))


def render_events(payload: Any) -> Node:
    return BotCard(Events(tuple(_events.validate_python(payload))))


# --- Handlers ---


async def list_stocks(params: ListStocksParams, ctx: ToolContext) -> Node:
    ctx.emit(BotCard(StocksSkeleton()))
    await ctx.fetch_delay()
    await _record(ctx, ToolName.LIST_STOCKS, params.stocks)
    return render_stocks(params.stocks)


async def show_stock_price(params: ShowStockPriceParams, ctx: ToolContext) -> Node:
    ctx.emit(BotCard(StockSkeleton()))
    await ctx.fetch_delay()
    await _record(ctx, ToolName.SHOW_STOCK_PRICE, params)
    return render_stock(params)


async def show_stock_purchase(params: ShowStockPurchaseParams, ctx: ToolContext) -> Node:
    """Offer a purchase card, or reject an out-of-range share count.

    Share counts must lie in ``(0, MAX_NUMBER_OF_SHARES]``; an omitted count
    means ``DEFAULT_NUMBER_OF_SHARES``. A rejection is recorded as a system
    note and rendered inline, never raised. The card needs no data fetch, so
    no placeholder is shown.
    """
    shares = params.number_of_shares
    if shares is None:
        shares = DEFAULT_NUMBER_OF_SHARES

    if shares <= 0 or shares > MAX_NUMBER_OF_SHARES:
        logger.info("Rejected purchase of %s %s", shares, params.symbol)
        state = ctx.ai_state
        await state.done(state.get().append(Message.create(Role.SYSTEM, INVALID_AMOUNT_NOTE)))
        return BotMessage("Invalid amount")

    payload = {"symbol": params.symbol, "price": params.price, "numberOfShares": shares}
    await _record(ctx, ToolName.SHOW_STOCK_PURCHASE, payload)
    return render_purchase({**payload, "status": "requires_action"})


async def get_events(params: GetEventsParams, ctx: ToolContext) -> Node:
    ctx.emit(BotCard(EventsSkeleton()))
    await ctx.fetch_delay()
    await _record(ctx, ToolName.GET_EVENTS, params.events)
    return render_events(params.events)


STOCK_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=ToolName.LIST_STOCKS,
        description="List three imaginary stocks that are trending.",
        parameters=ListStocksParams,
        handler=list_stocks,
        render=render_stocks,
    ),
    ToolSpec(
        name=ToolName.SHOW_STOCK_PRICE,
        description=(
            "Get the current stock price of a given stock or currency. "
            "Use this to show the price to the user."
        ),
        parameters=ShowStockPriceParams,
        handler=show_stock_price,
        render=render_stock,
    ),
    ToolSpec(
        name=ToolName.SHOW_STOCK_PURCHASE,
        description=(
            "Show price and the UI to purchase a stock or currency. "
            "Use this if the user wants to purchase a stock or currency."
        ),
        parameters=ShowStockPurchaseParams,
        handler=show_stock_purchase,
        render=render_purchase,
    ),
    ToolSpec(
        name=ToolName.GET_EVENTS,
        description=(
            "List funny imaginary events between user highlighted dates "
            "that describe stock activity."
        ),
        parameters=GetEventsParams,
        handler=get_events,
        render=render_events,
    ),
)


def default_registry() -> ToolRegistry:
    """Return a registry holding every stock tool."""
    return ToolRegistry(STOCK_TOOLS)

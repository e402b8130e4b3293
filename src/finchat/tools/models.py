"""Parameter and payload models for the stock tools.

The same models validate tool-call arguments coming from the completion
provider and decode ``function`` message content during rehydration, so the
live and resumed renderings always agree.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, WithJsonSchema

# Keep integers as integers so stored payloads read back exactly as written.
Number = Annotated[int | float, WithJsonSchema({"type": "number"})]

DEFAULT_NUMBER_OF_SHARES = 100
MAX_NUMBER_OF_SHARES = 1000

PurchaseStatus = Literal["requires_action", "completed", "expired"]


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class StockQuote(_Model):
    """A single trending stock."""

    symbol: str = Field(description="The symbol of the stock")
    price: Number = Field(description="The price of the stock")
    delta: Number = Field(description="The change in price of the stock")


class ListStocksParams(_Model):
    stocks: list[StockQuote]


class ShowStockPriceParams(_Model):
    symbol: str = Field(
        description="The name or symbol of the stock or currency. e.g. DOGE/AAPL/USD."
    )
    price: Number = Field(description="The price of the stock.")
    delta: Number = Field(description="The change in price of the stock")


class ShowStockPurchaseParams(_Model):
    symbol: str = Field(
        description="The name or symbol of the stock or currency. e.g. DOGE/AAPL/USD."
    )
    price: Number = Field(description="The price of the stock.")
    number_of_shares: Number | None = Field(
        default=None,
        alias="numberOfShares",
        description=(
            "The **number of shares** for a stock or currency to purchase. "
            "Can be optional if the user did not specify it."
        ),
    )


class Event(_Model):
    date: str = Field(description="The date of the event, in ISO-8601 format")
    headline: str = Field(description="The headline of the event")
    description: str = Field(description="The description of the event")


class GetEventsParams(_Model):
    events: list[Event]


class PurchaseProps(_Model):
    """Props of the purchase card, as stored in ``showStockPurchase`` messages.

    Pending requests store ``numberOfShares``; completed purchases store
    ``defaultAmount`` alongside ``status``.
    """

    symbol: str
    price: Number
    number_of_shares: Number = Field(
        default=DEFAULT_NUMBER_OF_SHARES,
        validation_alias=AliasChoices("numberOfShares", "defaultAmount", "number_of_shares"),
    )
    status: PurchaseStatus = "requires_action"


def dump_json(data: Any) -> str:
    """Serialize a tool payload compactly (no whitespace between tokens)."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    elif isinstance(data, list):
        data = [
            item.model_dump(by_alias=True, exclude_none=True)
            if isinstance(item, BaseModel)
            else item
            for item in data
        ]
    return json.dumps(data, separators=(",", ":"))

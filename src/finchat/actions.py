"""Purchase confirmation, triggered from a rendered purchase card.

The rendering layer calls `confirm_purchase` when the user accepts a
``showStockPurchase`` card. The call returns at once with two open streams;
a spawned task then simulates the trade, closes both streams and commits the
outcome through the same durable commit path as a dispatch turn.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from finchat._ids import new_id
from finchat.constants import CONFIRMATION_STEP_S
from finchat.formatting import format_number, plain_number
from finchat.nodes import StatusLine, SystemMessage
from finchat.streams import ViewStream
from finchat.tools.models import dump_json
from finchat.tools.registry import ToolName
from finchat.types import Message, Role, ViewItem

if TYPE_CHECKING:
    from finchat.context import ChatContext
    from finchat.state import MutableAIState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseConfirmation:
    """Handles returned to the caller while the purchase completes."""

    purchasing_ui: ViewStream[Any]
    new_message: ViewItem


async def confirm_purchase(
    ctx: ChatContext,
    symbol: str,
    price: float,
    amount: int,
    *,
    step_s: float = CONFIRMATION_STEP_S,
) -> PurchaseConfirmation:
    """Start purchasing *amount* shares of *symbol* at *price*.

    The durable state is read now; the commit made when the purchase finishes
    is applied on top of whatever turns were committed in between.
    """
    ai_state = ctx.mutable_ai_state()
    purchasing: ViewStream[Any] = ViewStream(
        StatusLine(f"Purchasing {amount} ${symbol}...", spinner=True)
    )
    system_message: ViewStream[Any] = ViewStream(None)

    ctx.spawn(
        _complete_purchase(
            ai_state, purchasing, system_message, symbol, price, amount, step_s
        ),
        name=f"purchase-{symbol}",
    )

    item = ViewItem(id=new_id(), node=system_message)
    ctx.ui_state.append(item)
    return PurchaseConfirmation(purchasing_ui=purchasing, new_message=item)


async def _complete_purchase(
    ai_state: MutableAIState,
    purchasing: ViewStream[Any],
    system_message: ViewStream[Any],
    symbol: str,
    price: float,
    amount: int,
    step_s: float,
) -> None:
    await asyncio.sleep(step_s)
    purchasing.update(
        StatusLine(f"Purchasing {amount} ${symbol}... working on it...", spinner=True)
    )
    await asyncio.sleep(step_s)

    total = plain_number(amount * price)
    purchasing.done(
        StatusLine(
            f"You have successfully purchased {amount} ${symbol}. "
            f"Total cost: {format_number(total)}"
        )
    )
    system_message.done(
        SystemMessage(
            f"You have purchased {amount} shares of {symbol} at ${plain_number(price)}. "
            f"Total cost = {format_number(total)}."
        )
    )

    conversation = ai_state.get()
    payload = dump_json(
        {
            "symbol": symbol,
            "price": price,
            "defaultAmount": amount,
            "status": "completed",
        }
    )
    note = Message.create(
        Role.SYSTEM,
        f"[User has purchased {amount} shares of {symbol} at {plain_number(price)}. "
        f"Total cost = {total}]",
    )
    pending = conversation.last_function_message(ToolName.SHOW_STOCK_PURCHASE.value)
    if pending is None:
        logger.warning("No purchase request found for %s; recording completion anyway", symbol)
        completed = Message.create(
            Role.FUNCTION, payload, name=ToolName.SHOW_STOCK_PURCHASE.value
        )
        final = conversation.append(completed, note)
    else:
        completed = Message(
            id=pending.id, role=Role.FUNCTION, content=payload, name=pending.name
        )
        final = conversation.replace_message(completed).append(note)

    await ai_state.done(final)
    logger.info("Purchased %s %s for %s", amount, symbol, format_number(total))

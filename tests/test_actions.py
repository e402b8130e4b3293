"""Purchase confirmation flow."""

from __future__ import annotations

import logging

import pytest

from finchat.actions import confirm_purchase
from finchat.context import ChatContext
from finchat.engine import DispatchEngine
from finchat.nodes import StatusLine, SystemMessage
from finchat.retry import RetryPolicy
from finchat.state import DurableStateStore
from finchat.tools import default_registry
from finchat.types import Conversation, Message, Role
from tests.conftest import OPENAI_MODEL, ScriptedProvider
from tests.helpers import function_payload, text

pytestmark = pytest.mark.unit

PENDING = '{"symbol":"AAPL","price":150,"numberOfShares":10}'


def _pending_purchase() -> tuple[ChatContext, Message]:
    request = Message.create(Role.FUNCTION, PENDING, name="showStockPurchase")
    conversation = Conversation(
        conversation_id="c1",
        messages=(Message.create(Role.USER, "Buy 10 AAPL"), request),
    )
    return ChatContext(DurableStateStore(conversation)), request


@pytest.mark.asyncio
async def test_confirmation_returns_open_streams_immediately() -> None:
    ctx, _ = _pending_purchase()

    confirmation = await confirm_purchase(ctx, "AAPL", 150, 10, step_s=0)

    assert confirmation.purchasing_ui.value == StatusLine("Purchasing 10 $AAPL...", spinner=True)
    assert not confirmation.purchasing_ui.closed
    assert confirmation.new_message.node.value is None
    assert ctx.ui_state == [confirmation.new_message]
    await ctx.drain()


@pytest.mark.asyncio
async def test_confirmation_completes_purchase_and_records_it() -> None:
    ctx, request = _pending_purchase()

    confirmation = await confirm_purchase(ctx, "AAPL", 150, 10, step_s=0)
    await ctx.drain()

    progress = confirmation.purchasing_ui
    assert progress.closed
    assert progress.fragments == (
        StatusLine("Purchasing 10 $AAPL... working on it...", spinner=True),
        StatusLine("You have successfully purchased 10 $AAPL. Total cost: $1,500.00"),
    )
    assert confirmation.new_message.node.value == SystemMessage(
        "You have purchased 10 shares of AAPL at $150. Total cost = $1,500.00."
    )

    user, completed, note = ctx.ai_state().messages
    assert user.content == "Buy 10 AAPL"
    assert completed.id == request.id
    assert completed.name == "showStockPurchase"
    assert function_payload(completed) == {
        "symbol": "AAPL",
        "price": 150,
        "defaultAmount": 10,
        "status": "completed",
    }
    assert note.role is Role.SYSTEM
    assert note.content == "[User has purchased 10 shares of AAPL at 150. Total cost = 1500]"


@pytest.mark.asyncio
async def test_confirmation_commit_lands_after_a_later_turn() -> None:
    ctx, request = _pending_purchase()
    engine = DispatchEngine(
        ScriptedProvider([text("You're welcome")]),
        default_registry(),
        model=OPENAI_MODEL,
        retry=RetryPolicy(max_attempts=1),
    )

    await confirm_purchase(ctx, "AAPL", 150, 10, step_s=0.05)
    await engine.submit_user_message(ctx, "thanks")
    await ctx.drain()

    messages = ctx.ai_state().messages
    assert [(m.role.value, m.content) for m in messages][2:4] == [
        ("user", "thanks"),
        ("assistant", "You're welcome"),
    ]
    assert messages[1].id == request.id
    assert function_payload(messages[1])["status"] == "completed"
    assert messages[-1].role is Role.SYSTEM
    assert "1500" in messages[-1].content
    assert ctx.ai_state().version == 2


@pytest.mark.asyncio
async def test_confirmation_without_pending_request_appends_a_record(
    caplog: pytest.LogCaptureFixture,
) -> None:
    ctx = ChatContext(DurableStateStore(Conversation.start("c1")))

    with caplog.at_level(logging.WARNING, logger="finchat.actions"):
        await confirm_purchase(ctx, "MSFT", 400, 2, step_s=0)
        await ctx.drain()

    completed, note = ctx.ai_state().messages
    assert function_payload(completed)["defaultAmount"] == 2
    assert note.content.endswith("Total cost = 800]")
    assert "No purchase request" in caplog.text

"""Dispatch engine: text and tool routing for one user turn."""

from __future__ import annotations

import asyncio
import logging

import pytest

from finchat.context import ChatContext
from finchat.engine import DispatchEngine, Turn, TurnPhase
from finchat.errors import APIError, ToolNotFoundError
from finchat.nodes import BotCard, BotMessage, SpinnerMessage, Stock, StockSkeleton
from finchat.providers.models import TextDelta, ToolCall
from finchat.retry import RetryPolicy
from finchat.state import DurableStateStore
from finchat.streams import TextStream
from finchat.tools import default_registry
from finchat.types import Conversation, Message, Role
from tests.conftest import OPENAI_MODEL, ScriptedProvider
from tests.helpers import GateProvider, text, tool

pytestmark = pytest.mark.unit

NO_RETRY = RetryPolicy(max_attempts=1)


def _engine(provider: ScriptedProvider, *, retry: RetryPolicy = NO_RETRY) -> DispatchEngine:
    return DispatchEngine(
        provider,
        default_registry(),
        model=OPENAI_MODEL,
        system_prompt="be brief",
        retry=retry,
    )


def _context(conversation: Conversation | None = None) -> ChatContext:
    return ChatContext(DurableStateStore(conversation or Conversation.start("c1")))


def _log(ctx: ChatContext) -> list[tuple[str, str]]:
    return [(m.role.value, m.content) for m in ctx.ai_state().messages]


# =============================================================================
# Text path
# =============================================================================


@pytest.mark.asyncio
async def test_text_reply_streams_into_one_bot_message_and_commits() -> None:
    provider = ScriptedProvider([text("Hel", "lo")])
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "hi")
    final = await item.node.wait_closed()
    await ctx.drain()

    assert isinstance(final, BotMessage)
    assert isinstance(final.content, TextStream)
    assert final.content.value == "Hello"
    assert final.content.closed
    assert _log(ctx) == [("user", "hi"), ("assistant", "Hello")]
    assert ctx.ui_state == [item]


@pytest.mark.asyncio
async def test_view_item_starts_with_a_spinner_then_streams() -> None:
    provider = GateProvider([text("a", "b")])
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "hi")

    assert item.node.value == SpinnerMessage()
    for _ in range(3):
        await asyncio.sleep(0)
    assert item.node.fragments == (BotMessage(item.node.value.content),)
    assert item.node.value.content.value == "a"
    assert not item.node.closed
    provider.release.set()
    await ctx.drain()
    assert item.node.value.content.value == "ab"


@pytest.mark.asyncio
async def test_empty_completion_commits_empty_assistant_message() -> None:
    provider = ScriptedProvider([[]])
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "hi")
    await ctx.drain()

    assert item.node.value.content.value == ""
    assert _log(ctx) == [("user", "hi"), ("assistant", "")]


@pytest.mark.asyncio
async def test_request_carries_full_history_and_tools() -> None:
    history = Conversation(
        conversation_id="c1",
        messages=(
            Message.create(Role.USER, "Buy 5000 AAPL"),
            Message.create(Role.SYSTEM, "[User has selected an invalid amount]"),
        ),
    )
    provider = ScriptedProvider([text("ok")])
    ctx = _context(history)

    await _engine(provider).submit_user_message(ctx, "and now?")
    await ctx.drain()

    (request,) = provider.requests
    assert request.model == OPENAI_MODEL
    assert request.system_instruction == "be brief"
    assert [m["role"] for m in request.messages] == ["user", "system", "user"]
    assert request.messages[-1]["content"] == "and now?"
    assert {t.name for t in request.tools} == set(default_registry().names)


# =============================================================================
# Tool path
# =============================================================================


@pytest.mark.asyncio
async def test_tool_call_shows_placeholder_then_final_card() -> None:
    provider = ScriptedProvider([tool("showStockPrice", symbol="AAPL", price=150, delta=2)])
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "price of AAPL?")
    final = await item.node.wait_closed()
    await ctx.drain()

    assert item.node.fragments[0] == BotCard(StockSkeleton())
    assert isinstance(final, BotCard) and isinstance(final.child, Stock)
    assert _log(ctx) == [
        ("user", "price of AAPL?"),
        ("function", '{"symbol":"AAPL","price":150,"delta":2}'),
    ]
    assert ctx.ai_state().messages[-1].name == "showStockPrice"


@pytest.mark.asyncio
async def test_unknown_tool_raises_and_commits_nothing() -> None:
    provider = ScriptedProvider([tool("sellStock", symbol="AAPL"), text("recovered")])
    ctx = _context()
    engine = _engine(provider)

    with pytest.raises(ToolNotFoundError):
        await engine.submit_user_message(ctx, "sell everything")

    assert ctx.ai_state().messages == ()
    assert ctx.ui_state == []
    assert not ctx.turn_lock.locked()

    await engine.submit_user_message(ctx, "hello?")
    await ctx.drain()
    assert _log(ctx) == [("user", "hello?"), ("assistant", "recovered")]


@pytest.mark.asyncio
async def test_tool_call_with_invalid_arguments_falls_back_to_text(
    caplog: pytest.LogCaptureFixture,
) -> None:
    provider = ScriptedProvider([tool("showStockPrice", symbol="AAPL")])
    ctx = _context()

    with caplog.at_level(logging.WARNING, logger="finchat.engine"):
        item = await _engine(provider).submit_user_message(ctx, "price?")
        final = await item.node.wait_closed()
        await ctx.drain()

    assert isinstance(final, BotMessage)
    assert _log(ctx) == [("user", "price?"), ("assistant", "")]
    assert "declined" in caplog.text


@pytest.mark.asyncio
async def test_only_the_first_tool_call_is_honoured() -> None:
    provider = ScriptedProvider(
        [
            [
                *tool("showStockPrice", symbol="AAPL", price=150, delta=2),
                *tool("showStockPrice", symbol="MSFT", price=400, delta=1),
            ]
        ]
    )
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "prices?")
    final = await item.node.wait_closed()
    await ctx.drain()

    assert final.child.quote.symbol == "AAPL"
    assert sum(1 for m in ctx.ai_state().messages if m.role is Role.FUNCTION) == 1


@pytest.mark.asyncio
async def test_tool_call_after_text_is_ignored() -> None:
    provider = ScriptedProvider(
        [[TextDelta("Sure"), ToolCall("showStockPrice", '{"symbol":"A","price":1,"delta":0}')]]
    )
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "hi")
    await ctx.drain()

    assert item.node.value.content.value == "Sure"
    assert _log(ctx) == [("user", "hi"), ("assistant", "Sure")]


# =============================================================================
# Failures and ordering
# =============================================================================


@pytest.mark.asyncio
async def test_open_failure_propagates_and_commits_nothing() -> None:
    provider = ScriptedProvider([APIError("boom", retryable=False)])
    ctx = _context()

    with pytest.raises(APIError, match="boom"):
        await _engine(provider).submit_user_message(ctx, "hi")

    assert ctx.ai_state().messages == ()
    assert not ctx.turn_lock.locked()


@pytest.mark.asyncio
async def test_retryable_open_failure_is_retried() -> None:
    provider = ScriptedProvider([APIError("busy", status_code=503), text("ok")])
    ctx = _context()
    retry = RetryPolicy(max_attempts=2, initial_delay_s=0, jitter=False)

    await _engine(provider, retry=retry).submit_user_message(ctx, "hi")
    await ctx.drain()

    assert len(provider.requests) == 2
    assert _log(ctx)[-1] == ("assistant", "ok")


@pytest.mark.asyncio
async def test_mid_stream_failure_errors_the_view_item() -> None:
    provider = ScriptedProvider([[TextDelta("par"), RuntimeError("dropped")]])
    ctx = _context()

    item = await _engine(provider).submit_user_message(ctx, "hi")

    with pytest.raises(RuntimeError, match="dropped"):
        await item.node.wait_closed()
    with pytest.raises(RuntimeError, match="dropped"):
        await ctx.drain()

    (bot_message,) = item.node.fragments
    partial = bot_message.content
    assert partial.closed
    assert partial.value == "par"
    with pytest.raises(RuntimeError, match="dropped"):
        await asyncio.wait_for(partial.wait_closed(), 1)
    assert ctx.ai_state().messages == ()
    assert not ctx.turn_lock.locked()


@pytest.mark.asyncio
async def test_turns_on_one_conversation_are_serialized() -> None:
    provider = GateProvider([text("one", "!"), text("two")])
    ctx = _context()
    engine = _engine(provider)

    await engine.submit_user_message(ctx, "first")
    second = asyncio.create_task(engine.submit_user_message(ctx, "second"))
    await asyncio.sleep(0)
    assert not second.done()
    assert len(provider.requests) == 1

    provider.release.set()
    await second
    await ctx.drain()

    assert _log(ctx) == [
        ("user", "first"),
        ("assistant", "one!"),
        ("user", "second"),
        ("assistant", "two"),
    ]


def test_turn_starts_idle_and_creates_text_once() -> None:
    store = DurableStateStore(Conversation.start("c1"))
    turn = Turn(ai_state=store.handle())

    assert turn.phase is TurnPhase.IDLE
    assert turn.ui.value == SpinnerMessage()
    first = turn.start_text()
    assert turn.start_text() is first
    assert turn.phase is TurnPhase.STREAMING

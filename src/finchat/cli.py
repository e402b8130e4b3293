"""Terminal chat client.

Examples:
- python -m finchat --mock
- python -m finchat --mock --user alice --store chats.json
- python -m finchat --user alice --store chats.json --chat-id AbC1234
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from finchat.app import ChatApp
from finchat.auth import StaticSessionProvider
from finchat.config import Config
from finchat.constants import DEFAULT_MODEL
from finchat.errors import FinchatError
from finchat.formatting import format_number
from finchat.nodes import (
    BotCard,
    BotMessage,
    Events,
    EventsSkeleton,
    Purchase,
    SpinnerMessage,
    StatusLine,
    Stock,
    Stocks,
    StockSkeleton,
    StocksSkeleton,
    SystemMessage,
    UserMessage,
)
from finchat.streams import TextStream, ViewStream

if TYPE_CHECKING:
    from collections.abc import Sequence

    from finchat.context import ChatContext


def render_text(node: Any) -> str:
    """Render a node as plain text."""
    match node:
        case None:
            return ""
        case ViewStream():
            return render_text(node.value)
        case SpinnerMessage() | StocksSkeleton() | StockSkeleton() | EventsSkeleton():
            return "..."
        case UserMessage(content=content):
            return f"you: {content}"
        case BotMessage(content=content):
            text = content.value if isinstance(content, TextStream) else content
            return f"bot: {text}"
        case SystemMessage(content=content):
            return f"[{content}]"
        case BotCard(child=child):
            return render_text(child)
        case StatusLine(text=text, spinner=spinner):
            return f"{text} ..." if spinner else text
        case Stocks(stocks=stocks):
            return "\n".join(
                f"{q.symbol:<6} {format_number(q.price):>12} {q.delta:+}" for q in stocks
            )
        case Stock(quote=q):
            return f"{q.symbol} {format_number(q.price)} ({q.delta:+})"
        case Purchase(props=p):
            return (
                f"Purchase {p.number_of_shares} {p.symbol} at {format_number(p.price)} "
                f"[{p.status}]"
            )
        case Events(events=events):
            return "\n".join(f"{e.date}  {e.headline}: {e.description}" for e in events)
    return repr(node)


async def show(stream: ViewStream[Any]) -> Any:
    """Print each new value of *stream*; return the final value."""
    last: Any = None
    async for node in stream.watch():
        if node is last:
            continue
        last = node
        if isinstance(node, BotMessage) and isinstance(node.content, TextStream):
            printed = 0
            sys.stdout.write("bot: ")
            async for text in node.content.watch():
                sys.stdout.write((text or "")[printed:])
                sys.stdout.flush()
                printed = len(text or "")
            sys.stdout.write("\n")
        else:
            print(render_text(node))
    return stream.value


async def _maybe_confirm(app: ChatApp, ctx: ChatContext, node: Any) -> None:
    if not (isinstance(node, BotCard) and isinstance(node.child, Purchase)):
        return
    props = node.child.props
    if props.status != "requires_action":
        return
    answer = await asyncio.to_thread(input, "confirm purchase? [y/N] ")
    if answer.strip().lower() not in {"y", "yes"}:
        return
    confirmation = await app.confirm_purchase(
        ctx, props.symbol, props.price, int(props.number_of_shares)
    )
    await show(confirmation.purchasing_ui)
    await show(confirmation.new_message.node)


async def _chat(app: ChatApp, chat_id: str | None) -> int:
    ctx = await app.resume(chat_id) if chat_id else app.start()
    print(f"chat {ctx.conversation_id} (Ctrl-D to quit)")
    for item in ctx.ui_state:
        print(render_text(item.node))
    async with ctx:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                print()
                break
            if not line.strip():
                continue
            try:
                item = await app.submit_user_message(ctx, line)
                final = await show(item.node)
            except FinchatError as e:
                print(f"error: {e}" + (f" ({e.hint})" if e.hint else ""), file=sys.stderr)
                continue
            await _maybe_confirm(app, ctx, final)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finchat", description="Chat with the finance assistant."
    )
    parser.add_argument("--mock", action="store_true", help="use the offline mock provider")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="completion model")
    parser.add_argument("--user", help="signed-in user id (enables persistence)")
    parser.add_argument("--store", help="JSON file to persist chats in")
    parser.add_argument("--chat-id", help="resume a stored chat")
    parser.add_argument(
        "--latency", type=float, default=1.0, help="simulated tool latency in seconds"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = Config(
            model=args.model,
            use_mock=args.mock,
            store_path=args.store,
            tool_latency_s=args.latency,
            confirmation_step_s=args.latency,
        )
    except FinchatError as e:
        print(f"error: {e}" + (f" ({e.hint})" if e.hint else ""), file=sys.stderr)
        return 2

    async def run() -> int:
        async with ChatApp(config, sessions=StaticSessionProvider(args.user)) as app:
            return await _chat(app, args.chat_id)

    try:
        return asyncio.run(run())
    except FinchatError as e:
        print(f"error: {e}" + (f" ({e.hint})" if e.hint else ""), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

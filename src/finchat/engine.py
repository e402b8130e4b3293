"""Dispatch engine: one user message in, one view item out.

A turn moves through ``IDLE -> AWAITING_COMPLETION -> STREAMING | INVOKING ->
SETTLED``. The engine stages the user message, opens a completion stream and
waits only for its first event, so an unknown tool name still fails the call
itself. The rest of the turn (text deltas, or the tool handler's placeholder
and result) runs as a task spawned on the context while the caller holds the
returned view item.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from finchat._ids import new_id
from finchat.nodes import BotMessage, SpinnerMessage
from finchat.providers.models import CompletionRequest, TextDelta, ToolCall
from finchat.retry import RetryPolicy, open_with_retry
from finchat.streams import TextStream, ViewStream
from finchat.tools.registry import ToolContext, ToolPhase
from finchat.types import Message, Role, ViewItem

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.context import ChatContext
    from finchat.providers.base import CompletionProvider
    from finchat.providers.models import CompletionEvent
    from finchat.state import MutableAIState
    from finchat.tools.registry import ToolRegistry, ToolSpec
    from finchat.types import Conversation

logger = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    """Dispatch state of one user turn."""

    IDLE = "idle"
    AWAITING_COMPLETION = "awaiting_completion"
    STREAMING = "streaming"
    INVOKING = "invoking"
    SETTLED = "settled"


@dataclass
class Turn:
    """Mutable bookkeeping for one in-flight turn."""

    ai_state: MutableAIState
    id: str = field(default_factory=new_id)
    ui: ViewStream[Any] = field(default_factory=lambda: ViewStream(SpinnerMessage()))
    phase: TurnPhase = TurnPhase.IDLE
    text: TextStream | None = None

    def advance(self, phase: TurnPhase) -> None:
        logger.debug("Turn %s: %s -> %s", self.id, self.phase.value, phase.value)
        self.phase = phase

    def start_text(self) -> TextStream:
        """Create the turn's only text stream on first use."""
        if self.text is None:
            self.text = TextStream()
            self.ui.update(BotMessage(self.text))
            self.advance(TurnPhase.STREAMING)
        return self.text


class DispatchEngine:
    """Route completions to streamed text or a single tool invocation."""

    def __init__(
        self,
        provider: CompletionProvider,
        registry: ToolRegistry,
        *,
        model: str,
        system_prompt: str | None = None,
        tool_latency_s: float = 0.0,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._model = model
        self._system_prompt = system_prompt
        self._tool_latency_s = tool_latency_s
        self._retry = retry or RetryPolicy()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def build_request(self, conversation: Conversation) -> CompletionRequest:
        """Project the whole log (system messages included) into a request."""
        return CompletionRequest(
            model=self._model,
            messages=conversation.prompt_history(),
            system_instruction=self._system_prompt,
            tools=self._registry.descriptors(),
        )

    async def submit_user_message(self, ctx: ChatContext, content: str) -> ViewItem:
        """Run one turn for *content* and return the response view item.

        Raises:
            ToolNotFoundError: The model asked for an unregistered tool. The
                turn is aborted and nothing is committed.
            APIError: The completion stream could not be opened.
        """
        await ctx.turn_lock.acquire()
        events: AsyncIterator[CompletionEvent] | None = None
        try:
            ai_state = ctx.mutable_ai_state()
            ai_state.update(ai_state.get().append(Message.create(Role.USER, content)))
            turn = Turn(ai_state=ai_state)
            turn.advance(TurnPhase.AWAITING_COMPLETION)

            request = self.build_request(ai_state.get())
            events = await open_with_retry(
                lambda: self._provider.open_stream(request), policy=self._retry
            )
            first = await anext(events, None)
            if isinstance(first, ToolCall):
                self._registry.get(first.name)
            ctx.spawn(self._settle(ctx, turn, first, events), name=f"turn-{turn.id}")
        except BaseException:
            ctx.turn_lock.release()
            if events is not None:
                await _aclose(events)
            raise

        item = ViewItem(id=turn.id, node=turn.ui)
        ctx.ui_state.append(item)
        return item

    async def _settle(
        self,
        ctx: ChatContext,
        turn: Turn,
        first: CompletionEvent | None,
        events: AsyncIterator[CompletionEvent],
    ) -> None:
        try:
            await self._run(turn, first, events)
            turn.advance(TurnPhase.SETTLED)
        except BaseException as exc:
            if turn.text is not None and not turn.text.closed:
                turn.text.error(exc)
            if not turn.ui.closed:
                turn.ui.error(exc)
            raise
        finally:
            ctx.turn_lock.release()

    async def _run(
        self,
        turn: Turn,
        first: CompletionEvent | None,
        events: AsyncIterator[CompletionEvent],
    ) -> None:
        call: ToolCall | None = None
        event = first
        while event is not None:
            if isinstance(event, TextDelta):
                if call is None:
                    turn.start_text().update(event.text)
                else:
                    logger.warning("Dropping text received after tool call %s", call.name)
            elif call is None and turn.text is None:
                call = event
            else:
                logger.warning("Ignoring extra tool call %s in turn %s", event.name, turn.id)
            event = await anext(events, None)

        if call is not None:
            spec = self._registry.get(call.name)
            try:
                params = spec.parse(call.arguments)
            except ValidationError as e:
                logger.warning(
                    "Tool call %s declined: invalid arguments (%d errors)",
                    call.name,
                    e.error_count(),
                )
            else:
                await self._invoke(turn, spec, params)
                return

        text = turn.start_text()
        text.done()
        turn.ui.done()
        state = turn.ai_state
        await state.done(state.get().append(Message.create(Role.ASSISTANT, text.value or "")))

    async def _invoke(self, turn: Turn, spec: ToolSpec, params: Any) -> None:
        turn.advance(TurnPhase.INVOKING)
        tool_ctx = ToolContext(
            ai_state=turn.ai_state,
            emit_node=turn.ui.update,
            latency_s=self._tool_latency_s,
        )
        logger.debug("Turn %s invoking %s", turn.id, spec.name.value)
        node = await spec.handler(params, tool_ctx)
        tool_ctx.phase = ToolPhase.FINALIZED
        turn.ui.done(node)
        if not turn.ai_state.closed:
            logger.debug("Tool %s did not commit; committing staged state", spec.name.value)
            await turn.ai_state.done()


async def _aclose(events: AsyncIterator[Any]) -> None:
    aclose = getattr(events, "aclose", None)
    if callable(aclose):
        await aclose()

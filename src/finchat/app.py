"""Application object wiring config, provider, tools, store and sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from finchat.actions import PurchaseConfirmation, confirm_purchase
from finchat.auth import StaticSessionProvider
from finchat.context import ChatContext
from finchat.engine import DispatchEngine
from finchat.errors import ConfigurationError, PersistenceError
from finchat.rehydrate import ui_state_from_ai_state
from finchat.state import DurableStateStore
from finchat.store import InMemoryChatStore, JSONChatStore
from finchat.tools.stocks import default_registry
from finchat.types import Conversation

if TYPE_CHECKING:
    from types import TracebackType

    from finchat.auth import SessionProvider
    from finchat.config import Config
    from finchat.providers.base import CompletionProvider
    from finchat.store import ChatStore
    from finchat.tools.registry import ToolRegistry
    from finchat.types import ViewItem

logger = logging.getLogger(__name__)


class ChatApp:
    """Entry point for the rendering layer.

    One app serves many conversations; each conversation gets its own
    `ChatContext` from ``start`` or ``resume``.

    Example:
        app = ChatApp(Config(use_mock=True), sessions=StaticSessionProvider("u1"))
        ctx = app.start()
        item = await app.submit_user_message(ctx, "What is the price of AAPL?")
        final_node = await item.node.wait_closed()
    """

    def __init__(
        self,
        config: Config,
        *,
        provider: CompletionProvider | None = None,
        registry: ToolRegistry | None = None,
        chat_store: ChatStore | None = None,
        sessions: SessionProvider | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or default_registry()
        if chat_store is None:
            chat_store = (
                JSONChatStore(config.store_path) if config.store_path else InMemoryChatStore()
            )
        self.chat_store = chat_store
        self.sessions = sessions or StaticSessionProvider()
        self.provider = provider or _get_provider(config)
        self.engine = DispatchEngine(
            self.provider,
            self.registry,
            model=config.model,
            system_prompt=config.system_prompt,
            tool_latency_s=config.tool_latency_s,
            retry=config.retry,
        )

    def _context(self, conversation: Conversation) -> ChatContext:
        state = DurableStateStore(
            conversation, chat_store=self.chat_store, sessions=self.sessions
        )
        return ChatContext(state)

    def start(self, conversation_id: str | None = None) -> ChatContext:
        """Begin a new, empty conversation."""
        return self._context(Conversation.start(conversation_id))

    async def resume(self, chat_id: str) -> ChatContext:
        """Reopen a stored chat owned by the current user.

        Raises:
            PersistenceError: No such chat, or it belongs to someone else.
        """
        session = await self.sessions.current_session()
        chat = await self.chat_store.load(chat_id)
        if chat is None or session is None or chat.user_id != session.user_id:
            raise PersistenceError(
                f"Chat {chat_id!r} not found",
                hint="Chats can only be resumed by the signed-in user who created them.",
            )
        ctx = self._context(chat.conversation())
        ui_state = await self.get_ui_state(ctx)
        ctx.ui_state.extend(ui_state or ())
        return ctx

    async def get_ui_state(self, ctx: ChatContext) -> list[ViewItem] | None:
        """Rehydrate the view feed; None when nobody is signed in."""
        session = await self.sessions.current_session()
        if session is None:
            return None
        return ui_state_from_ai_state(ctx.ai_state(), self.registry)

    async def submit_user_message(self, ctx: ChatContext, content: str) -> ViewItem:
        """Dispatch one user message; see `DispatchEngine.submit_user_message`."""
        return await self.engine.submit_user_message(ctx, content)

    async def confirm_purchase(
        self, ctx: ChatContext, symbol: str, price: float, amount: int
    ) -> PurchaseConfirmation:
        """Start a purchase confirmed from a rendered purchase card."""
        return await confirm_purchase(
            ctx, symbol, price, amount, step_s=self.config.confirmation_step_s
        )

    async def aclose(self) -> None:
        """Release provider resources."""
        try:
            await self.provider.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Provider cleanup failed: %s", exc)

    async def __aenter__(self) -> ChatApp:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def _get_provider(config: Config) -> CompletionProvider:
    """Get the appropriate provider based on configuration."""
    if config.use_mock:
        from finchat.providers.mock import MockProvider

        return MockProvider()

    from finchat.providers.openai import OpenAIProvider

    if not config.api_key:
        raise ConfigurationError(
            "api_key required for real API",
            hint="Set OPENAI_API_KEY or pass Config(api_key=...).",
        )
    return OpenAIProvider(config.api_key)

"""finchat: a finance chat core that keeps durable and view state in step.

Public API:
    - ChatApp: wires provider, tools, chat store and sessions
    - ChatContext: one conversation's durable state, view feed and tasks
    - Config: configuration dataclass
    - ui_state_from_ai_state(): rebuild the view feed from a stored log
"""

from __future__ import annotations

import logging

from finchat.actions import PurchaseConfirmation, confirm_purchase
from finchat.app import ChatApp
from finchat.auth import Session, SessionProvider, StaticSessionProvider
from finchat.config import Config
from finchat.context import ChatContext
from finchat.engine import DispatchEngine, TurnPhase
from finchat.errors import (
    APIError,
    ConfigurationError,
    FinchatError,
    IllegalStateError,
    PersistenceError,
    RateLimitError,
    ToolNotFoundError,
)
from finchat.rehydrate import ui_state_from_ai_state
from finchat.retry import RetryPolicy
from finchat.state import DurableStateStore, MutableAIState
from finchat.store import Chat, ChatStore, InMemoryChatStore, JSONChatStore
from finchat.streams import TextStream, ViewStream
from finchat.types import Conversation, Message, Role, ViewItem

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("finchat")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("finchat").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "Chat",
    "ChatApp",
    "ChatContext",
    "ChatStore",
    "Config",
    "ConfigurationError",
    "Conversation",
    "DispatchEngine",
    "DurableStateStore",
    "FinchatError",
    "IllegalStateError",
    "InMemoryChatStore",
    "JSONChatStore",
    "Message",
    "MutableAIState",
    "PersistenceError",
    "PurchaseConfirmation",
    "RateLimitError",
    "RetryPolicy",
    "Role",
    "Session",
    "SessionProvider",
    "StaticSessionProvider",
    "TextStream",
    "ToolNotFoundError",
    "TurnPhase",
    "ViewItem",
    "ViewStream",
    "confirm_purchase",
    "ui_state_from_ai_state",
]

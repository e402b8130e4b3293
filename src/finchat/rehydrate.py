"""Rebuild view state from durable state without calling the model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from finchat.nodes import BotMessage, UserMessage
from finchat.tools.stocks import default_registry
from finchat.types import Role, ViewItem

if TYPE_CHECKING:
    from finchat.nodes import Node
    from finchat.tools.registry import ToolRegistry
    from finchat.types import Conversation, Message


def ui_state_from_ai_state(
    conversation: Conversation, registry: ToolRegistry | None = None
) -> list[ViewItem]:
    """Map every non-system message to a view item.

    Ids are ``"{conversation_id}-{index}"`` over the filtered messages, so the
    same conversation always rehydrates to the same ids. Function messages
    are rendered by the tool that wrote them; unknown tools give a None node.
    """
    registry = registry or default_registry()
    visible = [m for m in conversation.messages if m.role is not Role.SYSTEM]
    return [
        ViewItem(id=f"{conversation.conversation_id}-{index}", node=_display(m, registry))
        for index, m in enumerate(visible)
    ]


def _display(message: Message, registry: ToolRegistry) -> Node | None:
    if message.role is Role.FUNCTION:
        return registry.render_stored(message.name, message.content)
    if message.role is Role.USER:
        return UserMessage(message.content)
    return BotMessage(message.content)

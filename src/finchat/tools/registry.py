"""Closed tool roster: specs, handler context and registry lookup.

A tool is a `ToolSpec`: wire name, description, pydantic parameter model, an
async handler that produces the final node, and a renderer that rebuilds the
same node from the stored ``function`` message payload. The registry is built
once and never mutated.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from finchat.errors import IllegalStateError, ToolNotFoundError
from finchat.providers.models import ToolDescriptor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Iterator

    from pydantic import BaseModel

    from finchat.nodes import Node
    from finchat.state import MutableAIState

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    """Every tool the model may call."""

    LIST_STOCKS = "listStocks"
    SHOW_STOCK_PRICE = "showStockPrice"
    SHOW_STOCK_PURCHASE = "showStockPurchase"
    GET_EVENTS = "getEvents"


class ToolPhase(str, Enum):
    """Progress of one tool invocation."""

    STARTED = "started"
    PLACEHOLDER = "placeholder"
    PENDING = "pending"
    FINALIZED = "finalized"


@dataclass
class ToolContext:
    """What a handler may touch while it runs.

    ``emit`` pushes an interim node to the caller's view item; the handler's
    return value becomes the final node.
    """

    ai_state: MutableAIState
    emit_node: Callable[[Node], None]
    latency_s: float = 0.0
    phase: ToolPhase = field(default=ToolPhase.STARTED)

    def emit(self, node: Node) -> None:
        """Show *node* until the handler returns its result."""
        if self.phase is ToolPhase.FINALIZED:
            raise IllegalStateError("Cannot emit after the tool finalized")
        self.phase = ToolPhase.PLACEHOLDER
        self.emit_node(node)

    async def fetch_delay(self) -> None:
        """Wait out the simulated data fetch."""
        self.phase = ToolPhase.PENDING
        if self.latency_s > 0:
            await asyncio.sleep(self.latency_s)


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool."""

    name: ToolName
    description: str
    parameters: type[BaseModel]
    handler: Callable[[Any, ToolContext], Awaitable[Node]]
    render: Callable[[Any], Node]

    def descriptor(self) -> ToolDescriptor:
        """Describe the tool for a completion request."""
        return ToolDescriptor(
            name=self.name.value,
            description=self.description,
            parameters=self.parameters.model_json_schema(by_alias=True),
        )

    def parse(self, arguments: str) -> BaseModel:
        """Validate raw JSON *arguments* (raises pydantic ``ValidationError``)."""
        return self.parameters.model_validate_json(arguments or "{}")


class ToolRegistry:
    """Immutable name -> `ToolSpec` mapping over the closed roster."""

    def __init__(self, specs: Iterable[ToolSpec]) -> None:
        by_name: dict[ToolName, ToolSpec] = {}
        for spec in specs:
            if spec.name in by_name:
                raise ValueError(f"Duplicate tool registration: {spec.name.value}")
            by_name[spec.name] = spec
        self._specs = MappingProxyType(by_name)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, name: object) -> bool:
        try:
            return ToolName(name) in self._specs
        except ValueError:
            return False

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(n.value for n in self._specs)

    def get(self, name: str) -> ToolSpec:
        """Look up a tool by wire name.

        Raises:
            ToolNotFoundError: *name* is not a registered tool.
        """
        try:
            return self._specs[ToolName(name)]
        except (ValueError, KeyError):
            raise ToolNotFoundError(name, known=self.names) from None

    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        return tuple(spec.descriptor() for spec in self)

    def render_stored(self, name: str | None, content: str) -> Node | None:
        """Rebuild the final node of a stored ``function`` message.

        Unknown tool names and payloads that no longer match the tool's
        schema yield None, so older or newer logs still load.
        """
        if name is None or name not in self:
            logger.debug("No renderer for function message %r; dropping", name)
            return None
        try:
            return self.get(name).render(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Stored %s payload is unreadable; dropping: %s", name, e)
            return None

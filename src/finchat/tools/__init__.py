"""Tool roster, registry and handlers."""

from .registry import ToolContext, ToolName, ToolPhase, ToolRegistry, ToolSpec
from .stocks import STOCK_TOOLS, default_registry

__all__ = [
    "STOCK_TOOLS",
    "ToolContext",
    "ToolName",
    "ToolPhase",
    "ToolRegistry",
    "ToolSpec",
    "default_registry",
]

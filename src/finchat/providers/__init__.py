"""Completion provider implementations."""

from .base import CompletionProvider
from .mock import MockProvider
from .models import CompletionEvent, CompletionRequest, TextDelta, ToolCall, ToolDescriptor
from .openai import OpenAIProvider

__all__ = [
    "CompletionEvent",
    "CompletionProvider",
    "CompletionRequest",
    "MockProvider",
    "OpenAIProvider",
    "TextDelta",
    "ToolCall",
    "ToolDescriptor",
]

"""OpenAI provider implementation (Chat Completions, streaming)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from finchat.errors import APIError
from finchat.providers._errors import wrap_provider_error
from finchat.providers.models import TextDelta, ToolCall

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.providers.models import CompletionEvent, CompletionRequest

# Chat Completions has no slot for these roles; replay them as assistant turns.
_ASSISTANT_ALIASES = frozenset({"data", "tool"})


class OpenAIProvider:
    """OpenAI Chat Completions provider with function tools."""

    def __init__(self, api_key: str) -> None:
        """Initialize with an API key."""
        self.api_key = api_key
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def open_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[CompletionEvent]:
        """Start a streamed chat completion and return its events."""
        client = self._get_client()
        create_kwargs = build_create_kwargs(request)
        try:
            stream = await client.chat.completions.create(**create_kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider="openai",
                phase="completion",
                allow_network_errors=True,
                message="OpenAI completion failed",
            ) from e
        return _iter_events(stream)

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


def build_create_kwargs(request: CompletionRequest) -> dict[str, Any]:
    """Translate a `CompletionRequest` into ``chat.completions.create`` kwargs."""
    messages: list[dict[str, Any]] = []
    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})
    for item in request.messages:
        messages.append(_to_openai_message(item))

    create_kwargs: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "stream": True,
    }
    if request.temperature is not None:
        create_kwargs["temperature"] = request.temperature
    if request.tools:
        create_kwargs["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in request.tools
        ]
    return create_kwargs


def _to_openai_message(item: dict[str, Any]) -> dict[str, Any]:
    role = item.get("role")
    content = item.get("content", "")
    if role == "function":
        return {"role": "function", "name": item.get("name") or "", "content": content}
    if role in _ASSISTANT_ALIASES:
        return {"role": "assistant", "content": content}
    return {"role": role, "content": content}


async def _iter_events(stream: Any) -> AsyncIterator[CompletionEvent]:
    """Yield text deltas as they arrive, then any assembled tool calls."""
    calls: dict[int, dict[str, str]] = {}
    try:
        async for chunk in stream:
            choices = getattr(chunk, "choices", None)
            if not choices:
                continue
            delta = choices[0].delta
            text = getattr(delta, "content", None)
            if text:
                yield TextDelta(text)
            for tc in getattr(delta, "tool_calls", None) or []:
                entry = calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                if tc.id:
                    entry["id"] = tc.id
                fn = getattr(tc, "function", None)
                if fn is not None:
                    entry["name"] += fn.name or ""
                    entry["arguments"] += fn.arguments or ""
    except asyncio.CancelledError:
        raise
    except Exception as e:
        raise wrap_provider_error(
            e,
            provider="openai",
            phase="stream",
            allow_network_errors=False,
            message="OpenAI stream interrupted",
        ) from e

    for index in sorted(calls):
        entry = calls[index]
        yield ToolCall(
            name=entry["name"],
            arguments=entry["arguments"] or "{}",
            id=entry["id"] or None,
        )

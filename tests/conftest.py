"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, automatic API test
skipping, and the scripted provider double most suites build on. All
fixtures in the isolation section are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import TYPE_CHECKING, Any

import pytest

from finchat.app import ChatApp
from finchat.auth import StaticSessionProvider
from finchat.config import Config
from finchat.providers.models import TextDelta
from finchat.store import InMemoryChatStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from finchat.providers.models import CompletionEvent, CompletionRequest

OPENAI_MODEL = "gpt-3.5-turbo"

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class ScriptedProvider:
    """Completion provider double that replays one scripted stream per call.

    Each script entry is either a list of events for one completion or an
    exception raised when the stream is opened. An exception inside the
    event list is raised mid-stream. Requests are captured for assertions.
    """

    script: list[list[Any] | BaseException] = field(default_factory=list)
    requests: list[CompletionRequest] = field(default_factory=list)
    closed: bool = False

    async def open_stream(
        self, request: CompletionRequest
    ) -> AsyncIterator[CompletionEvent]:
        self.requests.append(request)
        item = self.script.pop(0) if self.script else [TextDelta("ok")]
        if isinstance(item, BaseException):
            raise item
        return _replay(item)

    async def aclose(self) -> None:
        self.closed = True


async def _replay(events: list[Any]) -> AsyncIterator[CompletionEvent]:
    for event in events:
        if isinstance(event, BaseException):
            raise event
        yield event


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Clear OPENAI_* env vars to prevent test pollution.

    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("OPENAI_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if os.getenv("ENABLE_API_TESTS"):
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def openai_model() -> str:
    return OPENAI_MODEL


@pytest.fixture
def fast_config() -> Config:
    """Mock-mode config with every simulated delay disabled."""
    return Config(
        model=OPENAI_MODEL,
        use_mock=True,
        tool_latency_s=0,
        confirmation_step_s=0,
    )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def app(
    fast_config: Config, provider: ScriptedProvider, chat_store: InMemoryChatStore
) -> ChatApp:
    """A signed-in app backed by the scripted provider and an in-memory store."""
    return ChatApp(
        fast_config,
        provider=provider,
        chat_store=chat_store,
        sessions=StaticSessionProvider("user-1"),
    )

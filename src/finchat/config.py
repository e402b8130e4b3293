"""Configuration: frozen Config with explicit model selection."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Literal

from dotenv import load_dotenv

from finchat.constants import (
    CONFIRMATION_STEP_S,
    DEFAULT_MODEL,
    SYSTEM_PROMPT,
    TOOL_LATENCY_S,
)
from finchat.errors import ConfigurationError
from finchat.retry import RetryPolicy

load_dotenv()

ProviderName = Literal["openai"]

_API_KEY_ENV_VARS: dict[ProviderName, str] = {
    "openai": "OPENAI_API_KEY",
}


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a finchat app.

    API keys are auto-resolved from standard environment variables.

    Example:
        config = Config(model="gpt-3.5-turbo")
        # API key is automatically resolved from OPENAI_API_KEY
    """

    model: str = DEFAULT_MODEL
    provider: ProviderName = "openai"
    #: Auto-resolved from ``OPENAI_API_KEY`` when *None*.
    api_key: str | None = None
    use_mock: bool = False
    system_prompt: str = SYSTEM_PROMPT
    #: Simulated fetch latency inside each tool handler.
    tool_latency_s: float = TOOL_LATENCY_S
    #: Duration of each processing step of a purchase confirmation.
    confirmation_step_s: float = CONFIRMATION_STEP_S
    #: Retries for opening a completion stream; tool calls are never retried.
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    #: JSON chat store location; *None* keeps chats in memory.
    store_path: str | None = None

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if self.provider not in _API_KEY_ENV_VARS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint="Supported providers: 'openai'",
            )
        if not self.model or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass Config(model='gpt-3.5-turbo').",
            )
        if self.tool_latency_s < 0:
            raise ConfigurationError(
                f"tool_latency_s must be ≥ 0, got {self.tool_latency_s}",
                hint="Use 0 to disable the simulated fetch delay.",
            )
        if self.confirmation_step_s < 0:
            raise ConfigurationError(
                f"confirmation_step_s must be ≥ 0, got {self.confirmation_step_s}",
                hint="Use 0 to confirm purchases immediately.",
            )

        if self.api_key is None and not self.use_mock:
            env_var = _API_KEY_ENV_VARS[self.provider]
            object.__setattr__(self, "api_key", os.environ.get(env_var))

        if not self.use_mock and not self.api_key:
            env_var = _API_KEY_ENV_VARS[self.provider]
            raise ConfigurationError(
                f"API key required for {self.provider}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, use_mock={self.use_mock})"
        )

    __repr__ = __str__

"""Exception hierarchy for finchat."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class FinchatError(Exception):
    """Base exception for all finchat errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(FinchatError):
    """Configuration validation or resolution failed."""


class ToolNotFoundError(ConfigurationError):
    """The completion provider named a tool that is not registered.

    The tool roster is fixed when the registry is built, so an unknown name
    means the model output cannot be trusted for this turn.
    """

    def __init__(self, name: str, *, known: tuple[str, ...] = ()) -> None:
        hint = f"Registered tools: {', '.join(known)}" if known else None
        super().__init__(f"Unknown tool requested: {name!r}", hint=hint)
        self.name = name


class IllegalStateError(FinchatError):
    """An operation was attempted in a state that forbids it.

    Raised when writing to a closed view stream or committing the same state
    handle twice. Always a programming error.
    """


class PersistenceError(FinchatError):
    """The chat store failed to load or save a conversation."""


class APIError(FinchatError):
    """Completion API call failed.

    Providers attach retry metadata so opening a completion stream can be
    retried a bounded number of times without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)

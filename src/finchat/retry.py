"""Retry for opening a completion stream.

A turn retries only the call that opens the stream. Once the first event has
been read the turn is committed to that stream, and tool handlers never run
twice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

import httpx

from finchat._http import RETRYABLE_STATUS_CODES
from finchat.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to reopen a stream and how long to wait in between.

    ``max_attempts`` counts the first try, so ``1`` disables retries.
    ``max_elapsed_s`` bounds the total time spent, waits included.
    """

    max_attempts: int = 2
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True
    max_elapsed_s: float | None = 15.0

    def __post_init__(self) -> None:
        problems = [
            ("max_attempts", self.max_attempts < 1, ">= 1"),
            ("initial_delay_s", self.initial_delay_s < 0, ">= 0"),
            ("backoff_multiplier", self.backoff_multiplier <= 0, "> 0"),
            ("max_delay_s", self.max_delay_s < 0, ">= 0"),
            (
                "max_elapsed_s",
                self.max_elapsed_s is not None and self.max_elapsed_s < 0,
                ">= 0 or None",
            ),
        ]
        for name, bad, rule in problems:
            if bad:
                raise ValueError(f"RetryPolicy.{name} must be {rule}")

    def backoff(self, retry: int) -> float:
        """Wait before the *retry*-th reopen (1-based), capped at ``max_delay_s``."""
        ceiling = min(
            self.max_delay_s,
            self.initial_delay_s * self.backoff_multiplier ** (retry - 1),
        )
        if ceiling <= 0:
            return 0.0
        return random.uniform(0, ceiling) if self.jitter else ceiling  # noqa: S311


def is_retryable_open_error(exc: BaseException) -> bool:
    """Whether a failure to open a completion stream is worth another try."""
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, APIError):
        return bool(exc.retryable) or exc.status_code in RETRYABLE_STATUS_CODES
    return any(
        isinstance(e, (TimeoutError, httpx.TransportError))
        for e in _walk_exception_chain(exc)
    )


async def open_with_retry(
    open_stream: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool] = is_retryable_open_error,
) -> T:
    """Call *open_stream* until it succeeds or *policy* runs out.

    The last failure propagates unchanged. A provider's ``retry_after_s``
    hint raises the wait but never past the elapsed budget.
    """
    deadline = (
        None if policy.max_elapsed_s is None else time.monotonic() + policy.max_elapsed_s
    )
    attempt = 1
    while True:
        try:
            return await open_stream()
        except Exception as exc:
            if attempt >= policy.max_attempts or not is_retryable(exc):
                raise
            wait = policy.backoff(attempt)
            hint = exc.retry_after_s if isinstance(exc, APIError) else None
            if hint is not None and hint > wait:
                wait = hint
            if deadline is not None:
                left = deadline - time.monotonic()
                if left <= 0:
                    raise
                wait = min(wait, left)
            logger.info(
                "Opening completion stream failed (attempt %d/%d): %s; retrying in %.2fs",
                attempt,
                policy.max_attempts,
                exc,
                wait,
            )
        if wait > 0:
            await asyncio.sleep(wait)
        attempt += 1

"""Auth/session collaborator interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Session:
    """An authenticated session."""

    user_id: str


@runtime_checkable
class SessionProvider(Protocol):
    """Resolve the session for the current request, if any."""

    async def current_session(self) -> Session | None:
        """Return the active session, or None for logged-out users."""
        ...


class StaticSessionProvider:
    """Session provider that always reports the same user (or nobody)."""

    def __init__(self, user_id: str | None = None) -> None:
        self._session = Session(user_id=user_id) if user_id else None

    async def current_session(self) -> Session | None:
        return self._session

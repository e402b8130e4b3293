"""Short random identifiers for messages, view items and conversations."""

from __future__ import annotations

import secrets

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

# Matches the length used for chat ids in stored conversations.
DEFAULT_ID_SIZE = 7


def new_id(size: int = DEFAULT_ID_SIZE) -> str:
    """Return a random alphanumeric id of *size* characters."""
    if size < 1:
        raise ValueError("id size must be >= 1")
    return "".join(secrets.choice(_ALPHABET) for _ in range(size))

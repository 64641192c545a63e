"""Randomness and time sources for code and token minting.

Both are injected into the issuers so tests can substitute deterministic
implementations.
"""

from __future__ import annotations

import secrets
import time
from typing import Protocol

# 32 bytes = 256 bits, well above the 128-bit floor for opaque credentials
DEFAULT_TOKEN_BYTES = 32
MIN_TOKEN_BYTES = 16


class TokenGenerator(Protocol):
    """Source of opaque, unguessable credential values."""

    def generate(self) -> str:
        """Return a new URL-safe credential value."""
        ...


class SecureTokenGenerator:
    """Generates URL-safe values from the operating system CSPRNG."""

    def __init__(self, nbytes: int = DEFAULT_TOKEN_BYTES):
        if nbytes < MIN_TOKEN_BYTES:
            raise ValueError(
                f"Opaque credentials need at least {MIN_TOKEN_BYTES} random bytes"
            )
        self.nbytes = nbytes

    def generate(self) -> str:
        return secrets.token_urlsafe(self.nbytes)


class Clock(Protocol):
    """Source of the current time in milliseconds since the epoch."""

    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return time.time_ns() // 1_000_000


def mask_token(value: str | None) -> str:
    """Shorten a credential value for log output."""
    if not value:
        return "<none>"
    return f"{value[:6]}..."

"""Credential records issued by the authorization server.

Codes and tokens are mutated only through the store's atomic operations:
codes flip to consumed once, tokens flip to revoked once.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel


@dataclass
class AuthorizationCode:
    """Short-lived, single-use authorization code (RFC 6749 Section 4.1.2)."""

    code: str
    client_id: str
    redirect_uri: str
    issued_at: int  # ms epoch
    expires_at: int  # ms epoch
    subject: str | None = None
    scope: str | None = None
    consumed: bool = False

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def is_redeemable(self, client_id: str, redirect_uri: str, now: int) -> bool:
        """Check the code may be exchanged by this client and redirect URI."""
        return (
            not self.consumed
            and not self.is_expired(now)
            and self.client_id == client_id
            and self.redirect_uri == redirect_uri
        )


@dataclass
class AccessToken:
    """Opaque bearer access token."""

    token: str
    client_id: str
    issued_at: int  # ms epoch
    expires_at: int  # ms epoch
    subject: str | None = None
    scope: str | None = None
    refresh_token: str | None = None
    revoked: bool = False

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def expires_in(self, now: int) -> int:
        """Seconds of remaining lifetime, rounded down."""
        return max(0, (self.expires_at - now) // 1000)


@dataclass
class RefreshToken:
    """Opaque refresh token tracking the access tokens minted under it."""

    token: str
    client_id: str
    issued_at: int  # ms epoch
    subject: str | None = None
    scope: str | None = None
    expires_at: int | None = None  # None: never expires
    linked_access_tokens: set[str] = field(default_factory=set)
    revoked: bool = False

    def is_expired(self, now: int) -> bool:
        if self.expires_at is None:
            return False
        return now > self.expires_at


class TokenInfo(BaseModel):
    """Metadata of a verified access token."""

    client_id: str
    subject: str | None = None
    scope: str | None = None
    issued_at: int
    expires_at: int

    @classmethod
    def from_access_token(cls, access_token: AccessToken) -> TokenInfo:
        return cls(
            client_id=access_token.client_id,
            subject=access_token.subject,
            scope=access_token.scope,
            issued_at=access_token.issued_at,
            expires_at=access_token.expires_at,
        )

"""Storage port for codes and tokens.

Every mutating method is a single atomic step against the backing store
(compare-and-swap or a transaction), so implementations backed by shared
external storage keep the consume-once and monotonic-revoke guarantees
without relying on in-process locks held by callers.
"""

from __future__ import annotations

from typing import Protocol

from tollgate.models.tokens import AccessToken, AuthorizationCode, RefreshToken


class OAuthStore(Protocol):
    """Persistence operations used by the issuers, verifier and revocation."""

    async def save_code(self, code: AuthorizationCode) -> None:
        """Persist a freshly issued authorization code."""
        ...

    async def consume_code(
        self, code: str, client_id: str, redirect_uri: str, now: int
    ) -> AuthorizationCode | None:
        """Atomically mark a code consumed.

        Returns the record only if the code exists, is unconsumed, unexpired
        and bound to this client and redirect URI. Otherwise returns None and
        changes nothing.
        """
        ...

    async def release_code(self, code: str) -> None:
        """Undo a consume whose token issuance did not complete."""
        ...

    async def save_tokens(
        self, access_token: AccessToken, refresh_token: RefreshToken | None = None
    ) -> None:
        """Persist an access token and, if given, its refresh token together."""
        ...

    async def get_access_token(self, token: str) -> AccessToken | None: ...

    async def get_refresh_token(self, token: str) -> RefreshToken | None: ...

    async def rotate_refresh_token(
        self,
        token: str,
        client_id: str,
        now: int,
        access_token: AccessToken,
        new_refresh_token: RefreshToken | None = None,
        revoke_superseded: bool = False,
    ) -> RefreshToken | None:
        """Atomically exchange a refresh token for a new access token.

        Succeeds only if the refresh token exists, is unrevoked, unexpired and
        bound to client_id. On success the new access token is stored and
        becomes the only linked access token; with new_refresh_token the old
        refresh token is revoked and replaced. Returns the refresh token now
        in effect, or None when the exchange is refused.
        """
        ...

    async def revoke_access_token(self, token: str) -> AccessToken | None:
        """Mark an access token revoked; returns the record if it exists."""
        ...

    async def revoke_refresh_token(
        self, token: str, cascade: bool = False
    ) -> RefreshToken | None:
        """Mark a refresh token revoked, optionally with its linked access tokens."""
        ...

"""In-process store for development, tests and single-process deployments."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from tollgate.models.tokens import AccessToken, AuthorizationCode, RefreshToken

logger = logging.getLogger(__name__)


def _copy_refresh(record: RefreshToken) -> RefreshToken:
    return replace(record, linked_access_tokens=set(record.linked_access_tokens))


class InMemoryOAuthStore:
    """Dict-backed OAuthStore.

    A single asyncio.Lock serializes mutations, which makes each operation
    linearizable within one event loop. Records handed out are copies, so
    callers never mutate stored state directly.
    """

    def __init__(self):
        self._codes: dict[str, AuthorizationCode] = {}
        self._access_tokens: dict[str, AccessToken] = {}
        self._refresh_tokens: dict[str, RefreshToken] = {}
        self._lock = asyncio.Lock()

    async def save_code(self, code: AuthorizationCode) -> None:
        async with self._lock:
            self._codes[code.code] = replace(code)

    async def consume_code(
        self, code: str, client_id: str, redirect_uri: str, now: int
    ) -> AuthorizationCode | None:
        async with self._lock:
            record = self._codes.get(code)
            if record is None or not record.is_redeemable(client_id, redirect_uri, now):
                return None
            record.consumed = True
            return replace(record)

    async def release_code(self, code: str) -> None:
        async with self._lock:
            record = self._codes.get(code)
            if record is not None:
                record.consumed = False

    async def save_tokens(
        self, access_token: AccessToken, refresh_token: RefreshToken | None = None
    ) -> None:
        async with self._lock:
            self._access_tokens[access_token.token] = replace(access_token)
            if refresh_token is not None:
                self._refresh_tokens[refresh_token.token] = _copy_refresh(
                    refresh_token
                )

    async def get_access_token(self, token: str) -> AccessToken | None:
        async with self._lock:
            record = self._access_tokens.get(token)
            return replace(record) if record is not None else None

    async def get_refresh_token(self, token: str) -> RefreshToken | None:
        async with self._lock:
            record = self._refresh_tokens.get(token)
            return _copy_refresh(record) if record is not None else None

    async def rotate_refresh_token(
        self,
        token: str,
        client_id: str,
        now: int,
        access_token: AccessToken,
        new_refresh_token: RefreshToken | None = None,
        revoke_superseded: bool = False,
    ) -> RefreshToken | None:
        async with self._lock:
            current = self._refresh_tokens.get(token)
            if (
                current is None
                or current.revoked
                or current.is_expired(now)
                or current.client_id != client_id
            ):
                return None

            if revoke_superseded:
                for linked in current.linked_access_tokens:
                    superseded = self._access_tokens.get(linked)
                    if superseded is not None:
                        superseded.revoked = True

            if new_refresh_token is not None:
                current.revoked = True
                current.linked_access_tokens = set()
                effective = _copy_refresh(new_refresh_token)
                self._refresh_tokens[effective.token] = effective
            else:
                effective = current

            effective.linked_access_tokens = {access_token.token}
            self._access_tokens[access_token.token] = replace(
                access_token, refresh_token=effective.token
            )
            return _copy_refresh(effective)

    async def revoke_access_token(self, token: str) -> AccessToken | None:
        async with self._lock:
            record = self._access_tokens.get(token)
            if record is None:
                return None
            record.revoked = True
            return replace(record)

    async def revoke_refresh_token(
        self, token: str, cascade: bool = False
    ) -> RefreshToken | None:
        async with self._lock:
            record = self._refresh_tokens.get(token)
            if record is None:
                return None
            record.revoked = True
            if cascade:
                for linked in record.linked_access_tokens:
                    access_token = self._access_tokens.get(linked)
                    if access_token is not None:
                        access_token.revoked = True
                logger.debug(
                    f"Cascaded revocation to {len(record.linked_access_tokens)} "
                    "access token(s)"
                )
            return _copy_refresh(record)

"""Token revocation (RFC 7009 semantics: always succeeds for the caller)."""

from __future__ import annotations

import logging

from tollgate.models.errors import ServerError
from tollgate.primitives.generators import mask_token
from tollgate.stores.base import OAuthStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_HINTS = frozenset({"accesstoken", "access_token"})
REFRESH_TOKEN_HINTS = frozenset({"refreshtoken", "refresh_token"})


class RevocationHandler:
    """Marks access or refresh tokens revoked.

    Revocation is monotonic and idempotent: revoking an unknown or already
    revoked token is not an error.
    """

    def __init__(self, store: OAuthStore, cascade_refresh_revocation: bool = True):
        self._store = store
        self.cascade_refresh_revocation = cascade_refresh_revocation

    async def invalidate(
        self,
        token: str,
        token_type_hint: str | None = None,
        client_id: str | None = None,
    ) -> None:
        """Revoke a token.

        Access tokens are tried first unless the hint names a refresh token.
        When client_id is given, tokens bound to another client are left
        untouched.

        Raises:
            ServerError: If the store fails
        """
        hint = (token_type_hint or "").lower()
        if hint in REFRESH_TOKEN_HINTS:
            order = (self._revoke_refresh, self._revoke_access)
        else:
            order = (self._revoke_access, self._revoke_refresh)

        try:
            for revoke in order:
                if await revoke(token, client_id):
                    return
        except Exception as e:
            raise ServerError(f"Failed to revoke token: {e}") from e

        logger.debug(f"Revocation of unknown token {mask_token(token)} ignored")

    async def _revoke_access(self, token: str, client_id: str | None) -> bool:
        record = await self._store.get_access_token(token)
        if record is None:
            return False
        if client_id is not None and record.client_id != client_id:
            logger.warning(
                f"Client {client_id} tried to revoke access token "
                f"{mask_token(token)} owned by another client"
            )
            return True
        await self._store.revoke_access_token(token)
        logger.info(f"Revoked access token {mask_token(token)}")
        return True

    async def _revoke_refresh(self, token: str, client_id: str | None) -> bool:
        record = await self._store.get_refresh_token(token)
        if record is None:
            return False
        if client_id is not None and record.client_id != client_id:
            logger.warning(
                f"Client {client_id} tried to revoke refresh token "
                f"{mask_token(token)} owned by another client"
            )
            return True
        await self._store.revoke_refresh_token(
            token, cascade=self.cascade_refresh_revocation
        )
        logger.info(
            f"Revoked refresh token {mask_token(token)}"
            + (" and its access tokens" if self.cascade_refresh_revocation else "")
        )
        return True

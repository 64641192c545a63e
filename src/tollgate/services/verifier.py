"""Bearer access token verification."""

from __future__ import annotations

import logging

from tollgate.models.errors import (
    InvalidTokenError,
    ServerError,
    TokenExpiredError,
    TokenRevokedError,
)
from tollgate.models.tokens import TokenInfo
from tollgate.primitives.generators import Clock, mask_token
from tollgate.primitives.headers import strip_bearer
from tollgate.stores.base import OAuthStore

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Validates presented access tokens against the store.

    Internally distinguishes unknown, expired and revoked tokens; callers
    exposing the result on the wire must collapse them (every subclass of
    InvalidTokenError renders the same wire error).
    """

    def __init__(self, store: OAuthStore, clock: Clock):
        self._store = store
        self._clock = clock

    async def verify(self, presented: str | None) -> TokenInfo:
        """Verify a `Bearer <token>` value.

        Raises:
            InvalidTokenError: If the token is absent or unknown
            TokenRevokedError: If the token was revoked
            TokenExpiredError: If the token is past its expiry
            ServerError: If the store fails
        """
        token = strip_bearer(presented)

        try:
            access_token = await self._store.get_access_token(token)
        except Exception as e:
            raise ServerError(f"Failed to load access token: {e}") from e

        if access_token is None:
            logger.warning(f"Unknown access token {mask_token(token)}")
            raise InvalidTokenError("Access token not found")
        if access_token.revoked:
            logger.warning(f"Revoked access token {mask_token(token)}")
            raise TokenRevokedError("Access token has been revoked")
        if access_token.is_expired(self._clock.now()):
            logger.warning(f"Expired access token {mask_token(token)}")
            raise TokenExpiredError("Access token has expired")

        logger.debug(
            f"Verified access token {mask_token(token)} "
            f"for client {access_token.client_id}"
        )
        return TokenInfo.from_access_token(access_token)

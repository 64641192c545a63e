"""Authorization code issuance and single-use redemption."""

from __future__ import annotations

import logging

from tollgate.models.clients import Client, GrantType
from tollgate.models.errors import (
    InvalidGrantError,
    InvalidRequestError,
    OAuth2Error,
    ServerError,
    UnauthorizedClientError,
)
from tollgate.models.tokens import AuthorizationCode
from tollgate.primitives.generators import Clock, TokenGenerator, mask_token
from tollgate.stores.base import OAuthStore

logger = logging.getLogger(__name__)


class CodeIssuer:
    """Issues short-lived authorization codes and redeems them exactly once."""

    def __init__(
        self,
        store: OAuthStore,
        generator: TokenGenerator,
        clock: Clock,
        code_lifetime_ms: int,
    ):
        self._store = store
        self._generator = generator
        self._clock = clock
        self.code_lifetime_ms = code_lifetime_ms

    async def issue(
        self,
        client: Client,
        redirect_uri: str,
        subject: str | None = None,
        scope: str | None = None,
    ) -> AuthorizationCode:
        """Issue a code bound to the client and redirect URI.

        Raises:
            InvalidRequestError: If the redirect URI is not registered
            UnauthorizedClientError: If the client may not use the code grant
            ServerError: If the code cannot be stored
        """
        if not client.check_redirect_uri(redirect_uri):
            raise InvalidRequestError(
                f"redirect_uri is not registered for client {client.client_id}"
            )
        if not client.check_grant_type(GrantType.AUTHORIZATION_CODE):
            raise UnauthorizedClientError(
                f"Client {client.client_id} may not use authorization_code"
            )

        now = self._clock.now()
        code = AuthorizationCode(
            code=self._generator.generate(),
            client_id=client.client_id,
            redirect_uri=redirect_uri,
            subject=subject,
            scope=scope,
            issued_at=now,
            expires_at=now + self.code_lifetime_ms,
        )

        try:
            await self._store.save_code(code)
        except Exception as e:
            raise ServerError(f"Failed to store authorization code: {e}") from e

        logger.info(
            f"Issued authorization code {mask_token(code.code)} "
            f"for client {client.client_id}"
        )
        return code

    async def consume(
        self, code: str, client_id: str, redirect_uri: str
    ) -> AuthorizationCode:
        """Redeem a code; at most one caller ever succeeds per code.

        Raises:
            InvalidGrantError: If the code is unknown, consumed, expired, or was
                issued to another client or redirect URI
            ServerError: If the store fails
        """
        try:
            record = await self._store.consume_code(
                code, client_id, redirect_uri, self._clock.now()
            )
        except OAuth2Error:
            raise
        except Exception as e:
            raise ServerError(f"Failed to consume authorization code: {e}") from e

        if record is None:
            logger.warning(
                f"Rejected authorization code {mask_token(code)} "
                f"for client {client_id}"
            )
            raise InvalidGrantError("Authorization code is invalid or expired")

        logger.debug(f"Consumed authorization code {mask_token(code)}")
        return record

    async def release(self, code: str) -> None:
        """Roll back a consume after a failed token issuance."""
        try:
            await self._store.release_code(code)
        except Exception as e:
            logger.error(f"Failed to release authorization code {mask_token(code)}: {e}")
            raise ServerError(f"Failed to release authorization code: {e}") from e
        logger.debug(f"Released authorization code {mask_token(code)}")

"""Access and refresh token minting and refresh-token rotation."""

from __future__ import annotations

import logging

from tollgate.models.clients import REFRESHABLE_GRANTS, GrantType
from tollgate.models.config import OAuthConfig
from tollgate.models.errors import InvalidGrantError, OAuth2Error, ServerError
from tollgate.models.tokens import AccessToken, RefreshToken
from tollgate.primitives.generators import Clock, TokenGenerator, mask_token
from tollgate.stores.base import OAuthStore

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Mints opaque tokens bound to a client and optional subject.

    The client binding is fixed at creation and carried unchanged through
    every refresh exchange.
    """

    def __init__(
        self,
        store: OAuthStore,
        generator: TokenGenerator,
        clock: Clock,
        config: OAuthConfig,
    ):
        self._store = store
        self._generator = generator
        self._clock = clock
        self._config = config

    def _new_access_token(
        self,
        client_id: str,
        subject: str | None,
        scope: str | None,
        now: int,
        refresh_token: str | None = None,
    ) -> AccessToken:
        return AccessToken(
            token=self._generator.generate(),
            client_id=client_id,
            subject=subject,
            scope=scope,
            issued_at=now,
            expires_at=now + self._config.access_token_lifetime_ms,
            refresh_token=refresh_token,
        )

    def _new_refresh_token(
        self, client_id: str, subject: str | None, scope: str | None, now: int
    ) -> RefreshToken:
        lifetime = self._config.refresh_token_lifetime_ms
        return RefreshToken(
            token=self._generator.generate(),
            client_id=client_id,
            subject=subject,
            scope=scope,
            issued_at=now,
            expires_at=now + lifetime if lifetime is not None else None,
        )

    async def issue_access_token(
        self,
        client_id: str,
        grant_type: GrantType,
        subject: str | None = None,
        scope: str | None = None,
        with_refresh: bool = False,
    ) -> tuple[AccessToken, RefreshToken | None]:
        """Mint an access token and, where the grant permits, a refresh token.

        A refresh token is only minted when with_refresh is set and the grant
        type is authorization_code or password.

        Raises:
            ServerError: If the tokens cannot be stored
        """
        now = self._clock.now()
        refresh_token = None
        if with_refresh and grant_type in REFRESHABLE_GRANTS:
            refresh_token = self._new_refresh_token(client_id, subject, scope, now)

        access_token = self._new_access_token(
            client_id,
            subject,
            scope,
            now,
            refresh_token=refresh_token.token if refresh_token else None,
        )
        if refresh_token is not None:
            refresh_token.linked_access_tokens.add(access_token.token)

        try:
            await self._store.save_tokens(access_token, refresh_token)
        except Exception as e:
            raise ServerError(f"Failed to store issued tokens: {e}") from e

        logger.info(
            f"Issued access token {mask_token(access_token.token)} "
            f"({grant_type.value}) for client {client_id}"
            + (
                f" with refresh token {mask_token(refresh_token.token)}"
                if refresh_token
                else ""
            )
        )
        return access_token, refresh_token

    async def rotate_refresh(
        self, refresh_token: str, client_id: str
    ) -> tuple[AccessToken, RefreshToken]:
        """Exchange a refresh token for a new access token.

        Depending on configuration the refresh token is reused or replaced by a
        new one, and previously linked access tokens may be revoked. Identity
        (client and subject) and scope carry over from the refresh token.

        Raises:
            InvalidGrantError: If the refresh token is unknown, revoked, expired
                or bound to another client
            ServerError: If the store fails
        """
        try:
            current = await self._store.get_refresh_token(refresh_token)
        except Exception as e:
            raise ServerError(f"Failed to load refresh token: {e}") from e

        now = self._clock.now()
        if (
            current is None
            or current.revoked
            or current.is_expired(now)
            or current.client_id != client_id
        ):
            logger.warning(
                f"Rejected refresh token {mask_token(refresh_token)} "
                f"for client {client_id}"
            )
            raise InvalidGrantError("Refresh token is invalid or revoked")

        new_refresh = None
        if self._config.rotate_refresh_tokens:
            new_refresh = self._new_refresh_token(
                current.client_id, current.subject, current.scope, now
            )
        access_token = self._new_access_token(
            current.client_id,
            current.subject,
            current.scope,
            now,
            refresh_token=new_refresh.token if new_refresh else current.token,
        )

        try:
            effective = await self._store.rotate_refresh_token(
                refresh_token,
                client_id,
                now,
                access_token,
                new_refresh_token=new_refresh,
                revoke_superseded=self._config.revoke_superseded_access_tokens,
            )
        except OAuth2Error:
            raise
        except Exception as e:
            raise ServerError(f"Failed to rotate refresh token: {e}") from e

        if effective is None:
            # Lost a race with a concurrent rotation or revocation
            logger.warning(
                f"Refresh token {mask_token(refresh_token)} changed during exchange"
            )
            raise InvalidGrantError("Refresh token is invalid or revoked")

        logger.info(
            f"Refreshed access token {mask_token(access_token.token)} "
            f"for client {client_id} under refresh token "
            f"{mask_token(effective.token)}"
        )
        return access_token, effective

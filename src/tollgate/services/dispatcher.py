"""Grant dispatcher: validates authorize and token requests per grant type.

Every request walks Received -> ClientAuthenticated -> GrantValidated ->
TokenIssued, or drops to Rejected at any step. Field presence is checked
before any lookup, and the client is authenticated before any grant-specific
check, so bad client credentials never reveal anything about codes or tokens.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from tollgate.models.clients import Client, GrantType
from tollgate.models.config import OAuthConfig
from tollgate.models.errors import (
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    OAuth2Error,
    UnauthorizedClientError,
    UnauthorizedError,
    UnsupportedGrantTypeError,
    UnsupportedResponseTypeError,
)
from tollgate.models.flow import AuthorizationResponse, AuthorizeRequest, TokenRequest
from tollgate.models.tokens import AccessToken, RefreshToken
from tollgate.primitives.generators import Clock
from tollgate.services.codes import CodeIssuer
from tollgate.services.directory import CredentialDirectoryAdapter
from tollgate.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

PasswordCheck = Callable[[str, str], bool]

_RESPONSE_TYPES = {
    "code": GrantType.AUTHORIZATION_CODE,
    "token": GrantType.IMPLICIT,
}

_TOKEN_ENDPOINT_GRANTS = frozenset(
    {
        GrantType.AUTHORIZATION_CODE,
        GrantType.PASSWORD,
        GrantType.CLIENT_CREDENTIALS,
        GrantType.REFRESH_TOKEN,
    }
)


class RequestState(str, Enum):
    RECEIVED = "received"
    CLIENT_AUTHENTICATED = "client_authenticated"
    GRANT_VALIDATED = "grant_validated"
    TOKEN_ISSUED = "token_issued"
    REJECTED = "rejected"


_TRANSITIONS = {
    RequestState.RECEIVED: {RequestState.CLIENT_AUTHENTICATED, RequestState.REJECTED},
    RequestState.CLIENT_AUTHENTICATED: {
        RequestState.GRANT_VALIDATED,
        RequestState.REJECTED,
    },
    RequestState.GRANT_VALIDATED: {RequestState.TOKEN_ISSUED, RequestState.REJECTED},
    RequestState.TOKEN_ISSUED: set(),
    RequestState.REJECTED: set(),
}


@dataclass
class GrantContext:
    """Per-request progress through the dispatcher state machine."""

    endpoint: str
    grant_type: GrantType | None = None
    client: Client | None = None
    state: RequestState = RequestState.RECEIVED
    history: list[RequestState] = field(default_factory=lambda: [RequestState.RECEIVED])

    def advance(self, new_state: RequestState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal dispatcher transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)
        logger.debug(
            f"{self.endpoint} request "
            f"[{self.grant_type.value if self.grant_type else '-'}] -> {new_state.value}"
        )


@dataclass(frozen=True)
class GrantResult:
    """Tokens produced by a successful token endpoint request."""

    grant_type: GrantType
    access_token: AccessToken
    refresh_token: RefreshToken | None = None


class GrantDispatcher:
    """Routes authorize and token requests to the code and token issuers."""

    def __init__(
        self,
        directory: CredentialDirectoryAdapter,
        code_issuer: CodeIssuer,
        token_issuer: TokenIssuer,
        config: OAuthConfig,
        clock: Clock,
        password_check: PasswordCheck | None = None,
    ):
        self._directory = directory
        self._code_issuer = code_issuer
        self._token_issuer = token_issuer
        self._config = config
        self._clock = clock
        self._password_check = password_check

    async def authorize(self, request: AuthorizeRequest) -> AuthorizationResponse:
        """Handle an authorize request for the code or implicit grant.

        Raises:
            UnsupportedResponseTypeError: If response_type is unknown or disabled
            InvalidClientError: If the client is not registered
            InvalidRequestError: If the redirect URI is not registered
            UnauthorizedClientError: If the client may not use the grant
        """
        context = GrantContext(endpoint="authorize")
        try:
            return await self._authorize(context, request)
        except OAuth2Error as e:
            self._reject(context, e)
            raise

    async def _authorize(
        self, context: GrantContext, request: AuthorizeRequest
    ) -> AuthorizationResponse:
        grant_type = _RESPONSE_TYPES.get(request.response_type)
        if grant_type is None or not self._config.allows_grant(grant_type):
            raise UnsupportedResponseTypeError(
                f"Unsupported response_type: {request.response_type}"
            )
        context.grant_type = grant_type

        client = await self._directory.resolve_client(request.client_id)
        context.client = client
        context.advance(RequestState.CLIENT_AUTHENTICATED)

        if not client.check_redirect_uri(request.redirect_uri):
            raise InvalidRequestError(
                f"redirect_uri is not registered for client {client.client_id}"
            )
        if not client.check_grant_type(grant_type):
            raise UnauthorizedClientError(
                f"Client {client.client_id} may not use {grant_type.value}"
            )
        context.advance(RequestState.GRANT_VALIDATED)

        if grant_type is GrantType.AUTHORIZATION_CODE:
            code = await self._code_issuer.issue(
                client, request.redirect_uri, scope=request.scope
            )
            context.advance(RequestState.TOKEN_ISSUED)
            return AuthorizationResponse(code=code.code, state=request.state)

        access_token, _ = await self._token_issuer.issue_access_token(
            client.client_id, GrantType.IMPLICIT, scope=request.scope
        )
        context.advance(RequestState.TOKEN_ISSUED)
        return AuthorizationResponse(
            access_token=access_token.token,
            token_type=self._config.token_type,
            expires_in=access_token.expires_in(self._clock.now()),
            scope=access_token.scope,
            state=request.state,
        )

    async def token(
        self, request: TokenRequest, authorization: str | None
    ) -> GrantResult:
        """Handle a token endpoint request.

        Args:
            request: Parsed token request
            authorization: Raw `Authorization` header carrying Basic client auth

        Raises:
            InvalidRequestError: If a field required by the grant is missing
            UnsupportedGrantTypeError: If the grant type is unknown or disabled
            UnauthorizedError: If client authentication fails
            UnauthorizedClientError: If the client may not use the grant
            InvalidGrantError: If the code, password or refresh token is bad
        """
        context = GrantContext(endpoint="token")
        try:
            return await self._token(context, request, authorization)
        except OAuth2Error as e:
            self._reject(context, e)
            raise

    async def _token(
        self,
        context: GrantContext,
        request: TokenRequest,
        authorization: str | None,
    ) -> GrantResult:
        grant_type = self._parse_grant_type(request.grant_type)
        context.grant_type = grant_type

        # Field presence first, no lookups yet
        if grant_type is GrantType.AUTHORIZATION_CODE:
            request.require("code", "redirect_uri")
        elif grant_type is GrantType.PASSWORD:
            request.require("username", "password")
            if self._password_check is None:
                raise UnsupportedGrantTypeError(
                    "password grant has no credential check configured"
                )
        elif grant_type is GrantType.REFRESH_TOKEN:
            request.require("refresh_token")

        client = await self._authenticate(authorization)
        context.client = client
        context.advance(RequestState.CLIENT_AUTHENTICATED)

        if grant_type is not GrantType.REFRESH_TOKEN and not client.check_grant_type(
            grant_type
        ):
            raise UnauthorizedClientError(
                f"Client {client.client_id} may not use {grant_type.value}"
            )

        if grant_type is GrantType.AUTHORIZATION_CODE:
            result = await self._exchange_code(context, client, request)
        elif grant_type is GrantType.PASSWORD:
            result = await self._password_grant(context, client, request)
        elif grant_type is GrantType.CLIENT_CREDENTIALS:
            context.advance(RequestState.GRANT_VALIDATED)
            access_token, _ = await self._token_issuer.issue_access_token(
                client.client_id, grant_type, scope=request.scope
            )
            result = GrantResult(grant_type, access_token)
        else:
            context.advance(RequestState.GRANT_VALIDATED)
            access_token, refresh_token = await self._token_issuer.rotate_refresh(
                request.refresh_token, client.client_id
            )
            result = GrantResult(grant_type, access_token, refresh_token)

        context.advance(RequestState.TOKEN_ISSUED)
        return result

    def _parse_grant_type(self, name: str) -> GrantType:
        try:
            grant_type = GrantType.parse(name)
        except ValueError:
            raise UnsupportedGrantTypeError(f"Unsupported grant_type: {name}") from None
        if grant_type not in _TOKEN_ENDPOINT_GRANTS or not self._config.allows_grant(
            grant_type
        ):
            raise UnsupportedGrantTypeError(f"Unsupported grant_type: {name}")
        return grant_type

    async def _authenticate(self, authorization: str | None) -> Client:
        try:
            return await self._directory.authenticate_client(authorization)
        except InvalidClientError as e:
            logger.warning(f"Token endpoint client authentication failed: {e}")
            raise UnauthorizedError(realm=self._config.realm) from e

    async def _exchange_code(
        self, context: GrantContext, client: Client, request: TokenRequest
    ) -> GrantResult:
        code = await self._code_issuer.consume(
            request.code, client.client_id, request.redirect_uri
        )
        context.advance(RequestState.GRANT_VALIDATED)
        try:
            access_token, refresh_token = await self._token_issuer.issue_access_token(
                client.client_id,
                GrantType.AUTHORIZATION_CODE,
                subject=code.subject,
                scope=code.scope,
                with_refresh=True,
            )
        except Exception:
            # Consume and issue are one logical step
            await asyncio.shield(self._code_issuer.release(code.code))
            raise
        except BaseException:
            # Cancellation must reach the caller even if the release fails
            try:
                await asyncio.shield(self._code_issuer.release(code.code))
            except Exception as release_error:
                logger.error(
                    f"Code rollback failed during cancellation: {release_error}"
                )
            raise
        return GrantResult(GrantType.AUTHORIZATION_CODE, access_token, refresh_token)

    async def _password_grant(
        self, context: GrantContext, client: Client, request: TokenRequest
    ) -> GrantResult:
        if not self._password_check(request.username, request.password):
            raise InvalidGrantError("Invalid resource owner credentials")
        context.advance(RequestState.GRANT_VALIDATED)
        access_token, refresh_token = await self._token_issuer.issue_access_token(
            client.client_id,
            GrantType.PASSWORD,
            subject=request.username,
            scope=request.scope,
            with_refresh=True,
        )
        return GrantResult(GrantType.PASSWORD, access_token, refresh_token)

    def _reject(self, context: GrantContext, error: OAuth2Error) -> None:
        if context.state in (RequestState.TOKEN_ISSUED, RequestState.REJECTED):
            return
        context.advance(RequestState.REJECTED)
        client_id = context.client.client_id if context.client else "-"
        logger.warning(
            f"Rejected {context.endpoint} request for client {client_id}: "
            f"{type(error).__name__} ({error.error_code}): {error.description}"
        )

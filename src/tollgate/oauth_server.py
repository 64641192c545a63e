"""OAuth 2.0 authorization server engine.

Wires the credential directory, store and issuers into one context object
and exposes the wire-level entry points: authorize, token, verify and
invalidate. Each instance is independent; nothing is shared at module level.
"""

from __future__ import annotations

import logging

from tollgate.models.clients import Client
from tollgate.models.config import OAuthConfig
from tollgate.models.errors import (
    InvalidClientError,
    OAuth2Error,
    ServerError,
    UnauthorizedError,
    UnsupportedGrantTypeError,
)
from tollgate.models.flow import (
    AuthorizationResponse,
    AuthorizeRequest,
    RevocationRequest,
    RevocationResponse,
    TokenRequest,
    TokenResponse,
    VerificationResponse,
)
from tollgate.models.tokens import TokenInfo
from tollgate.primitives.generators import (
    Clock,
    SecureTokenGenerator,
    SystemClock,
    TokenGenerator,
)
from tollgate.services.codes import CodeIssuer
from tollgate.services.directory import CredentialDirectory, CredentialDirectoryAdapter
from tollgate.services.dispatcher import GrantDispatcher, GrantResult, PasswordCheck
from tollgate.services.revocation import RevocationHandler
from tollgate.services.tokens import TokenIssuer
from tollgate.services.verifier import TokenVerifier
from tollgate.stores.base import OAuthStore
from tollgate.stores.memory import InMemoryOAuthStore

logger = logging.getLogger(__name__)


def _unexpected(e: Exception) -> ServerError:
    """Log an unexpected failure and turn it into a ServerError.

    Must be called from inside the handling `except` block.
    """
    logger.exception(f"Unexpected error in authorization server: {e}")
    return ServerError(f"Unexpected error: {e}")


class OAuth2Server:
    """Authorization server context, constructed once per deployment.

    Configuration and injected capabilities are fixed at construction time.
    Entry points never raise OAuth2Error; failures come back as response
    models carrying `error` and `error_description`.
    """

    def __init__(
        self,
        directory: CredentialDirectory,
        store: OAuthStore | None = None,
        config: OAuthConfig | None = None,
        password_check: PasswordCheck | None = None,
        token_generator: TokenGenerator | None = None,
        clock: Clock | None = None,
    ):
        """Initialize the authorization server.

        Args:
            directory: External directory of registered clients
            store: Code and token store (in-memory by default)
            config: Lifetimes, grant allowlist and refresh policy
            password_check: Resource owner credential predicate for the
                password grant; without it the password grant is unsupported
            token_generator: Source of opaque code and token values
            clock: Millisecond time source
        """
        self.config = config or OAuthConfig()
        self.store = store if store is not None else InMemoryOAuthStore()
        self._clock = clock or SystemClock()
        generator = token_generator or SecureTokenGenerator()

        self.directory = CredentialDirectoryAdapter(directory)
        self.code_issuer = CodeIssuer(
            self.store, generator, self._clock, self.config.code_lifetime_ms
        )
        self.token_issuer = TokenIssuer(self.store, generator, self._clock, self.config)
        self.dispatcher = GrantDispatcher(
            self.directory,
            self.code_issuer,
            self.token_issuer,
            self.config,
            self._clock,
            password_check=password_check,
        )
        self.verifier = TokenVerifier(self.store, self._clock)
        self.revocation = RevocationHandler(
            self.store, cascade_refresh_revocation=self.config.cascade_refresh_revocation
        )

    async def authorize(self, query: str) -> AuthorizationResponse:
        """Handle an authorize request (response_type code or token).

        Errors come back in the same shape as success, carrying `error`.
        """
        state = None
        try:
            request = AuthorizeRequest.from_query(query)
            state = request.state
            return await self.dispatcher.authorize(request)
        except OAuth2Error as e:
            error = e
        except Exception as e:
            error = _unexpected(e)
        return AuthorizationResponse(
            error=error.error_code, error_description=error.wire_description, state=state
        )

    async def generate_token(
        self, body: str, authorization: str | None = None
    ) -> TokenResponse:
        """Handle a token endpoint request for any supported grant type.

        Args:
            body: URL-encoded request body
            authorization: `Authorization: Basic ...` header value
        """
        try:
            request = TokenRequest.from_body(body)
        except OAuth2Error as e:
            return self._token_error(e)
        return await self._dispatch_token(request, authorization)

    async def refresh_token(
        self, body: str, authorization: str | None = None
    ) -> TokenResponse:
        """Handle a token request that must use the refresh_token grant."""
        try:
            request = TokenRequest.from_body(body)
        except OAuth2Error as e:
            return self._token_error(e)
        if request.grant_type != "refresh_token":
            return self._token_error(
                UnsupportedGrantTypeError("Expected grant_type refresh_token")
            )
        return await self._dispatch_token(request, authorization)

    async def _dispatch_token(
        self, request: TokenRequest, authorization: str | None
    ) -> TokenResponse:
        try:
            result = await self.dispatcher.token(request, authorization)
            return self._token_response(result)
        except OAuth2Error as e:
            return self._token_error(e)
        except Exception as e:
            return self._token_error(_unexpected(e))

    async def verify_token(self, authorization: str | None) -> VerificationResponse:
        """Verify a `Bearer <token>` value.

        Unknown, expired and revoked tokens produce the identical error.
        """
        try:
            info = await self.verifier.verify(authorization)
            return VerificationResponse(**info.model_dump())
        except OAuth2Error as e:
            error = e
        except Exception as e:
            error = _unexpected(e)
        return VerificationResponse(
            error=error.error_code,
            error_description=error.wire_description,
            status_code=error.status_code,
        )

    async def token_info(self, authorization: str | None) -> TokenInfo:
        """Verify a bearer value, raising the internal error taxonomy."""
        return await self.verifier.verify(authorization)

    async def invalidate_token(
        self, body: str, authorization: str | None = None
    ) -> RevocationResponse:
        """Revoke an access or refresh token on behalf of an authenticated client.

        Unknown and already revoked tokens still succeed.
        """
        try:
            request = RevocationRequest.from_body(body)
            client = await self._authenticate(authorization)
            await self.revocation.invalidate(
                request.token, request.token_type_hint, client_id=client.client_id
            )
            return RevocationResponse()
        except OAuth2Error as e:
            error = e
        except Exception as e:
            error = _unexpected(e)
        return RevocationResponse(
            error=error.error_code,
            error_description=error.wire_description,
            status_code=error.status_code,
            www_authenticate=getattr(error, "www_authenticate", None),
        )

    async def _authenticate(self, authorization: str | None) -> Client:
        try:
            return await self.directory.authenticate_client(authorization)
        except InvalidClientError as e:
            logger.warning(f"Revocation client authentication failed: {e}")
            raise UnauthorizedError(realm=self.config.realm) from e

    def _token_response(self, result: GrantResult) -> TokenResponse:
        access_token = result.access_token
        return TokenResponse(
            access_token=access_token.token,
            token_type=self.config.token_type,
            expires_in=access_token.expires_in(self._clock.now()),
            refresh_token=result.refresh_token.token if result.refresh_token else None,
            scope=access_token.scope,
        )

    def _token_error(self, error: OAuth2Error) -> TokenResponse:
        return TokenResponse(
            error=error.error_code,
            error_description=error.wire_description,
            status_code=error.status_code,
            www_authenticate=getattr(error, "www_authenticate", None),
        )

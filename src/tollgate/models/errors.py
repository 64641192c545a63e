"""Exception hierarchy for OAuth 2.0 authorization server errors.

Each exception carries the RFC 6749 wire error code plus a status hint for
the transport layer. Subclasses refine the internal taxonomy for logging
while rendering the same wire error as their parent.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth 2.0 server errors."""

    error_code: str = "server_error"
    status_code: int = 500
    default_description: str = "The authorization server encountered an error"

    def __init__(self, description: str | None = None):
        self.description = description or self.default_description
        super().__init__(self.description)

    @property
    def wire_description(self) -> str:
        """Description safe to return to the caller."""
        return self.description


class InvalidRequestError(OAuth2Error):
    """Raised when a required field is missing or malformed."""

    error_code = "invalid_request"
    status_code = 400
    default_description = "The request is missing a required parameter"


class InvalidClientError(OAuth2Error):
    """Raised when client lookup or client authentication fails."""

    error_code = "invalid_client"
    status_code = 401
    default_description = "Client authentication failed"


class UnknownClientError(InvalidClientError):
    """Raised when the client identifier is not registered."""

    pass


class InvalidSecretError(InvalidClientError):
    """Raised when the client secret does not match."""

    pass


class MalformedAuthHeaderError(InvalidClientError):
    """Raised when the Authorization header is absent or not valid Basic auth."""

    pass


class UnauthorizedError(InvalidClientError):
    """Raised at the token endpoint when client authentication fails.

    The transport layer should answer with 401 and the WWW-Authenticate
    challenge carried here.
    """

    def __init__(self, description: str | None = None, realm: str = "tollgate"):
        super().__init__(description)
        self.www_authenticate = f'Basic realm="{realm}"'

    @property
    def wire_description(self) -> str:
        # Never reveal which of unknown client / bad secret / bad header failed
        return self.default_description


class UnauthorizedClientError(OAuth2Error):
    """Raised when the client may not use the requested grant type."""

    error_code = "unauthorized_client"
    status_code = 400
    default_description = "The client is not authorized to use this grant type"


class InvalidGrantError(OAuth2Error):
    """Raised for a bad, expired or consumed code, refresh token or password."""

    error_code = "invalid_grant"
    status_code = 400
    default_description = "The provided authorization grant is invalid"


class InvalidTokenError(OAuth2Error):
    """Raised when a presented access token does not verify.

    TokenExpiredError and TokenRevokedError refine the cause for logging.
    All three render the identical generic wire error.
    """

    error_code = "invalid_token"
    status_code = 401
    default_description = "The access token is invalid"

    @property
    def wire_description(self) -> str:
        return InvalidTokenError.default_description


class TokenExpiredError(InvalidTokenError):
    """Raised when the access token is past its expiry."""

    pass


class TokenRevokedError(InvalidTokenError):
    """Raised when the access token has been revoked."""

    pass


class UnsupportedGrantTypeError(OAuth2Error):
    """Raised when the grant type is unknown or disabled on this server."""

    error_code = "unsupported_grant_type"
    status_code = 400
    default_description = "The grant type is not supported"


class UnsupportedResponseTypeError(OAuth2Error):
    """Raised when the authorize response type is unknown or disabled."""

    error_code = "unsupported_response_type"
    status_code = 400
    default_description = "The response type is not supported"


class ServerError(OAuth2Error):
    """Raised when the store or the credential directory fails.

    Safe to retry: no mutating operation is left partially applied.
    """

    @property
    def wire_description(self) -> str:
        return self.default_description

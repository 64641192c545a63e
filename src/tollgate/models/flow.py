"""Request and response models for the authorize, token, verify and
revocation endpoints.

Requests are parsed from URL-encoded payloads. Parsing only checks shape;
it never consults the directory or the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, Field

from tollgate.models.errors import InvalidRequestError


def _parse_form(payload: str) -> dict[str, str]:
    """Parse a URL-encoded payload, keeping the first non-blank value."""
    if payload.startswith("?"):
        payload = payload[1:]
    try:
        params = parse_qs(payload, keep_blank_values=False, strict_parsing=False)
    except ValueError as e:
        raise InvalidRequestError(f"Malformed URL-encoded payload: {e}") from e
    return {key: values[0] for key, values in params.items() if values}


def _require(params: dict[str, str], *names: str) -> None:
    missing = [name for name in names if not params.get(name)]
    if missing:
        raise InvalidRequestError(
            f"Missing required parameter: {', '.join(missing)}"
        )


@dataclass(frozen=True)
class AuthorizeRequest:
    """Authorization endpoint request (RFC 6749 Sections 4.1.1 and 4.2.1)."""

    response_type: str
    client_id: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None

    @classmethod
    def from_query(cls, query: str) -> AuthorizeRequest:
        """Parse an authorize query string.

        Raises:
            InvalidRequestError: If a required parameter is missing
        """
        params = _parse_form(query)
        _require(params, "response_type", "client_id", "redirect_uri")
        return cls(
            response_type=params["response_type"],
            client_id=params["client_id"],
            redirect_uri=params["redirect_uri"],
            scope=params.get("scope"),
            state=params.get("state"),
        )


@dataclass(frozen=True)
class TokenRequest:
    """Token endpoint request (RFC 6749 Sections 4.1.3, 4.3.2, 4.4.2 and 6).

    Grant-specific required fields are checked by the dispatcher, which knows
    which grant types are enabled.
    """

    grant_type: str
    code: str | None = None
    redirect_uri: str | None = None
    username: str | None = None
    password: str | None = None
    refresh_token: str | None = None
    scope: str | None = None

    @classmethod
    def from_body(cls, body: str) -> TokenRequest:
        params = _parse_form(body)
        _require(params, "grant_type")
        return cls(
            grant_type=params["grant_type"],
            code=params.get("code"),
            redirect_uri=params.get("redirect_uri"),
            username=params.get("username"),
            password=params.get("password"),
            refresh_token=params.get("refresh_token"),
            scope=params.get("scope"),
        )

    def require(self, *names: str) -> None:
        """Fail with InvalidRequestError unless every named field is set."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise InvalidRequestError(
                f"Missing required parameter: {', '.join(missing)}"
            )


@dataclass(frozen=True)
class RevocationRequest:
    """Token revocation request (RFC 7009 Section 2.1)."""

    token: str
    token_type_hint: str | None = None

    @classmethod
    def from_body(cls, body: str) -> RevocationRequest:
        params = _parse_form(body)
        _require(params, "token")
        return cls(token=params["token"], token_type_hint=params.get("token_type_hint"))


@dataclass(frozen=True)
class AuthorizationResponse:
    """Authorize endpoint result, encoded the same way for success and error."""

    code: str | None = None
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and (
            self.code is not None or self.access_token is not None
        )

    def is_error(self) -> bool:
        return self.error is not None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        for key in (
            "code",
            "access_token",
            "token_type",
            "expires_in",
            "scope",
            "error",
            "error_description",
            "state",
        ):
            value = getattr(self, key)
            if value is not None:
                params[key] = str(value)
        return params

    def to_query(self) -> str:
        """Encode as an application/x-www-form-urlencoded payload."""
        return urlencode(self.to_params())

    def to_redirect_url(self, redirect_uri: str) -> str:
        """Build the redirect URL for the user agent.

        Implicit grant tokens travel in the fragment (RFC 6749 Section 4.2.2);
        everything else travels in the query string.
        """
        if self.access_token is not None:
            return f"{redirect_uri}#{self.to_query()}"
        separator = "&" if "?" in redirect_uri else "?"
        return f"{redirect_uri}{separator}{self.to_query()}"


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1) and error responses
    (Section 5.2).
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None

    # Transport hints, never serialized
    status_code: int = Field(default=200, exclude=True)
    www_authenticate: str | None = Field(default=None, exclude=True)

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VerificationResponse(BaseModel):
    """Result of verifying a bearer token."""

    client_id: str | None = None
    subject: str | None = None
    scope: str | None = None
    issued_at: int | None = None
    expires_at: int | None = None

    error: str | None = None
    error_description: str | None = None

    status_code: int = Field(default=200, exclude=True)

    def is_success(self) -> bool:
        return self.error is None and self.client_id is not None

    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RevocationResponse(BaseModel):
    """Result of a revocation request; empty on success."""

    error: str | None = None
    error_description: str | None = None

    status_code: int = Field(default=200, exclude=True)
    www_authenticate: str | None = Field(default=None, exclude=True)

    def is_success(self) -> bool:
        return self.error is None

    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

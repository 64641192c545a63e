"""Authorization header parsing for Basic client auth and Bearer tokens."""

from __future__ import annotations

import base64
import binascii
from urllib.parse import unquote_plus

from tollgate.models.errors import InvalidTokenError, MalformedAuthHeaderError


def parse_basic_auth(header: str | None) -> tuple[str, str]:
    """Decode an `Authorization: Basic ...` header into (client_id, secret).

    RFC 6749 Section 2.3.1 form-encodes both values before base64, so they
    are form-decoded (`+` is a space) after splitting on the first colon.

    Raises:
        MalformedAuthHeaderError: If the header is absent or not valid Basic auth
    """
    if not header:
        raise MalformedAuthHeaderError("Missing Authorization header")

    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded.strip():
        raise MalformedAuthHeaderError("Authorization header is not Basic auth")

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise MalformedAuthHeaderError(
            f"Authorization header is not valid base64: {e}"
        ) from e

    client_id, sep, secret = decoded.partition(":")
    if not sep or not client_id:
        raise MalformedAuthHeaderError("Basic credentials must be client_id:secret")

    return unquote_plus(client_id), unquote_plus(secret)


def strip_bearer(header: str | None) -> str:
    """Extract the token from a `Bearer <token>` value.

    Raises:
        InvalidTokenError: If the value is absent or uses another scheme
    """
    if not header:
        raise InvalidTokenError("Missing bearer token")

    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise InvalidTokenError("Authorization value is not a bearer token")
    return token

"""Registered client models.

Clients are provisioned by an external directory and are immutable here.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


class GrantType(str, Enum):
    """OAuth 2.0 grant types understood by the dispatcher."""

    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT = "implicit"
    PASSWORD = "password"
    CLIENT_CREDENTIALS = "client_credentials"
    REFRESH_TOKEN = "refresh_token"

    @classmethod
    def parse(cls, value: str) -> GrantType:
        """Parse a grant type name, accepting the legacy `implicit_grant` alias.

        Raises:
            ValueError: If the name is not a known grant type
        """
        if value == "implicit_grant":
            return cls.IMPLICIT
        return cls(value)


# Grant types whose access tokens come with a refresh token
REFRESHABLE_GRANTS = frozenset({GrantType.AUTHORIZATION_CODE, GrantType.PASSWORD})


@dataclass(frozen=True)
class Client:
    """A registered application as seen by the authorization server."""

    client_id: str
    client_secret: str
    redirect_uris: frozenset[str] = field(default_factory=frozenset)
    grant_types: frozenset[GrantType] = field(default_factory=frozenset)

    def check_redirect_uri(self, redirect_uri: str) -> bool:
        """Exact-match the redirect URI against the registered set."""
        return redirect_uri in self.redirect_uris

    def check_grant_type(self, grant_type: GrantType) -> bool:
        return grant_type in self.grant_types

    def check_client_secret(self, client_secret: str) -> bool:
        """Compare the presented secret in constant time."""
        return secrets.compare_digest(
            self.client_secret.encode("utf-8"), client_secret.encode("utf-8")
        )


class ClientRecord(BaseModel):
    """Client record as returned by a remote credential directory."""

    client_id: str
    client_secret: str
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] = Field(default=["authorization_code"])

    def to_client(self) -> Client:
        """Convert to an immutable Client, ignoring unknown grant types."""
        grant_types = set()
        for name in self.grant_types:
            try:
                grant_types.add(GrantType.parse(name))
            except ValueError:
                continue
        return Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uris=frozenset(self.redirect_uris),
            grant_types=frozenset(grant_types),
        )

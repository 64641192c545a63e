"""Authorization server configuration.

Built once at construction time and treated as immutable afterwards.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tollgate.models.clients import GrantType

DEFAULT_ACCESS_TOKEN_LIFETIME_MS = 3_600_000
DEFAULT_CODE_LIFETIME_MS = 600_000


class OAuthConfig(BaseModel):
    """Lifetimes, grant allowlist and refresh-token policy."""

    model_config = ConfigDict(frozen=True)

    access_token_lifetime_ms: int = Field(
        default=DEFAULT_ACCESS_TOKEN_LIFETIME_MS, gt=0
    )
    code_lifetime_ms: int = Field(default=DEFAULT_CODE_LIFETIME_MS, gt=0)
    refresh_token_lifetime_ms: int | None = Field(default=None, gt=0)

    valid_grant_types: frozenset[GrantType] = Field(
        default=frozenset(
            {
                GrantType.AUTHORIZATION_CODE,
                GrantType.IMPLICIT,
                GrantType.PASSWORD,
                GrantType.CLIENT_CREDENTIALS,
            }
        )
    )

    # Refresh-token policy
    rotate_refresh_tokens: bool = True
    revoke_superseded_access_tokens: bool = False
    cascade_refresh_revocation: bool = True

    token_type: str = "Bearer"
    realm: str = "tollgate"

    @field_validator("valid_grant_types", mode="before")
    @classmethod
    def parse_grant_types(cls, v: object) -> object:
        """Accept grant type names, including the `implicit_grant` alias."""
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(
                item if isinstance(item, GrantType) else GrantType.parse(item)
                for item in v
            )
        return v

    def allows_grant(self, grant_type: GrantType) -> bool:
        """Check the server-wide allowlist.

        refresh_token is always served; it is gated by the refresh token itself.
        """
        if grant_type is GrantType.REFRESH_TOKEN:
            return True
        return grant_type in self.valid_grant_types

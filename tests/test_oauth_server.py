"""End-to-end tests for the authorization server entry points.

Walks the full lifecycle through the wire-level API: authorize, code
exchange, verify, refresh, invalidate, implicit, password and client
credentials grants.
"""

import asyncio
from urllib.parse import parse_qs, urlencode

from conftest import (
    CLIENT_ID,
    REDIRECT_URI,
    basic_auth,
    check_password,
    make_client,
)
from tollgate.models.clients import GrantType
from tollgate.models.flow import TokenRequest
from tollgate.oauth_server import OAuth2Server
from tollgate.services.directory import InMemoryCredentialDirectory

GENERIC_INVALID_TOKEN = ("invalid_token", "The access token is invalid")


async def authorize_code(server: OAuth2Server) -> str:
    response = await server.authorize(
        urlencode(
            {"response_type": "code", "client_id": CLIENT_ID, "redirect_uri": REDIRECT_URI}
        )
    )
    return parse_qs(response.to_query())["code"][0]


async def exchange_code(server: OAuth2Server, code: str, redirect_uri=REDIRECT_URI):
    return await server.generate_token(
        urlencode(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        ),
        basic_auth(),
    )


class TestFullLifecycle:
    async def test_code_verify_invalidate_refresh(self, server):
        # Authorize
        code = await authorize_code(server)

        # Exchange
        tokens = await exchange_code(server, code)
        assert tokens.is_success()
        assert tokens.refresh_token is not None
        assert tokens.token_type == "Bearer"
        assert tokens.expires_in == 3600
        t1, f1 = tokens.access_token, tokens.refresh_token

        # Verify
        verified = await server.verify_token(f"Bearer {t1}")
        assert verified.is_success()
        assert verified.client_id == CLIENT_ID

        # Invalidate, then verify fails with the generic error
        revoked = await server.invalidate_token(
            urlencode({"token": t1, "token_type_hint": "accesstoken"}), basic_auth()
        )
        assert revoked.is_success()
        assert revoked.to_dict() == {}
        after = await server.verify_token(f"Bearer {t1}")
        assert (after.error, after.error_description) == GENERIC_INVALID_TOKEN

        # Refresh still works and yields a new token
        refreshed = await server.refresh_token(
            urlencode({"grant_type": "refresh_token", "refresh_token": f1}),
            basic_auth(),
        )
        assert refreshed.is_success()
        t2 = refreshed.access_token
        assert t2 != t1
        assert (await server.verify_token(f"Bearer {t2}")).is_success()

    async def test_code_exchanged_twice_fails_second_time(self, server):
        code = await authorize_code(server)

        first = await exchange_code(server, code)
        second = await exchange_code(server, code)

        assert first.is_success()
        assert second.error == "invalid_grant"
        assert second.status_code == 400

    async def test_concurrent_code_exchange_succeeds_once(self, server):
        code = await authorize_code(server)

        results = await asyncio.gather(*(exchange_code(server, code) for _ in range(8)))

        assert sum(1 for r in results if r.is_success()) == 1
        assert sum(1 for r in results if r.error == "invalid_grant") == 7

    async def test_code_for_other_redirect_uri_fails(self):
        client = make_client(redirect_uris={REDIRECT_URI, "http://example.org/b"})
        server = OAuth2Server(InMemoryCredentialDirectory([client]))
        code = await authorize_code(server)

        response = await exchange_code(server, code, redirect_uri="http://example.org/b")

        assert response.error == "invalid_grant"


class TestGrantScenarios:
    async def test_implicit_grant(self, server):
        response = await server.authorize(
            urlencode(
                {
                    "response_type": "token",
                    "client_id": CLIENT_ID,
                    "redirect_uri": REDIRECT_URI,
                    "state": "s1",
                }
            )
        )

        params = parse_qs(response.to_query())
        assert "access_token" in params
        assert "refresh_token" not in params
        assert params["state"] == ["s1"]
        assert (await server.verify_token(f"Bearer {response.access_token}")).is_success()

    async def test_password_grant(self, server):
        ok = await server.generate_token(
            "grant_type=password&username=foo&password=bar", basic_auth()
        )
        bad = await server.generate_token(
            "grant_type=password&username=foo&password=wrong", basic_auth()
        )

        assert ok.access_token and ok.refresh_token
        assert bad.error == "invalid_grant"

    async def test_client_credentials_grant(self, server):
        response = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )

        assert response.access_token
        assert response.refresh_token is None
        info = await server.verify_token(f"Bearer {response.access_token}")
        assert info.subject is None

    async def test_client_restricted_to_code_grant(self):
        client = make_client(grant_types={GrantType.AUTHORIZATION_CODE})
        server = OAuth2Server(
            InMemoryCredentialDirectory([client]), password_check=check_password
        )

        response = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )

        assert response.error == "unauthorized_client"

    async def test_refresh_keeps_client_and_subject(self, server):
        issued = await server.generate_token(
            "grant_type=password&username=foo&password=bar", basic_auth()
        )

        refreshed = await server.generate_token(
            f"grant_type=refresh_token&refresh_token={issued.refresh_token}",
            basic_auth(),
        )

        info = await server.verify_token(f"Bearer {refreshed.access_token}")
        assert info.client_id == CLIENT_ID
        assert info.subject == "foo"


class TestErrorSurfaces:
    async def test_authorize_errors_use_redirect_encoding(self, server):
        response = await server.authorize(
            f"response_type=code&client_id=nobody&redirect_uri={REDIRECT_URI}&state=s9"
        )

        params = parse_qs(response.to_query())
        assert params["error"] == ["invalid_client"]
        assert params["state"] == ["s9"]

    async def test_authorize_missing_field(self, server):
        response = await server.authorize("response_type=code")

        assert response.error == "invalid_request"

    async def test_token_endpoint_bad_client_is_unauthorized(self, server):
        response = await server.generate_token(
            "grant_type=client_credentials", basic_auth(secret="wrong")
        )

        assert response.error == "invalid_client"
        assert response.status_code == 401
        assert response.www_authenticate == 'Basic realm="tollgate"'

    async def test_unsupported_grant_type(self, server):
        response = await server.generate_token("grant_type=magic", basic_auth())

        assert response.error == "unsupported_grant_type"

    async def test_refresh_entry_point_requires_refresh_grant(self, server):
        response = await server.refresh_token(
            "grant_type=client_credentials", basic_auth()
        )

        assert response.error == "unsupported_grant_type"

    async def test_refresh_entry_point_parses_body_once(self, server, monkeypatch):
        # Arrange
        issued = await server.generate_token(
            "grant_type=password&username=foo&password=bar", basic_auth()
        )
        parsed = []
        original = TokenRequest.from_body

        def counting(body):
            parsed.append(body)
            return original(body)

        monkeypatch.setattr(TokenRequest, "from_body", staticmethod(counting))

        # Act
        response = await server.refresh_token(
            f"grant_type=refresh_token&refresh_token={issued.refresh_token}",
            basic_auth(),
        )

        # Assert
        assert response.is_success()
        assert len(parsed) == 1

    async def test_verify_hides_failure_cause(self, server, clock):
        # Arrange - one expired, one revoked, one never issued
        expired = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )
        clock.advance(3_600_001)
        revoked = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )
        await server.invalidate_token(f"token={revoked.access_token}", basic_auth())

        # Act
        results = [
            await server.verify_token(f"Bearer {expired.access_token}"),
            await server.verify_token(f"Bearer {revoked.access_token}"),
            await server.verify_token("Bearer never-issued"),
        ]

        # Assert
        assert {(r.error, r.error_description, r.status_code) for r in results} == {
            (*GENERIC_INVALID_TOKEN, 401)
        }

    async def test_invalidate_is_idempotent(self, server):
        tokens = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )
        body = f"token={tokens.access_token}&token_type_hint=accesstoken"

        first = await server.invalidate_token(body, basic_auth())
        second = await server.invalidate_token(body, basic_auth())
        unknown = await server.invalidate_token("token=never-issued", basic_auth())

        assert first.is_success() and second.is_success() and unknown.is_success()

    async def test_invalidate_requires_client_auth(self, server):
        response = await server.invalidate_token("token=abc", basic_auth(secret="x"))

        assert response.error == "invalid_client"
        assert response.www_authenticate is not None

    async def test_unexpected_failure_becomes_server_error(self, server, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(server.dispatcher, "token", broken)

        response = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )

        assert response.error == "server_error"
        assert response.status_code == 500
        assert "boom" not in response.error_description


class TestIndependentInstances:
    async def test_servers_do_not_share_state(self, server):
        other = OAuth2Server(InMemoryCredentialDirectory([make_client()]))
        tokens = await server.generate_token(
            "grant_type=client_credentials", basic_auth()
        )

        result = await other.verify_token(f"Bearer {tokens.access_token}")

        assert result.error == "invalid_token"

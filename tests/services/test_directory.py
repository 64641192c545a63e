from unittest.mock import AsyncMock

import pytest

from conftest import CLIENT_ID, CLIENT_SECRET, basic_auth, make_client
from tollgate.models.errors import (
    InvalidSecretError,
    MalformedAuthHeaderError,
    ServerError,
    UnknownClientError,
)
from tollgate.services.directory import (
    CredentialDirectoryAdapter,
    InMemoryCredentialDirectory,
)


class TestInMemoryCredentialDirectory:
    async def test_lookup_and_verify(self):
        directory = InMemoryCredentialDirectory([make_client()])

        assert (await directory.lookup_client(CLIENT_ID)).client_id == CLIENT_ID
        assert await directory.lookup_client("nobody") is None
        assert await directory.verify_secret(CLIENT_ID, CLIENT_SECRET)
        assert not await directory.verify_secret(CLIENT_ID, "wrong")
        assert not await directory.verify_secret("nobody", CLIENT_SECRET)


class TestCredentialDirectoryAdapter:
    def setup_method(self):
        self.adapter = CredentialDirectoryAdapter(
            InMemoryCredentialDirectory([make_client()])
        )

    async def test_resolve_client(self):
        client = await self.adapter.resolve_client(CLIENT_ID)

        assert client.client_id == CLIENT_ID

    async def test_resolve_unknown_client(self):
        with pytest.raises(UnknownClientError):
            await self.adapter.resolve_client("nobody")

    async def test_authenticate_client(self):
        client = await self.adapter.authenticate_client(basic_auth())

        assert client.client_id == CLIENT_ID

    async def test_authenticate_with_wrong_secret(self):
        with pytest.raises(InvalidSecretError):
            await self.adapter.authenticate_client(basic_auth(secret="wrong"))

    async def test_authenticate_unknown_client(self):
        with pytest.raises(UnknownClientError):
            await self.adapter.authenticate_client(basic_auth(client_id="nobody"))

    async def test_authenticate_malformed_header(self):
        with pytest.raises(MalformedAuthHeaderError):
            await self.adapter.authenticate_client("Bearer nope")

    async def test_directory_failure_becomes_server_error(self):
        # Arrange
        directory = AsyncMock()
        directory.lookup_client.side_effect = ConnectionError("directory down")
        adapter = CredentialDirectoryAdapter(directory)

        # Act & Assert
        with pytest.raises(ServerError) as exc_info:
            await adapter.resolve_client(CLIENT_ID)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_authenticate_looks_up_client_once(self):
        # Arrange
        directory = AsyncMock()
        directory.lookup_client.return_value = make_client()
        adapter = CredentialDirectoryAdapter(directory)

        # Act
        client = await adapter.authenticate_client(basic_auth())

        # Assert
        assert client.client_id == CLIENT_ID
        directory.lookup_client.assert_awaited_once_with(CLIENT_ID)
        directory.verify_secret.assert_not_awaited()

    async def test_wrong_secret_checked_against_resolved_record(self):
        directory = AsyncMock()
        directory.lookup_client.return_value = make_client()
        adapter = CredentialDirectoryAdapter(directory)

        with pytest.raises(InvalidSecretError):
            await adapter.authenticate_client(basic_auth(secret="wrong"))
        directory.lookup_client.assert_awaited_once_with(CLIENT_ID)

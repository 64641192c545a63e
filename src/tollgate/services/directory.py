"""Credential directory adapter.

Resolves client identifiers and Basic auth headers against an external
directory of registered applications. Lookups only; nothing is written.
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol

from tollgate.models.clients import Client
from tollgate.models.errors import (
    InvalidSecretError,
    OAuth2Error,
    ServerError,
    UnknownClientError,
)
from tollgate.primitives.headers import parse_basic_auth

logger = logging.getLogger(__name__)


class CredentialDirectory(Protocol):
    """External directory of registered clients."""

    async def lookup_client(self, client_id: str) -> Client | None:
        """Return the registered client, or None if unknown."""
        ...

    async def verify_secret(self, client_id: str, client_secret: str) -> bool:
        """Check the secret in constant time."""
        ...


class InMemoryCredentialDirectory:
    """Dict-backed directory for tests and embedded deployments."""

    def __init__(self, clients: list[Client] | None = None):
        self._clients: dict[str, Client] = {}
        for client in clients or []:
            self.register(client)

    def register(self, client: Client) -> None:
        self._clients[client.client_id] = client

    async def lookup_client(self, client_id: str) -> Client | None:
        return self._clients.get(client_id)

    async def verify_secret(self, client_id: str, client_secret: str) -> bool:
        client = self._clients.get(client_id)
        if client is None:
            # Constant time for unknown ids too
            secrets.compare_digest(client_secret.encode("utf-8"), b"\0" * 32)
            return False
        return client.check_client_secret(client_secret)


class CredentialDirectoryAdapter:
    """Narrow, side-effect-free view of the directory used by the dispatcher."""

    def __init__(self, directory: CredentialDirectory):
        self._directory = directory

    async def resolve_client(self, client_id: str) -> Client:
        """Resolve a client identifier.

        Raises:
            UnknownClientError: If the client is not registered
            ServerError: If the directory cannot be reached
        """
        try:
            client = await self._directory.lookup_client(client_id)
        except OAuth2Error:
            raise
        except Exception as e:
            raise ServerError(f"Credential directory lookup failed: {e}") from e

        if client is None:
            raise UnknownClientError(f"Unknown client: {client_id}")
        return client

    async def authenticate_client(self, authorization: str | None) -> Client:
        """Authenticate a client from an `Authorization: Basic ...` header.

        The client is resolved once and the secret is compared against that
        record, so one directory lookup serves both checks.

        Raises:
            MalformedAuthHeaderError: If the header cannot be parsed
            UnknownClientError: If the client is not registered
            InvalidSecretError: If the secret does not match
            ServerError: If the directory cannot be reached
        """
        client_id, client_secret = parse_basic_auth(authorization)

        try:
            client = await self.resolve_client(client_id)
        except UnknownClientError:
            # Constant time for unknown ids too
            secrets.compare_digest(client_secret.encode("utf-8"), b"\0" * 32)
            raise

        if not client.check_client_secret(client_secret):
            raise InvalidSecretError(f"Invalid secret for client {client_id}")

        logger.debug(f"Authenticated client {client_id}")
        return client

"""Credential directory backed by a remote management service over HTTP."""

from __future__ import annotations

import logging
import secrets
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from tollgate.models.clients import Client, ClientRecord
from tollgate.models.errors import ServerError

logger = logging.getLogger(__name__)


class HttpCredentialDirectory:
    """Looks up clients at `GET {base_url}/clients/{client_id}`.

    The service answers with a JSON client record (client_id, client_secret,
    redirect_uris, grant_types) or 404 for unknown clients. Secrets are
    compared locally in constant time.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the HTTP directory.

        Args:
            base_url: Base URL of the management service
            api_key: Optional bearer credential for the management service
            timeout: HTTP request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def lookup_client(self, client_id: str) -> Client | None:
        """Fetch a client record.

        Raises:
            ServerError: On transport failure or an unexpected response
        """
        url = f"{self.base_url}/clients/{quote(client_id, safe='')}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.debug(f"Looking up client {client_id} at {url}")

        try:
            response = await self._http_client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise ServerError(f"HTTP error during client lookup: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning(
                f"Client lookup for {client_id} failed with {response.status_code}"
            )
            raise ServerError(
                f"Credential directory answered {response.status_code}"
            )

        try:
            record = ClientRecord(**response.json())
        except (ValueError, TypeError, ValidationError) as e:
            raise ServerError(f"Invalid client record format: {e}") from e

        if record.client_id != client_id:
            raise ServerError("Credential directory returned a different client")

        return record.to_client()

    async def verify_secret(self, client_id: str, client_secret: str) -> bool:
        client = await self.lookup_client(client_id)
        if client is None:
            secrets.compare_digest(client_secret.encode("utf-8"), b"\0" * 32)
            return False
        return client.check_client_secret(client_secret)

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()

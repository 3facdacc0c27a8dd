"""Async client for the RabbitMQ management HTTP API."""

from __future__ import annotations

from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from pulse_namespaces.errors import BrokerError

logger = structlog.get_logger()


def _quote(segment: str) -> str:
    # vhost "/" must travel as %2F
    return quote(segment, safe="")


class RabbitManager:
    """Administers broker users and permissions via the management API.

    Usage::

        async with RabbitManager(base_url, username, password) as rabbit:
            await rabbit.create_user("ns-1", "secret", ["monitoring"])
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, password)
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        """Create the underlying httpx client (idempotent)."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/api",
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client (idempotent)."""
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> RabbitManager:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "RabbitManager is not open; call open() or use 'async with'"
            raise RuntimeError(msg)
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        response = await self.client.request(method, path, json=json)
        if response.is_error:
            raise BrokerError(response.status_code, response.text)
        return response

    async def create_user(self, username: str, password: str, tags: list[str]) -> None:
        """Create or update a user.

        An empty password creates the account with logins disabled:
        RabbitMQ rejects every password against an empty hash.
        """
        body: dict[str, Any] = {"tags": ",".join(tags)}
        if password:
            body["password"] = password
        else:
            body["password_hash"] = ""
        await self._request("PUT", f"/users/{_quote(username)}", json=body)
        logger.debug("broker_user_put", username=username, enabled=bool(password))

    async def set_user_permissions(
        self,
        username: str,
        vhost: str,
        configure: str,
        write: str,
        read: str,
    ) -> None:
        """Set the configure/write/read permission patterns for a user."""
        await self._request(
            "PUT",
            f"/permissions/{_quote(vhost)}/{_quote(username)}",
            json={"configure": configure, "write": write, "read": read},
        )

    async def delete_user(self, username: str) -> bool:
        """Delete a user. Returns False if it did not exist."""
        response = await self.client.delete(f"/users/{_quote(username)}")
        if response.status_code == 404:
            deleted = False
        elif response.is_error:
            raise BrokerError(response.status_code, response.text)
        else:
            deleted = True
        logger.debug("broker_user_deleted", username=username, existed=deleted)
        return deleted

    async def overview(self) -> dict[str, Any]:
        """Cluster overview (versions, cluster name, totals)."""
        response = await self._request("GET", "/overview")
        result: dict[str, Any] = response.json()
        return result

    async def exchanges(self) -> list[dict[str, Any]]:
        """All exchanges in the cluster, across vhosts."""
        response = await self._request("GET", "/exchanges")
        result: list[dict[str, Any]] = response.json()
        return result

    async def check_connectivity(self) -> None:
        """Raise if the management API is unreachable or rejects us."""
        await self._request("GET", "/whoami")

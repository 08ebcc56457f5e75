#!/usr/bin/env python3
"""HTTP Client for third-party SMM provider APIs.

This module provides the transport used by the sync engine to reach
provider endpoints:

    - Connection pooling via a shared aiohttp session
    - Per-request timeouts (each provider configures its own)
    - Form-encoded or JSON request bodies
    - Typed exceptions for non-2xx statuses and transport failures

Design Philosophy:
    This client knows HOW to talk HTTP, but not WHAT a provider expects.
    Request shapes come from the provider's API specification; the
    ProviderApiAdapter builds them and the gateway hands them to this client.

Usage:
    async with ProviderClient() as client:
        text = await client.request(
            "POST",
            "https://provider.example/api/v2",
            data={"key": "...", "action": "status", "order": "123"},
            timeout_seconds=30,
        )
"""
import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import aiohttp

from .exceptions import (
    APIError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ProviderClient:
    """Async HTTP client shared by all provider calls.

    Use as an async context manager, or call ``open()`` / ``close()``
    explicitly from an application lifespan:

        async with ProviderClient() as client:
            body = await client.request("GET", url, params={...})

    Attributes:
        max_connections: Connection pool size across all providers
        max_connections_per_host: Pool size for a single provider host
    """

    def __init__(
        self,
        max_connections: int = 20,
        max_connections_per_host: int = 5,
        user_agent: str = "smm-provider-sync/1.0",
    ):
        self.max_connections = max_connections
        self.max_connections_per_host = max_connections_per_host
        self.user_agent = user_agent

        # Session is created in open(), closed in close()
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    async def open(self) -> None:
        if self._session is not None:
            return
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=self.max_connections,
                limit_per_host=self.max_connections_per_host,
            ),
            timeout=aiohttp.ClientTimeout(
                total=DEFAULT_TIMEOUT_SECONDS,
                connect=10,
            ),
            headers={"User-Agent": self.user_agent},
        )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    async def __aenter__(self) -> "ProviderClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ----------------------------------------
    # Requests
    # ----------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
        data: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """Make a single HTTP request and return the raw response text.

        No retries: a failed provider call fails that order's attempt and the
        next scheduled run tries again.

        Args:
            method: HTTP method (GET, POST)
            url: Full provider endpoint URL
            headers: Extra request headers
            params: Query parameters
            data: Form-encoded body fields
            json_body: JSON body (mutually exclusive with ``data``)
            timeout_seconds: Total time allowed for this request

        Returns:
            Response body as text (may be empty)

        Raises:
            APIError: If response status is not 2xx
            ConnectionError: If connection to the provider fails
            TimeoutError: If the request exceeds ``timeout_seconds``
            NetworkError: For any other transport failure
            RuntimeError: If the client has not been opened
        """
        if not self._session:
            raise RuntimeError(
                "ProviderClient must be opened before use: "
                "async with ProviderClient() as client:"
            )

        timeout = timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        host = urlsplit(url).netloc or url

        try:
            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                data=data,
                json=json_body,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                body = await response.text()

                if response.status >= 400:
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        host=host,
                        response_body=body,
                        retry_after=response.headers.get("Retry-After"),
                    )

                return body

        # ServerTimeoutError is both a ClientConnectionError and a TimeoutError
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {host} timed out after {timeout}s",
                timeout_seconds=timeout,
                cause=e,
            )

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {host}",
                host=host,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {host}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        host: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        if status == 404:
            return NotFoundError(
                f"Provider endpoint not found: {method} {host}",
                endpoint=host,
                method=method,
                response_body=response_body,
            )

        if status == 429:
            try:
                retry_seconds = int(retry_after) if retry_after else None
            except ValueError:
                retry_seconds = None
            return RateLimitError(
                f"Rate limit exceeded for {host}",
                retry_after=retry_seconds,
                endpoint=host,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {host}",
                status_code=status,
                endpoint=host,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {host} failed with HTTP {status}",
            status_code=status,
            endpoint=host,
            method=method,
            response_body=response_body,
        )


__all__ = ["ProviderClient", "DEFAULT_TIMEOUT_SECONDS"]

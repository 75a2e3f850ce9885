"""Accessory-local HTTP client.

Plain HTTP to the accessory on its own access point, without authentication.
"""

from __future__ import annotations

__all__ = ["AccessoryHttpClient"]

import logging
from typing import Any

import aiohttp

from ..config import AccessoryProfile, TimeoutConfig
from ..exceptions import AccessoryHttpError

logger = logging.getLogger(__name__)


class AccessoryHttpClient:
    """HTTP session to the accessory.

    Responsibilities:
    - Lazily open and close the aiohttp session
    - Build URLs for the default and the stream-control port
    - Map transport failures to ``AccessoryHttpError``
    """

    def __init__(self, profile: AccessoryProfile, timeout_config: TimeoutConfig) -> None:
        self.profile = profile
        self._timeout = timeout_config
        self._session: aiohttp.ClientSession | None = None
        self._error_count = 0

    @property
    def target(self) -> str:
        return self.profile.serial

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    def error_count(self) -> int:
        return self._error_count

    def url_for(self, endpoint: str, port: int | None = None) -> str:
        """Absolute URL of an endpoint, optionally on a non-default port."""
        host = self.profile.accessory_ip if port is None else f"{self.profile.accessory_ip}:{port}"
        return f"http://{host}/{endpoint.lstrip('/')}"

    async def open(self) -> None:
        if self.is_open:
            return
        timeout = aiohttp.ClientTimeout(total=self._timeout.http_request_timeout)
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.debug(f"HTTP session to accessory {self.target} opened ({self.profile.base_url})")

    async def close(self) -> None:
        """Close the HTTP session. Safe to call when never opened."""
        session, self._session = self._session, None
        if session is None or session.closed:
            return
        try:
            await session.close()
            logger.debug(f"HTTP session to accessory {self.target} closed")
        except aiohttp.ClientError as e:
            logger.warning(f"Error closing HTTP session for accessory {self.target}: {e}")

    def get(self, endpoint: str, params: dict[str, Any] | None = None, port: int | None = None) -> _RequestContext:
        """Send GET request (returns async context manager).

        Usage example:
            async with http.get("gp/gpControl/command/medialist") as resp:
                data = await resp.json(content_type=None)
        """
        return _RequestContext(self, self.url_for(endpoint, port), params)

    def record_error(self) -> None:
        self._error_count += 1


class _RequestContext:
    """Async context manager that opens the session on first use and wraps request errors."""

    def __init__(self, client: AccessoryHttpClient, url: str, params: dict[str, Any] | None) -> None:
        self.client = client
        self.url = url
        self.params = params
        self._context = None

    async def __aenter__(self) -> aiohttp.ClientResponse:
        if not self.client.is_open:
            await self.client.open()

        logger.debug(f"GET {self.url} params={self.params}")
        try:
            self._context = self.client._session.get(self.url, params=self.params)
            return await self._context.__aenter__()
        except (aiohttp.ClientError, TimeoutError) as e:
            self.client.record_error()
            raise AccessoryHttpError(f"GET {self.url} failed: {type(e).__name__}: {str(e) or '(no details)'}") from e

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._context:
            return await self._context.__aexit__(exc_type, exc_val, exc_tb)
        return False

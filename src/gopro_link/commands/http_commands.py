"""Camera control commands over the accessory HTTP surface.

- Preview stream start
- Photo mode and shutter (used by the telemetry workaround)
"""

from __future__ import annotations

__all__ = ["HttpCommands"]

import json
import logging

import aiohttp

from ..connection.http_client import AccessoryHttpClient
from ..exceptions import AccessoryHttpError, StreamStartError
from .base import ensure_ok, with_http_retry

logger = logging.getLogger(__name__)


class HttpCommands:
    """HTTP command interface."""

    STREAM_START = "gopro/camera/stream/start"
    MODE = "gp/gpControl/command/mode"
    SHUTTER = "gp/gpControl/command/shutter"

    def __init__(self, http_client: AccessoryHttpClient) -> None:
        self.http = http_client

    @with_http_retry(max_retries=2)
    async def start_stream(self, port: int) -> int:
        """Start the UDP preview stream.

        Args:
            port: Local UDP port the accessory should stream to

        Returns:
            Port the stream was started on. The accessory normally answers with
            an empty object; a ``port`` field in the answer takes precedence.

        Raises:
            StreamStartError: Command failed
        """
        logger.info(f"📹 Starting preview stream on port {port} (accessory {self.http.target})...")

        try:
            async with self.http.get(self.STREAM_START, params={"port": str(port)}, port=self.http.profile.control_port) as resp:
                await ensure_ok(resp, "start stream", StreamStartError)
                body = await resp.text()
        except StreamStartError:
            raise
        except (AccessoryHttpError, aiohttp.ClientError) as e:
            raise StreamStartError(str(e)) from e

        started_port = port
        if body.strip():
            try:
                data = json.loads(body)
            except ValueError:
                logger.debug(f"Start-stream answered with non-JSON body: {body[:80]!r}")
            else:
                if isinstance(data, dict) and isinstance(data.get("port"), int):
                    started_port = data["port"]

        logger.info(f"✅ Preview stream started on port {started_port}")
        return started_port

    @with_http_retry(max_retries=2)
    async def set_photo_mode(self) -> None:
        """Switch the accessory to photo mode.

        Raises:
            AccessoryHttpError: Command failed
        """
        logger.debug(f"Switching accessory {self.http.target} to photo mode")
        async with self.http.get(self.MODE, params={"p": "1"}) as resp:
            await ensure_ok(resp, "switch to photo mode")

    async def trigger_shutter(self) -> None:
        """Take one photo. Not retried: a retry could capture twice.

        Raises:
            AccessoryHttpError: Command failed
        """
        logger.debug(f"Triggering shutter on accessory {self.http.target}")
        try:
            async with self.http.get(self.SHUTTER, params={"p": "1"}) as resp:
                await ensure_ok(resp, "trigger shutter")
        except aiohttp.ClientError as e:
            raise AccessoryHttpError(f"Shutter response unreadable: {e}") from e

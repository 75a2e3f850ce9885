"""Command: Media management

Media index, per-item metadata and bulk delete. The telemetry poller reads
GPS from the metadata of a throwaway photo, then clears the card.
"""

from __future__ import annotations

__all__ = ["MediaCommands", "MediaFile"]

import logging
from dataclasses import dataclass
from typing import Any

import aiohttp
from open_gopro.models.media_list import MediaList

from ..connection.http_client import AccessoryHttpClient
from ..exceptions import AccessoryHttpError
from .base import ensure_ok, with_http_retry

logger = logging.getLogger(__name__)


@dataclass
class MediaFile:
    """Media file information.

    Attributes:
        filename: Name as listed by the accessory (may include the directory)
        creation_timestamp: Unix timestamp string (UTC)
        modified_time: Unix timestamp string (UTC)
    """

    filename: str
    creation_timestamp: str
    modified_time: str

    @property
    def name(self) -> str:
        """Bare file name, as the metadata endpoint expects it."""
        return self.filename.rsplit("/", 1)[-1]

    @property
    def created_time(self) -> int:
        try:
            return int(self.creation_timestamp)
        except (TypeError, ValueError):
            return 0


class MediaCommands:
    """Media management command interface."""

    MEDIA_LIST = "gp/gpControl/command/medialist"
    MEDIA_META = "gp/gpControl/media/meta"
    DELETE_ALL = "gp/gpControl/command/storage/delete/all"

    def __init__(self, http_client: AccessoryHttpClient) -> None:
        self.http = http_client

    async def _get_json(self, endpoint: str, action: str, params: dict[str, str] | None = None) -> Any:
        async with self.http.get(endpoint, params=params) as resp:
            await ensure_ok(resp, action)
            try:
                return await resp.json(content_type=None)
            except (aiohttp.ClientError, ValueError) as e:
                raise AccessoryHttpError(f"Failed to {action}: invalid JSON ({e})") from e

    async def get_media_list(self) -> list[MediaFile]:
        """List media, newest first.

        Raises:
            AccessoryHttpError: Command failed or the index could not be parsed
        """
        data = await self._get_json(self.MEDIA_LIST, "list media")
        if not isinstance(data, dict):
            raise AccessoryHttpError(f"Unexpected media list payload: {type(data).__name__}")

        try:
            media_list = MediaList(**{"id": data.get("id", ""), "media": data.get("media", [])})
        except ValueError as e:
            raise AccessoryHttpError(f"Unparseable media list: {e}") from e

        media_files = [
            MediaFile(
                filename=item.filename,
                creation_timestamp=item.creation_timestamp,
                modified_time=item.modified_time,
            )
            for item in media_list.files
        ]
        media_files.sort(key=lambda f: f.created_time, reverse=True)

        logger.debug(f"📂 Media list: {len(media_files)} file(s)")
        return media_files

    async def get_media_metadata(self, name: str) -> dict[str, Any]:
        """Metadata of one media item (may contain ``gps.latitude``/``gps.longitude``).

        Raises:
            AccessoryHttpError: Command failed
        """
        logger.debug(f"📄 Getting metadata for {name}")
        data = await self._get_json(self.MEDIA_META, "get metadata", params={"p": name})
        if not isinstance(data, dict):
            raise AccessoryHttpError(f"Unexpected metadata payload: {type(data).__name__}")
        return data

    @with_http_retry(max_retries=2)
    async def delete_all_media(self) -> None:
        """Delete all media on the accessory.

        Raises:
            AccessoryHttpError: Deletion failed
        """
        logger.debug(f"🗑️ Deleting all media on accessory {self.http.target}")
        async with self.http.get(self.DELETE_ALL) as resp:
            await ensure_ok(resp, "delete all media")

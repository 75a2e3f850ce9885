"""GPS telemetry poller.

The accessory exposes no live GPS endpoint, so each cycle captures a
throwaway photo, reads the GPS fields of its metadata and deletes all media
again so the card never fills up.
"""

from __future__ import annotations

__all__ = ["TelemetryPoller", "extract_gps"]

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

import aiohttp

from .commands.http_commands import HttpCommands
from .commands.media_commands import MediaCommands
from .config import TimeoutConfig
from .exceptions import AccessoryHttpError, TelemetryStepError
from .status import ConnectionState, StatusStore, TelemetrySample

logger = logging.getLogger(__name__)

T = TypeVar("T")


def extract_gps(metadata: dict[str, Any]) -> tuple[float, float] | None:
    """Return ``(latitude, longitude)`` from media metadata, or None without a fix."""
    gps = metadata.get("gps")
    if not isinstance(gps, dict):
        return None
    latitude, longitude = gps.get("latitude"), gps.get("longitude")
    if latitude is None or longitude is None:
        return None
    try:
        return float(latitude), float(longitude)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed GPS fields: {gps!r}")
        return None


class TelemetryPoller:
    """Periodic capture → metadata → delete loop.

    Runs only while wifi is connected. Every failure is logged and swallowed;
    at most one cycle is in flight at any time.
    """

    def __init__(
        self,
        http_commands: HttpCommands,
        media_commands: MediaCommands,
        status: StatusStore,
        timeout_config: TimeoutConfig,
    ) -> None:
        self._http = http_commands
        self._media = media_commands
        self._status = status
        self._timeout = timeout_config

        self._tasks: set[asyncio.Task] = set()
        self._cycle_lock = asyncio.Lock()
        self._token: int | None = None
        self._cycle_task: asyncio.Task | None = None

        self.cycle_count = 0
        self.failure_count = 0
        self.cleanup_failure_count = 0

    @property
    def is_running(self) -> bool:
        return self._token is not None and any(not task.done() for task in self._tasks)

    def start(self, token: int) -> None:
        """Start polling for the wifi session identified by ``token``."""
        if self.is_running and self._token == token:
            return

        # A loop from an earlier session exits on its own once its cycle is done
        self._token = token
        task = asyncio.create_task(self._run(token), name=f"telemetry-poller-{token}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"🛰️ Telemetry polling started (every {self._timeout.telemetry_poll_interval:.0f}s)")

    async def stop(self) -> None:
        """Stop scheduling cycles.

        A cycle already in flight finishes on its own, including cleanup, but
        its result is discarded.
        """
        if self._token is None:
            return
        self._token = None
        await self._cancel_tasks(spare=self._cycle_task if self._cycle_lock.locked() else None)
        logger.info("Telemetry polling stopped")

    async def aclose(self) -> None:
        """Stop and wait for every loop to exit, cancelling any in-flight cycle."""
        self._token = None
        await self._cancel_tasks()

    async def _cancel_tasks(self, spare: asyncio.Task | None = None) -> None:
        tasks = [task for task in self._tasks if not task.done() and task is not spare]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self, token: int) -> None:
        while self._token == token:
            await asyncio.sleep(self._timeout.telemetry_poll_interval)
            if self._token != token:
                break
            try:
                await self.poll_once()
            except Exception:
                # Telemetry must never take the stream down with it
                logger.exception("Unexpected error in telemetry cycle")

    def _is_current(self, token: int | None) -> bool:
        return token is not None and token == self._token and self._status.wifi is ConnectionState.CONNECTED

    async def poll_once(self) -> TelemetrySample | None:
        """Run one cycle.

        Returns:
            The new sample, or None when skipped, failed, without GPS fix, or
            superseded by a wifi state change.
        """
        if self._cycle_lock.locked():
            logger.debug("Telemetry cycle already in flight, skipping")
            return None

        async with self._cycle_lock:
            self._cycle_task = asyncio.current_task()
            token = self._token
            self.cycle_count += 1
            try:
                sample = await self._capture_sample()
            except TelemetryStepError as e:
                self.failure_count += 1
                logger.warning(f"⚠️ {e}")
                sample = None
            except Exception:
                self.failure_count += 1
                logger.exception("Unexpected error in telemetry cycle")
                sample = None
            finally:
                await self._cleanup()

            if sample is None:
                return None
            if not self._is_current(token):
                logger.debug("Discarding telemetry from a superseded wifi session")
                return None

            self._status.update(telemetry=sample)
            logger.info(f"📍 Location: {sample.latitude:.6f}, {sample.longitude:.6f}")
            return sample

    async def _step(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except (AccessoryHttpError, aiohttp.ClientError, TimeoutError) as e:
            raise TelemetryStepError(name, str(e) or type(e).__name__) from e

    async def _capture_sample(self) -> TelemetrySample | None:
        await self._step("photo_mode", self._http.set_photo_mode)
        await self._step("shutter", self._http.trigger_shutter)
        await asyncio.sleep(self._timeout.telemetry_settle_delay)

        media = await self._step("media_list", self._media.get_media_list)
        if not media:
            raise TelemetryStepError("media_list", "no media found after capture")
        latest = media[0]

        metadata = await self._step("metadata", lambda: self._media.get_media_metadata(latest.name))
        position = extract_gps(metadata)
        if position is None:
            logger.debug(f"No GPS fix in metadata of {latest.name}")
            return None

        latitude, longitude = position
        return TelemetrySample(latitude=latitude, longitude=longitude, captured_at=datetime.now(timezone.utc))

    async def _cleanup(self) -> None:
        try:
            await self._media.delete_all_media()
        except (AccessoryHttpError, aiohttp.ClientError, TimeoutError) as e:
            self.cleanup_failure_count += 1
            logger.warning(f"Media cleanup failed: {e}")

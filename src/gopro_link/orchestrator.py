"""Connection orchestrator.

Drives the two-phase link to the accessory and owns every resource involved:

1. BLE phase: scan, connect, write the AP-mode command
2. WiFi phase: join the accessory access point, start the preview stream
3. Telemetry: poll GPS while the stream is up

All state transitions are published through the ``StatusStore``; presentation
layers subscribe to it and never call into the connectors directly.
"""

from __future__ import annotations

__all__ = ["AccessoryHandle", "ConnectionOrchestrator"]

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .commands import HttpCommands, MediaCommands
from .config import AccessoryProfile, TimeoutConfig
from .connection.ble_connector import BleConnector
from .connection.host_wifi import HostWifiBackend, NmcliWifiBackend
from .connection.http_client import AccessoryHttpClient
from .connection.radio import AdapterState, RadioHandle, RadioSession
from .connection.wifi_connector import WifiConnector
from .exceptions import (
    BleConnectionError,
    ConnectCancelledError,
    GoProLinkError,
    RadioHandleDestroyedError,
    RadioNotReadyError,
    ScanError,
    StreamStartError,
    WifiAssociationError,
)
from .status import ConnectionState, LinkPhase, StatusStore
from .telemetry import TelemetryPoller

logger = logging.getLogger(__name__)


@dataclass
class AccessoryHandle:
    """The connected BLE peripheral.

    Attributes:
        device: Device the connection was made to
        client: Connected bleak client
        generation: Radio session generation the client was created on
    """

    device: BLEDevice
    client: BleakClient
    generation: int


class ConnectionOrchestrator:
    """Single owner of the accessory link.

    Usage example:
        >>> profile = AccessoryProfile(serial="1234", wifi_password="secret")
        >>> async with ConnectionOrchestrator(profile) as link:
        ...     print(link.status.stream_endpoint)  # udp://@:8556
        ...     ok = await link.reconnect()

    Args:
        profile: Accessory profile (SSID prefix, pre-shared key, ports)
        timeout_config: Timeout configuration
        status: Status store to publish to (a new one by default)
        radio: BLE adapter handle (bleak-backed by default)
        ble_connector: BLE phase implementation
        host_wifi: Host WiFi backend (``nmcli`` by default)
        http_client: Accessory HTTP client
        http_commands: Camera control commands (built on ``http_client`` by default)
        media_commands: Media commands (built on ``http_client`` by default)
    """

    def __init__(
        self,
        profile: AccessoryProfile,
        timeout_config: TimeoutConfig | None = None,
        status: StatusStore | None = None,
        radio: RadioHandle | None = None,
        ble_connector: BleConnector | None = None,
        host_wifi: HostWifiBackend | None = None,
        http_client: AccessoryHttpClient | None = None,
        http_commands: HttpCommands | None = None,
        media_commands: MediaCommands | None = None,
    ) -> None:
        self.profile = profile
        self._timeout = timeout_config or TimeoutConfig()
        self.status = status or StatusStore()

        # Connection managers
        self.radio = radio or RadioHandle()
        self.ble = ble_connector or BleConnector(self._timeout)
        self.http = http_client or AccessoryHttpClient(profile, self._timeout)

        # Command interfaces
        self.http_commands = http_commands or HttpCommands(self.http)
        self.media_commands = media_commands or MediaCommands(self.http)

        self.wifi = WifiConnector(profile, self._timeout, host_wifi or NmcliWifiBackend(), self.http_commands)
        self.poller = TelemetryPoller(self.http_commands, self.media_commands, self.status, self._timeout)

        self._accessory: AccessoryHandle | None = None
        self._connect_task: asyncio.Task[str] | None = None
        self._cancel_event: asyncio.Event | None = None
        self._recovery_lock = asyncio.Lock()
        self._wifi_session = 0
        self._torn_down = False

        self.unexpected_disconnects = 0

        logger.info(f"Initializing link orchestrator for accessory {profile.serial} (SSID prefix {profile.ssid_prefix})")

    async def __aenter__(self) -> ConnectionOrchestrator:
        """Connect on entry; tears down again if the connect fails."""
        try:
            await self.connect()
        except BaseException:
            await self.teardown()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.teardown()

    @property
    def accessory(self) -> AccessoryHandle | None:
        return self._accessory

    @property
    def is_connecting(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    # ==================== Public operations ====================

    async def connect(self) -> str:
        """Run the full BLE → WiFi sequence.

        Joins the attempt already in flight instead of starting a second scan,
        and returns the current endpoint when already streaming.

        Returns:
            Stream endpoint (``udp://@:<port>``)

        Raises:
            RadioNotReadyError: Adapter not powered on (the radio handle was recreated, retry is allowed)
            ScanError: No accessory found
            ConnectFailedError: BLE connection failed
            ServiceDiscoveryError: Control characteristic missing
            CharacteristicWriteError: AP-mode command failed
            WifiAssociationError: Host could not join the access point
            StreamStartError: Start-stream command failed
            ConnectCancelledError: Attempt cancelled by reconnect, reset or teardown
        """
        self._ensure_not_torn_down()
        if self.status.phase is LinkPhase.STREAMING and self.status.stream_endpoint:
            return self.status.stream_endpoint
        return await self._start_or_join(self._run_connect)

    async def retry_wifi(self) -> str:
        """Re-run only the WiFi phase on an established BLE link.

        Returns:
            Stream endpoint

        Raises:
            BleConnectionError: Bluetooth is not connected
            WifiAssociationError: Host could not join the access point
            StreamStartError: Start-stream command failed
        """
        self._ensure_not_torn_down()
        if self.is_connecting:
            return await self._start_or_join(self._run_connect)
        if self.status.phase is LinkPhase.STREAMING and self.status.stream_endpoint:
            return self.status.stream_endpoint
        if self.status.bluetooth is not ConnectionState.CONNECTED:
            raise BleConnectionError("Bluetooth link is not established, run connect() instead")
        return await self._start_or_join(self._run_wifi_retry)

    async def reconnect(self) -> bool:
        """Tear everything down, recreate the radio and connect again.

        Never raises connect errors.

        Returns:
            True if the link is streaming again, False if it ended fully disconnected
        """
        if self._torn_down:
            logger.warning("Reconnect requested after teardown, ignoring")
            return False
        if self._recovery_lock.locked():
            logger.debug("Recovery already running, waiting for its outcome")
            async with self._recovery_lock:
                return self.status.phase is LinkPhase.STREAMING

        async with self._recovery_lock:
            logger.info("🔄 Reconnecting...")
            with self._busy():
                await self._teardown_link("Reconnecting...")
                if not await self._recreate_radio():
                    return False
            if self._torn_down:
                logger.info("Link torn down during reconnect, not reconnecting")
                return False
            return await self._connect_quietly()

    async def reset(self) -> bool:
        """Stronger ``reconnect()``: also leaves the accessory WiFi and waits a settle delay.

        Returns:
            True if the link is streaming again, False if it ended fully disconnected
        """
        if self._torn_down:
            logger.warning("Reset requested after teardown, ignoring")
            return False
        if self._recovery_lock.locked():
            logger.debug("Recovery already running, waiting for its outcome")
            async with self._recovery_lock:
                return self.status.phase is LinkPhase.STREAMING

        async with self._recovery_lock:
            logger.info("♻️ Resetting connection...")
            with self._busy():
                await self._teardown_link("Resetting connection...")
                try:
                    await self.wifi.disconnect()
                except WifiAssociationError as e:
                    logger.warning(f"Could not leave accessory WiFi: {e}")
                await self.http.close()
                if not await self._recreate_radio():
                    return False
                await asyncio.sleep(self._timeout.reset_settle_delay)
            if self._torn_down:
                logger.info("Link torn down during reset, not reconnecting")
                return False
            return await self._connect_quietly()

    async def teardown(self) -> None:
        """Release everything at session end. Safe to call twice or without a prior connect."""
        if self._torn_down:
            return
        self._torn_down = True

        logger.info("Tearing down accessory link...")
        await self._teardown_link("Disconnected")
        await self.poller.aclose()
        await self.radio.destroy()
        await self.http.close()
        logger.info("✅ Accessory link torn down")

    def get_link_stats(self) -> dict[str, Any]:
        """Link statistics for diagnostics."""
        snapshot = self.status.snapshot()
        return {
            "phase": snapshot.phase.value,
            "bluetooth": snapshot.bluetooth.value,
            "wifi": snapshot.wifi.value,
            "stream_endpoint": snapshot.stream_endpoint,
            "is_busy": snapshot.is_busy,
            "radio_generation": self.radio.generation,
            "unexpected_disconnects": self.unexpected_disconnects,
            "telemetry_cycles": self.poller.cycle_count,
            "telemetry_failures": self.poller.failure_count,
            "telemetry_cleanup_failures": self.poller.cleanup_failure_count,
            "http_errors": self.http.error_count,
        }

    # ==================== Connect sequence ====================

    def _ensure_not_torn_down(self) -> None:
        if self._torn_down:
            raise GoProLinkError("Link orchestrator has been torn down")

    @contextlib.contextmanager
    def _busy(self) -> Iterator[None]:
        self.status.update(is_busy=True)
        try:
            yield
        finally:
            self.status.update(is_busy=False)

    async def _start_or_join(self, runner: Callable[[asyncio.Event], Awaitable[str]]) -> str:
        if self._connect_task is None or self._connect_task.done():
            self._cancel_event = asyncio.Event()
            self._connect_task = asyncio.create_task(runner(self._cancel_event), name="gopro-link-connect")
        else:
            logger.debug("Connect already in flight, joining it")

        task = self._connect_task
        try:
            # Shielded so one caller giving up does not cancel the attempt for the others
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ConnectCancelledError("Connect attempt was cancelled") from None
            raise

    async def _run_connect(self, cancel_event: asyncio.Event) -> str:
        with self._busy():
            attempt = 0
            while True:
                try:
                    return await self._connect_sequence(cancel_event)
                except RadioHandleDestroyedError as e:
                    await self._release_accessory()
                    if attempt >= self._timeout.max_radio_retries or cancel_event.is_set():
                        logger.error(f"❌ Bluetooth session lost: {e}")
                        self.status.reset_link("Bluetooth unavailable")
                        raise

                    attempt += 1
                    delay = self._timeout.connection_retry_interval * 2 ** (attempt - 1)
                    logger.warning(
                        f"Radio session lost ({e}), retrying in {delay:.1f}s "
                        f"(attempt {attempt}/{self._timeout.max_radio_retries})"
                    )
                    await self.radio.recreate()
                    await asyncio.sleep(delay)

    async def _run_wifi_retry(self, cancel_event: asyncio.Event) -> str:
        with self._busy():
            return await self._wifi_phase()

    async def _connect_sequence(self, cancel_event: asyncio.Event) -> str:
        session = self.radio.session
        state = await session.state()
        if state is not AdapterState.POWERED_ON:
            logger.warning(f"⚠️ Bluetooth adapter not ready ({state.value}), recreating radio session")
            # The held client belongs to the session about to be destroyed
            await self.poller.stop()
            await self._release_accessory()
            await self.radio.recreate()
            self.status.reset_link(f"Bluetooth is not ready ({state.value})")
            raise RadioNotReadyError(state.value)

        await self._ble_phase(session, cancel_event)
        return await self._wifi_phase()

    async def _ble_phase(self, session: RadioSession, cancel_event: asyncio.Event) -> None:
        await self.poller.stop()
        await self._release_accessory()
        generation = self.radio.generation

        self.status.update(
            bluetooth=ConnectionState.CONNECTING,
            wifi=ConnectionState.DISCONNECTED,
            phase=LinkPhase.SCANNING_BLE,
            stream_endpoint="",
            status_message="Scanning for GoPro...",
        )
        try:
            device = await self.ble.discover(session, cancel_event)

            self.status.update(
                phase=LinkPhase.CONNECTING_BLE,
                status_message=f"Connecting to {device.name or device.address}...",
            )
            client = await self.ble.connect(session, device, self._on_ble_disconnected)
            self._accessory = AccessoryHandle(device=device, client=client, generation=generation)

            self.status.update(phase=LinkPhase.CONFIGURING_BLE, status_message="Enabling GoPro WiFi...")
            await self.ble.enable_access_point(client)
        except BleConnectionError as e:
            logger.error(f"❌ Bluetooth phase failed: {e}")
            await self._release_accessory()
            self.status.reset_link(f"Bluetooth connection failed: {e}")
            if isinstance(e, ScanError) and not cancel_event.is_set():
                await self.radio.recreate()
            raise

        self.status.update(bluetooth=ConnectionState.CONNECTED, status_message="GoPro WiFi enabled")

    async def _wifi_phase(self) -> str:
        await self.poller.stop()
        self._wifi_session += 1
        token = self._wifi_session

        self.status.update(
            wifi=ConnectionState.CONNECTING,
            phase=LinkPhase.CONNECTING_WIFI,
            stream_endpoint="",
            status_message="Connecting to GoPro WiFi...",
        )
        try:
            ssid = await self.wifi.associate()
            self.status.update(status_message=f"Starting stream on {ssid}...")
            endpoint = await self.wifi.start_stream()
        except (WifiAssociationError, StreamStartError) as e:
            logger.error(f"❌ WiFi phase failed: {e}")
            self.status.update(
                wifi=ConnectionState.DISCONNECTED,
                phase=LinkPhase.IDLE,
                stream_endpoint="",
                status_message=f"WiFi connection failed: {e}",
            )
            raise

        self.status.update(
            wifi=ConnectionState.CONNECTED,
            phase=LinkPhase.STREAMING,
            stream_endpoint=endpoint,
            status_message="Streaming",
        )
        self.poller.start(token)
        logger.info(f"🎉 Streaming at {endpoint}")
        return endpoint

    # ==================== Recovery helpers ====================

    async def _connect_quietly(self) -> bool:
        try:
            await self.connect()
        except GoProLinkError as e:
            logger.warning(f"⚠️ Connection attempt failed: {e}")
            await self.poller.stop()
            await self._release_accessory()
            self.status.reset_link(f"Connection failed: {e}")
            return False
        return True

    async def _teardown_link(self, message: str) -> None:
        """Cancel the in-flight attempt and release held resources, keeping the radio handle."""
        if self._cancel_event is not None:
            self._cancel_event.set()

        task, self._connect_task = self._connect_task, None
        if task is not None:
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("In-flight connect cancelled")
            except Exception as e:
                logger.debug(f"In-flight connect ended with {type(e).__name__}: {e}")

        await self.poller.stop()

        if self.radio.is_alive:
            try:
                await self.radio.session.stop_scan()
            except BleakError as e:
                logger.warning(f"Error stopping scan: {e}")

        await self._release_accessory()
        await self.ble.cancel_all()
        self.status.reset_link(message)

    async def _recreate_radio(self) -> bool:
        """Recreate the radio for a recovery; False once teardown has claimed it."""
        if self._torn_down:
            logger.info("Link torn down during recovery, keeping the radio destroyed")
            return False
        await self.radio.recreate()
        if self._torn_down:
            # Teardown ran while the old session was being destroyed
            await self.radio.destroy()
            return False
        return True

    async def _release_accessory(self) -> None:
        handle, self._accessory = self._accessory, None
        if handle is None:
            return
        logger.debug(f"Releasing accessory {handle.device.address}")
        await self.ble.cancel_connection(handle.device.address)

    def _on_ble_disconnected(self, client: BleakClient) -> None:
        handle = self._accessory
        if handle is None or handle.client is not client:
            logger.debug("Ignoring disconnect from a released accessory")
            return

        self.unexpected_disconnects += 1
        logger.warning(f"⚠️ Accessory {handle.device.address} disconnected unexpectedly")

        if self.status.phase is LinkPhase.IDLE and self.status.bluetooth is ConnectionState.CONNECTED:
            self._accessory = None
            self.ble.forget(client)
            self.status.update(bluetooth=ConnectionState.DISCONNECTED, status_message="Bluetooth connection lost")

"""BLE phase of the link: discover, connect, switch the accessory to AP mode.

Implementation based on the Open GoPro BLE tutorial, directly using bleak's
``BleakClient`` through the current ``RadioSession``.
"""

from __future__ import annotations

__all__ = ["BleConnector"]

import asyncio
import contextlib
import logging

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from ..ble_uuid import AP_MODE_ON_COMMAND, GoProBleUUID, get_uuid_name
from ..config import TimeoutConfig
from ..exceptions import (
    CharacteristicWriteError,
    ConnectFailedError,
    RadioHandleDestroyedError,
    ScanError,
    ServiceDiscoveryError,
)
from .radio import DisconnectedCallback, RadioSession

logger = logging.getLogger(__name__)


class BleConnector:
    """BLE connector.

    Responsibilities:
    - Filtered discovery, first matching device wins
    - Connect, cancelling any stale connection to the same device first
    - Resolve the control characteristic and write the AP-mode command
    """

    def __init__(
        self,
        timeout_config: TimeoutConfig,
        service_uuid: str = GoProBleUUID.S_CONTROL_QUERY,
        control_uuid: str = GoProBleUUID.CQ_COMMAND,
        command: bytes = AP_MODE_ON_COMMAND,
    ) -> None:
        self._timeout = timeout_config
        self.service_uuid = service_uuid
        self.control_uuid = control_uuid
        self.command = command

        # Clients created by this connector that may still hold a link, by device address
        self._clients: dict[str, BleakClient] = {}

    async def discover(self, session: RadioSession, cancel_event: asyncio.Event | None = None) -> BLEDevice:
        """Scan for the accessory and return the first matching device.

        There is no ranking among several matches. Scanning stops as soon as a
        device is found, on timeout, or when ``cancel_event`` is set.

        Raises:
            ScanError: Scan could not start, found nothing, or was cancelled
            RadioHandleDestroyedError: Session destroyed before or during the scan
        """
        loop = asyncio.get_running_loop()
        found: asyncio.Future[BLEDevice] = loop.create_future()

        def _on_advertisement(device: BLEDevice, advertisement: AdvertisementData) -> None:
            if found.done():
                return
            name = advertisement.local_name or device.name or "(unnamed)"
            logger.info(f"📱 Found accessory: {name} ({device.address})")
            found.set_result(device)

        logger.info(f"🔍 Scanning for service {get_uuid_name(self.service_uuid)}...")
        try:
            await session.start_scan([self.service_uuid], _on_advertisement)
        except RadioHandleDestroyedError:
            raise
        except (BleakError, OSError) as e:
            raise ScanError(f"Failed to start scan: {e}") from e

        cancel_waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
        waiters: set[asyncio.Future] = {found}
        if cancel_waiter is not None:
            waiters.add(cancel_waiter)

        try:
            await asyncio.wait(
                waiters,
                timeout=self._timeout.ble_discovery_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not found.done():
                found.cancel()
            if session.is_alive:
                try:
                    await session.stop_scan()
                except BleakError as e:
                    logger.warning(f"Error stopping scan: {e}")

        if not session.is_alive:
            raise RadioHandleDestroyedError("Radio session destroyed during scan")
        if found.cancelled():
            if cancel_event is not None and cancel_event.is_set():
                raise ScanError("Scan cancelled")
            raise ScanError(f"No accessory found within {self._timeout.ble_discovery_timeout:.0f}s")
        return found.result()

    async def connect(
        self,
        session: RadioSession,
        device: BLEDevice,
        disconnected_callback: DisconnectedCallback | None = None,
    ) -> BleakClient:
        """Connect to a discovered device.

        Raises:
            ConnectFailedError: Connection failed or timed out
            RadioHandleDestroyedError: Session destroyed before or during connect
        """
        # Some stacks report "already connected" if a stale link to the same device survives
        await self.cancel_connection(device.address)

        client = session.create_client(
            device,
            disconnected_callback=disconnected_callback,
            timeout=self._timeout.ble_connect_timeout,
        )
        self._clients[device.address] = client

        logger.info(f"Connecting to {device.name or device.address}...")
        try:
            await asyncio.wait_for(client.connect(), timeout=self._timeout.ble_connect_timeout)
        except (BleakError, OSError, TimeoutError) as e:
            await self.cancel_connection(device.address)
            if not session.is_alive:
                raise RadioHandleDestroyedError("Radio session destroyed during connect") from e
            raise ConnectFailedError(f"Connection to {device.address} failed: {str(e) or type(e).__name__}") from e

        logger.info("✅ BLE connected")
        return client

    def resolve_control_characteristic(self, client: BleakClient) -> BleakGATTCharacteristic:
        """Look up the control characteristic in the resolved GATT table.

        Raises:
            ServiceDiscoveryError: Services unavailable or characteristic missing
        """
        try:
            services = client.services
        except BleakError as e:
            raise ServiceDiscoveryError(f"Service discovery has not completed: {e}") from e

        characteristic = services.get_characteristic(self.control_uuid) if services else None
        if characteristic is None:
            raise ServiceDiscoveryError(f"Characteristic {get_uuid_name(self.control_uuid)} not found on accessory")

        logger.debug(f"Resolved {get_uuid_name(self.control_uuid)} ({self.control_uuid})")
        return characteristic

    async def enable_access_point(self, client: BleakClient) -> None:
        """Resolve the control characteristic and write the AP-mode command with response.

        Raises:
            ServiceDiscoveryError: Control characteristic not found
            CharacteristicWriteError: Write failed or timed out
        """
        characteristic = self.resolve_control_characteristic(client)

        logger.info("📡 Requesting accessory WiFi access point...")
        logger.debug(f"📤 Writing {self.command.hex(' ')} to {get_uuid_name(self.control_uuid)}")
        try:
            await asyncio.wait_for(
                client.write_gatt_char(characteristic, self.command, response=True),
                timeout=self._timeout.ble_write_timeout,
            )
        except (BleakError, OSError, TimeoutError) as e:
            raise CharacteristicWriteError(f"AP mode command write failed: {str(e) or type(e).__name__}") from e

        logger.info("✅ AP mode command accepted")

    async def cancel_connection(self, address: str) -> None:
        """Disconnect and forget the client held for ``address``, if any."""
        client = self._clients.pop(address, None)
        if client is None:
            return

        logger.debug(f"Cancelling connection to {address}")
        with contextlib.suppress(BleakError, OSError, TimeoutError):
            await asyncio.wait_for(client.disconnect(), timeout=self._timeout.ble_disconnect_timeout)

    def forget(self, client: BleakClient) -> None:
        """Drop a client the accessory already disconnected, without calling into it."""
        for address, held in list(self._clients.items()):
            if held is client:
                del self._clients[address]

    @property
    def held_addresses(self) -> list[str]:
        return list(self._clients)

    async def cancel_all(self) -> None:
        """Disconnect every client this connector created."""
        for address in list(self._clients):
            await self.cancel_connection(address)

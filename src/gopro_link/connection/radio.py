"""BLE adapter session and its owning handle.

A ``RadioSession`` wraps one platform adapter session (scanner + client
factory). Some BLE stacks cannot recover a disposed session, so recovery is
always "destroy and build a new one": ``RadioHandle.recreate()``. Any call on
a destroyed session raises ``RadioHandleDestroyedError`` instead of touching
the defunct stack, and advertisements delivered after destroy are dropped.
"""

from __future__ import annotations

__all__ = [
    "AdapterState",
    "BleakRadioSession",
    "RadioHandle",
    "RadioSession",
    "ScanCallback",
    "classify_adapter_error",
]

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from enum import Enum

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from ..exceptions import RadioHandleDestroyedError

logger = logging.getLogger(__name__)

ScanCallback = Callable[[BLEDevice, AdvertisementData], None]
DisconnectedCallback = Callable[[BleakClient], None]


class AdapterState(str, Enum):
    """Host Bluetooth adapter state."""

    UNKNOWN = "Unknown"
    RESETTING = "Resetting"
    UNSUPPORTED = "Unsupported"
    UNAUTHORIZED = "Unauthorized"
    POWERED_OFF = "PoweredOff"
    POWERED_ON = "PoweredOn"


# Checked in order, first hit wins
_STATE_KEYWORDS: tuple[tuple[AdapterState, tuple[str, ...]], ...] = (
    (AdapterState.POWERED_OFF, ("powered off", "poweredoff", "not powered", "turned off", "radio is off")),
    (AdapterState.UNAUTHORIZED, ("unauthorized", "not authorized", "permission", "denied")),
    (AdapterState.UNSUPPORTED, ("unsupported", "not supported", "no bluetooth adapter", "adapter not found")),
    (AdapterState.RESETTING, ("resetting", "in progress")),
)


def classify_adapter_error(error: BaseException) -> AdapterState:
    """Map a bleak/OS error raised while probing the adapter to an adapter state.

    Bleak reports adapter problems as errors with backend-specific messages,
    so the state is derived from keywords in the message.
    """
    message = str(error).lower()
    for state, keywords in _STATE_KEYWORDS:
        if any(keyword in message for keyword in keywords):
            return state
    if isinstance(error, FileNotFoundError):
        return AdapterState.UNSUPPORTED
    return AdapterState.UNKNOWN


class RadioSession(ABC):
    """One adapter session.

    Subclasses implement the ``_``-prefixed hooks; the public methods enforce
    the session lifecycle.
    """

    def __init__(self) -> None:
        self._destroyed = False
        self._scanning = False

    @property
    def is_alive(self) -> bool:
        return not self._destroyed

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RadioHandleDestroyedError(f"{type(self).__name__} has been destroyed")

    async def state(self) -> AdapterState:
        """Current adapter state."""
        self._ensure_alive()
        return await self._probe_state()

    async def start_scan(self, service_uuids: Iterable[str], callback: ScanCallback) -> None:
        """Start a scan filtered by service UUIDs.

        ``callback`` is only invoked while this session is alive and scanning.
        """
        self._ensure_alive()

        def _guarded(device: BLEDevice, advertisement: AdvertisementData) -> None:
            if self._destroyed or not self._scanning:
                logger.debug(f"Ignoring late advertisement from {device.address}")
                return
            callback(device, advertisement)

        self._scanning = True
        try:
            await self._start_scan(list(service_uuids), _guarded)
        except BaseException:
            self._scanning = False
            raise

    async def stop_scan(self) -> None:
        """Stop the scan. No-op when not scanning or already destroyed."""
        if not self._scanning:
            return
        self._scanning = False
        await self._stop_scan()

    def create_client(
        self,
        device: BLEDevice,
        disconnected_callback: DisconnectedCallback | None = None,
        timeout: float = 20.0,
    ) -> BleakClient:
        """Create a client for a discovered device on this session."""
        self._ensure_alive()
        return self._create_client(device, disconnected_callback, timeout)

    async def destroy(self) -> None:
        """Stop scanning and release the session. Idempotent."""
        if self._destroyed:
            return
        try:
            await self.stop_scan()
        except BleakError as e:
            logger.warning(f"Error stopping scan while destroying radio session: {e}")
        finally:
            self._destroyed = True
        await self._close()

    @abstractmethod
    async def _probe_state(self) -> AdapterState: ...

    @abstractmethod
    async def _start_scan(self, service_uuids: list[str], callback: ScanCallback) -> None: ...

    @abstractmethod
    async def _stop_scan(self) -> None: ...

    @abstractmethod
    def _create_client(
        self,
        device: BLEDevice,
        disconnected_callback: DisconnectedCallback | None,
        timeout: float,
    ) -> BleakClient: ...

    async def _close(self) -> None:  # noqa: B027
        """Release backend resources (optional hook)."""


class BleakRadioSession(RadioSession):
    """Adapter session backed by bleak."""

    def __init__(self) -> None:
        super().__init__()
        self._scanner: BleakScanner | None = None

    async def _probe_state(self) -> AdapterState:
        if self._scanning:
            return AdapterState.POWERED_ON

        # Bleak has no portable adapter-state query; a short scanner start is the probe
        probe = BleakScanner()
        try:
            await probe.start()
            await probe.stop()
        except (BleakError, OSError) as e:
            state = classify_adapter_error(e)
            logger.debug(f"Adapter probe failed ({type(e).__name__}: {e}), state={state.value}")
            return state
        return AdapterState.POWERED_ON

    async def _start_scan(self, service_uuids: list[str], callback: ScanCallback) -> None:
        self._scanner = BleakScanner(detection_callback=callback, service_uuids=service_uuids)
        await self._scanner.start()
        logger.debug(f"Scanner started (filter: {service_uuids})")

    async def _stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
            logger.debug("Scanner stopped")
        except BleakError as e:
            logger.debug(f"Scanner stop reported: {e}")

    def _create_client(
        self,
        device: BLEDevice,
        disconnected_callback: DisconnectedCallback | None,
        timeout: float,
    ) -> BleakClient:
        return BleakClient(device, disconnected_callback=disconnected_callback, timeout=timeout)


class RadioHandle:
    """Owner of the single live ``RadioSession``.

    Usage example:
        >>> radio = RadioHandle()
        >>> state = await radio.session.state()
        >>> await radio.recreate()  # after a fatal adapter error
        >>> await radio.destroy()  # at session end
    """

    def __init__(self, session_factory: Callable[[], RadioSession] | None = None) -> None:
        self._factory = session_factory or BleakRadioSession
        self._session: RadioSession | None = self._factory()
        self._generation = 1
        logger.debug("Radio session 1 created")

    @property
    def generation(self) -> int:
        """Increments on every recreate; identifies which session an operation belongs to."""
        return self._generation

    @property
    def is_alive(self) -> bool:
        return self._session is not None and self._session.is_alive

    @property
    def session(self) -> RadioSession:
        """The current session.

        Raises:
            RadioHandleDestroyedError: The handle was destroyed and not recreated
        """
        if self._session is None or not self._session.is_alive:
            raise RadioHandleDestroyedError("Radio handle has been destroyed")
        return self._session

    async def recreate(self) -> RadioSession:
        """Destroy the current session (if any) and construct a fresh one."""
        old = self._session
        self._session = None
        if old is not None:
            await old.destroy()

        self._session = self._factory()
        self._generation += 1
        logger.info(f"🔄 Radio session recreated (generation {self._generation})")
        return self._session

    async def destroy(self) -> None:
        """Destroy the current session. Idempotent."""
        old = self._session
        self._session = None
        if old is not None:
            await old.destroy()
            logger.debug(f"Radio session {self._generation} destroyed")

"""Pytest configuration and common fixtures.

Everything here is hardware free: the radio session, BLE client, host WiFi
backend and accessory HTTP commands are replaced by in-memory fakes that
record what was asked of them.
"""

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any

import pytest

from gopro_link import (
    AccessoryProfile,
    AdapterState,
    ConnectionOrchestrator,
    LinkPhase,
    RadioHandle,
    RadioSession,
    StatusStore,
    TimeoutConfig,
)
from gopro_link.ble_uuid import GoProBleUUID
from gopro_link.commands.media_commands import MediaFile
from gopro_link.connection.ble_connector import BleConnector
from gopro_link.connection.host_wifi import HostWifiBackend

TEST_SERIAL = "1234"
TEST_WIFI_PASSWORD = "fishing-trip"


@dataclass
class FakeDevice:
    address: str
    name: str | None = None


@dataclass
class FakeAdvertisement:
    local_name: str | None = None


@dataclass
class FakeCharacteristic:
    uuid: str


class FakeServices:
    def __init__(self, ble: "FakeBle") -> None:
        self._ble = ble

    def get_characteristic(self, uuid: str) -> FakeCharacteristic | None:
        if self._ble.has_control_characteristic and uuid == GoProBleUUID.CQ_COMMAND:
            return FakeCharacteristic(uuid)
        return None


class FakeClient:
    """Stands in for ``BleakClient``."""

    def __init__(self, ble: "FakeBle", device: FakeDevice, disconnected_callback) -> None:
        self._ble = ble
        self._disconnected_callback = disconnected_callback
        self.address = device.address
        self.is_connected = False
        self.disconnect_count = 0
        self.services = FakeServices(ble)

    async def connect(self) -> bool:
        self._ble.connect_count += 1
        if self._ble.connect_error is not None:
            raise self._ble.connect_error
        self.is_connected = True
        return True

    async def disconnect(self) -> bool:
        self.disconnect_count += 1
        was_connected, self.is_connected = self.is_connected, False
        if was_connected and self._disconnected_callback is not None:
            self._disconnected_callback(self)
        return True

    async def write_gatt_char(self, characteristic, data, response: bool = False) -> None:
        self._ble.writes.append((characteristic.uuid, bytes(data), response))
        if self._ble.write_error is not None:
            raise self._ble.write_error

    def drop(self) -> None:
        """Simulate the accessory going away."""
        self.is_connected = False
        if self._disconnected_callback is not None:
            self._disconnected_callback(self)


class FakeRadioSession(RadioSession):
    def __init__(self, ble: "FakeBle") -> None:
        super().__init__()
        self._ble = ble
        self.scan_callback = None
        self.service_uuids: list[str] = []

    async def _probe_state(self) -> AdapterState:
        states = self._ble.adapter_states
        return states.pop(0) if len(states) > 1 else states[0]

    async def _start_scan(self, service_uuids, callback) -> None:
        self._ble.scan_count += 1
        if self._ble.scan_error is not None:
            raise self._ble.scan_error
        self.service_uuids = service_uuids
        self.scan_callback = callback
        if self._ble.advertise and self._ble.device is not None:
            asyncio.get_running_loop().call_soon(callback, self._ble.device, FakeAdvertisement("GoPro 1234"))

    async def _stop_scan(self) -> None:
        self._ble.stop_scan_count += 1

    def _create_client(self, device, disconnected_callback, timeout) -> FakeClient:
        client = FakeClient(self._ble, device, disconnected_callback)
        self._ble.clients.append(client)
        return client


class FakeBle:
    """Scriptable BLE world: adapter, advertising accessory, GATT behaviour."""

    def __init__(self) -> None:
        # Consumed one per probe; the last entry sticks
        self.adapter_states: list[AdapterState] = [AdapterState.POWERED_ON]
        self.device: FakeDevice | None = FakeDevice("AA:BB:CC:DD:EE:FF", "GoPro 1234")
        self.advertise = True
        self.has_control_characteristic = True
        self.scan_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.write_error: Exception | None = None

        self.sessions: list[FakeRadioSession] = []
        self.clients: list[FakeClient] = []
        self.writes: list[tuple[str, bytes, bool]] = []
        self.scan_count = 0
        self.stop_scan_count = 0
        self.connect_count = 0

    def session_factory(self) -> FakeRadioSession:
        session = FakeRadioSession(self)
        self.sessions.append(session)
        return session


class FakeHostWifi(HostWifiBackend):
    def __init__(self) -> None:
        self.associate_error: Exception | None = None
        self.disassociate_error: Exception | None = None
        self.associations: list[tuple[str, str]] = []
        self.disassociate_count = 0
        # When set, disassociate waits for it; lets a test hold a reset in flight
        self.disassociate_gate: asyncio.Event | None = None

    async def associate(self, ssid_prefix: str, password: str, timeout: float) -> str:
        self.associations.append((ssid_prefix, password))
        if self.associate_error is not None:
            raise self.associate_error
        return f"{ssid_prefix}ABCD"

    async def disassociate(self, timeout: float) -> None:
        self.disassociate_count += 1
        if self.disassociate_gate is not None:
            await self.disassociate_gate.wait()
        if self.disassociate_error is not None:
            raise self.disassociate_error


class FakeHttpCommands:
    """Stands in for ``HttpCommands``."""

    def __init__(self) -> None:
        self.stream_error: Exception | None = None
        self.photo_mode_error: Exception | None = None
        self.shutter_error: Exception | None = None
        self.answered_port: int | None = None
        self.calls: list[str] = []

    async def start_stream(self, port: int) -> int:
        self.calls.append(f"start_stream:{port}")
        if self.stream_error is not None:
            raise self.stream_error
        return self.answered_port or port

    async def set_photo_mode(self) -> None:
        self.calls.append("photo_mode")
        if self.photo_mode_error is not None:
            raise self.photo_mode_error

    async def trigger_shutter(self) -> None:
        self.calls.append("shutter")
        if self.shutter_error is not None:
            raise self.shutter_error


@dataclass
class FakeMediaCommands:
    """Stands in for ``MediaCommands``."""

    media: list[MediaFile] = field(
        default_factory=lambda: [
            MediaFile("100GOPRO/GOPR0002.JPG", "1700000100", "1700000100"),
            MediaFile("100GOPRO/GOPR0001.JPG", "1700000000", "1700000000"),
        ]
    )
    metadata: dict[str, Any] = field(default_factory=lambda: {"gps": {"latitude": 59.3293, "longitude": 18.0686}})
    media_list_error: Exception | None = None
    metadata_error: Exception | None = None
    delete_error: Exception | None = None
    # When set, metadata waits for it; lets a test hold a cycle in flight
    metadata_gate: asyncio.Event | None = None

    metadata_requests: list[str] = field(default_factory=list)
    delete_count: int = 0

    async def get_media_list(self) -> list[MediaFile]:
        if self.media_list_error is not None:
            raise self.media_list_error
        return list(self.media)

    async def get_media_metadata(self, name: str) -> dict[str, Any]:
        self.metadata_requests.append(name)
        if self.metadata_gate is not None:
            await self.metadata_gate.wait()
        if self.metadata_error is not None:
            raise self.metadata_error
        return self.metadata

    async def delete_all_media(self) -> None:
        self.delete_count += 1
        if self.delete_error is not None:
            raise self.delete_error


async def wait_for_phase(status: StatusStore, phase: LinkPhase, timeout: float = 2.0) -> None:
    """Wait until the status store reaches ``phase``."""
    if status.phase is phase:
        return
    reached = asyncio.Event()
    unsubscribe = status.subscribe(lambda snap: reached.set() if snap.phase is phase else None)
    try:
        await asyncio.wait_for(reached.wait(), timeout)
    finally:
        unsubscribe()


@pytest.fixture
def profile() -> AccessoryProfile:
    return AccessoryProfile(serial=TEST_SERIAL, wifi_password=TEST_WIFI_PASSWORD)


@pytest.fixture
def timeout_config() -> TimeoutConfig:
    """Short timeouts; the poll loop never ticks on its own."""
    return TimeoutConfig(
        ble_discovery_timeout=0.5,
        ble_connect_timeout=0.5,
        ble_write_timeout=0.5,
        ble_disconnect_timeout=0.5,
        wifi_associate_timeout=0.5,
        wifi_disconnect_timeout=0.5,
        http_request_timeout=0.5,
        telemetry_poll_interval=3600,
        telemetry_settle_delay=0,
        reset_settle_delay=0,
        connection_retry_interval=0,
    )


@pytest.fixture
def fake_ble() -> FakeBle:
    return FakeBle()


@pytest.fixture
def fake_host_wifi() -> FakeHostWifi:
    return FakeHostWifi()


@pytest.fixture
def fake_http_commands() -> FakeHttpCommands:
    return FakeHttpCommands()


@pytest.fixture
def fake_media_commands() -> FakeMediaCommands:
    return FakeMediaCommands()


@pytest.fixture
async def orchestrator(
    profile: AccessoryProfile,
    timeout_config: TimeoutConfig,
    fake_ble: FakeBle,
    fake_host_wifi: FakeHostWifi,
    fake_http_commands: FakeHttpCommands,
    fake_media_commands: FakeMediaCommands,
) -> AsyncGenerator[ConnectionOrchestrator, None]:
    """Orchestrator wired to fakes (not connected)."""
    link = ConnectionOrchestrator(
        profile,
        timeout_config=timeout_config,
        radio=RadioHandle(fake_ble.session_factory),
        ble_connector=BleConnector(timeout_config),
        host_wifi=fake_host_wifi,
        http_commands=fake_http_commands,
        media_commands=fake_media_commands,
    )
    try:
        yield link
    finally:
        await link.teardown()

"""Unit tests - no hardware required.

Tests package imports, class instantiation, and basic functionality that doesn't require real hardware.
"""

import logging

import pytest


def test_package_imports():
    """Test that the main package can be imported."""
    import gopro_link

    assert gopro_link.__version__ is not None
    assert isinstance(gopro_link.__version__, str)
    assert len(gopro_link.__version__) > 0


def test_orchestrator_import():
    """Test that ConnectionOrchestrator can be imported."""
    from gopro_link import ConnectionOrchestrator

    assert ConnectionOrchestrator is not None


def test_exception_hierarchy():
    """Every error the link raises shares one root."""
    from gopro_link.exceptions import (
        AccessoryHttpError,
        BleConnectionError,
        CharacteristicWriteError,
        ConnectCancelledError,
        ConnectFailedError,
        GoProLinkError,
        RadioError,
        RadioHandleDestroyedError,
        RadioNotReadyError,
        ScanError,
        ServiceDiscoveryError,
        StreamStartError,
        TelemetryStepError,
        WifiAssociationError,
    )

    for error_cls in (ScanError, ConnectFailedError, ServiceDiscoveryError, CharacteristicWriteError):
        assert issubclass(error_cls, BleConnectionError)
    assert issubclass(RadioNotReadyError, RadioError)
    assert issubclass(RadioHandleDestroyedError, RadioError)
    assert issubclass(StreamStartError, AccessoryHttpError)
    assert issubclass(TelemetryStepError, AccessoryHttpError)
    for error_cls in (RadioError, BleConnectionError, WifiAssociationError, AccessoryHttpError, ConnectCancelledError):
        assert issubclass(error_cls, GoProLinkError)


def test_radio_not_ready_error_carries_state():
    from gopro_link.exceptions import RadioNotReadyError

    error = RadioNotReadyError("PoweredOff")
    assert error.state == "PoweredOff"
    assert "PoweredOff" in str(error)


def test_telemetry_step_error_carries_step():
    from gopro_link.exceptions import TelemetryStepError

    error = TelemetryStepError("shutter", "HTTP 500")
    assert error.step == "shutter"
    assert "shutter" in str(error)


def test_ble_wire_constants():
    """The accessory protocol identifiers are fixed."""
    from gopro_link.ble_uuid import AP_MODE_ON_COMMAND, GoProBleUUID, get_uuid_name

    assert GoProBleUUID.S_CONTROL_QUERY == "0000fea6-0000-1000-8000-00805f9b34fb"
    assert GoProBleUUID.CQ_COMMAND == "b5f90072-aa8d-11e3-9046-0002a5d5c51b"
    assert AP_MODE_ON_COMMAND == bytes([0x03, 0x17, 0x01, 0x01])
    assert get_uuid_name(GoProBleUUID.CQ_COMMAND.upper()) == get_uuid_name(GoProBleUUID.CQ_COMMAND)


@pytest.mark.asyncio
async def test_orchestrator_creation(profile, timeout_config, fake_ble, fake_host_wifi):
    """Test that an orchestrator can be created and torn down without connecting."""
    from gopro_link import ConnectionOrchestrator, RadioHandle

    link = ConnectionOrchestrator(
        profile,
        timeout_config=timeout_config,
        radio=RadioHandle(fake_ble.session_factory),
        host_wifi=fake_host_wifi,
    )
    assert link.profile.ssid_prefix == "GP1234"
    assert link.status.snapshot().phase.value == "idle"

    await link.teardown()
    await link.teardown()
    assert not link.radio.is_alive


def test_setup_logging_quiets_radio_libraries_and_writes_file(tmp_path):
    """Noisy libraries are held at WARNING unless radio debugging is on."""
    from gopro_link import setup_logging

    log_file = tmp_path / "logs" / "link.log"
    try:
        setup_logging(level=logging.DEBUG, log_file=log_file)
        assert logging.getLogger("bleak").level == logging.WARNING
        logging.getLogger("gopro_link.test").debug("hello from the lake")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from the lake" in log_file.read_text(encoding="utf-8")

        setup_logging(level=logging.DEBUG, radio_debug=True)
        assert logging.getLogger("bleak").level == logging.DEBUG
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()], force=True)
        for name in ("bleak", "aiohttp", "asyncio"):
            logging.getLogger(name).setLevel(logging.NOTSET)

"""Status store tests."""

from datetime import datetime, timezone

import pytest

from gopro_link import ConnectionState, LinkPhase, StatusSnapshot, StatusStore, TelemetrySample


def test_initial_snapshot_is_disconnected():
    snapshot = StatusStore().snapshot()

    assert snapshot.bluetooth is ConnectionState.DISCONNECTED
    assert snapshot.wifi is ConnectionState.DISCONNECTED
    assert snapshot.phase is LinkPhase.IDLE
    assert snapshot.stream_endpoint == ""
    assert snapshot.telemetry is None
    assert not snapshot.is_busy
    assert not snapshot.is_streaming


def test_subscribers_receive_every_change():
    store = StatusStore()
    received: list[StatusSnapshot] = []
    store.subscribe(received.append)

    store.update(bluetooth=ConnectionState.CONNECTING, status_message="Scanning for GoPro...")
    store.update(bluetooth=ConnectionState.CONNECTED)

    assert [snap.bluetooth for snap in received] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert received[-1].status_message == "Scanning for GoPro..."


def test_unchanged_update_does_not_notify():
    store = StatusStore()
    received = []
    store.subscribe(received.append)

    store.update(wifi=ConnectionState.DISCONNECTED)

    assert received == []


def test_unsubscribe_stops_notifications():
    store = StatusStore()
    received = []
    unsubscribe = store.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    store.update(phase=LinkPhase.SCANNING_BLE)

    assert received == []


def test_failing_listener_does_not_break_others():
    store = StatusStore()
    received = []

    def broken(_snapshot):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(received.append)
    store.update(is_busy=True)

    assert len(received) == 1
    assert store.snapshot().is_busy


def test_snapshots_are_immutable():
    snapshot = StatusStore().snapshot()

    with pytest.raises(AttributeError):
        snapshot.wifi = ConnectionState.CONNECTED  # type: ignore[misc]


def test_reset_link_keeps_last_known_location():
    store = StatusStore()
    sample = TelemetrySample(latitude=59.3, longitude=18.1, captured_at=datetime.now(timezone.utc))
    store.update(
        bluetooth=ConnectionState.CONNECTED,
        wifi=ConnectionState.CONNECTED,
        phase=LinkPhase.STREAMING,
        stream_endpoint="udp://@:8556",
        telemetry=sample,
    )
    assert store.snapshot().is_streaming

    store.reset_link("Disconnected")

    snapshot = store.snapshot()
    assert snapshot.bluetooth is ConnectionState.DISCONNECTED
    assert snapshot.wifi is ConnectionState.DISCONNECTED
    assert snapshot.phase is LinkPhase.IDLE
    assert snapshot.stream_endpoint == ""
    assert snapshot.status_message == "Disconnected"
    assert snapshot.telemetry == sample


def test_to_dict_uses_plain_values():
    captured_at = datetime(2024, 6, 1, 5, 30, tzinfo=timezone.utc)
    store = StatusStore()
    store.update(
        wifi=ConnectionState.CONNECTING,
        telemetry=TelemetrySample(latitude=1.5, longitude=-2.25, captured_at=captured_at),
    )

    data = store.snapshot().to_dict()

    assert data["wifi"] == "connecting"
    assert data["phase"] == "idle"
    assert data["telemetry"] == {"latitude": 1.5, "longitude": -2.25, "captured_at": captured_at.isoformat()}

"""Link status store.

Holds the state presentation layers read: both connection states, the link
phase, the stream endpoint, the last telemetry sample and a status message.
Writers are the orchestrator and the telemetry poller; subscribers receive an
immutable ``StatusSnapshot`` on every change instead of polling.
"""

from __future__ import annotations

__all__ = [
    "ConnectionState",
    "LinkPhase",
    "StatusSnapshot",
    "StatusStore",
    "TelemetrySample",
]

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection state of one channel (bluetooth or wifi)."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LinkPhase(str, Enum):
    """Orchestrator state machine phase."""

    IDLE = "idle"
    SCANNING_BLE = "scanning_ble"
    CONNECTING_BLE = "connecting_ble"
    CONFIGURING_BLE = "configuring_ble"
    CONNECTING_WIFI = "connecting_wifi"
    STREAMING = "streaming"


@dataclass(frozen=True)
class TelemetrySample:
    """Last known accessory location.

    Attributes:
        latitude: Decimal degrees
        longitude: Decimal degrees
        captured_at: When the sample was read from the accessory
    """

    latitude: float
    longitude: float
    captured_at: datetime


@dataclass(frozen=True)
class StatusSnapshot:
    """Immutable view of the link status."""

    bluetooth: ConnectionState = ConnectionState.DISCONNECTED
    wifi: ConnectionState = ConnectionState.DISCONNECTED
    phase: LinkPhase = LinkPhase.IDLE
    stream_endpoint: str = ""
    status_message: str = ""
    telemetry: TelemetrySample | None = None
    is_busy: bool = False

    @property
    def is_streaming(self) -> bool:
        return self.wifi is ConnectionState.CONNECTED and self.stream_endpoint != ""

    def to_dict(self) -> dict:
        """Convert to a plain dictionary (enum values as strings)."""
        return {
            "bluetooth": self.bluetooth.value,
            "wifi": self.wifi.value,
            "phase": self.phase.value,
            "stream_endpoint": self.stream_endpoint,
            "status_message": self.status_message,
            "telemetry": (
                {
                    "latitude": self.telemetry.latitude,
                    "longitude": self.telemetry.longitude,
                    "captured_at": self.telemetry.captured_at.isoformat(),
                }
                if self.telemetry
                else None
            ),
            "is_busy": self.is_busy,
        }


StatusListener = Callable[[StatusSnapshot], None]


class StatusStore:
    """Observable status container.

    Usage example:
        >>> store = StatusStore()
        >>> unsubscribe = store.subscribe(lambda snap: print(snap.wifi.value))
        >>> _ = store.update(wifi=ConnectionState.CONNECTING)
        connecting
        >>> unsubscribe()
    """

    def __init__(self) -> None:
        self._snapshot = StatusSnapshot()
        self._listeners: list[StatusListener] = []

    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    @property
    def bluetooth(self) -> ConnectionState:
        return self._snapshot.bluetooth

    @property
    def wifi(self) -> ConnectionState:
        return self._snapshot.wifi

    @property
    def phase(self) -> LinkPhase:
        return self._snapshot.phase

    @property
    def stream_endpoint(self) -> str:
        return self._snapshot.stream_endpoint

    @property
    def telemetry(self) -> TelemetrySample | None:
        return self._snapshot.telemetry

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener called with the new snapshot after every change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(self, **changes) -> StatusSnapshot:
        """Apply field changes and notify listeners if anything changed.

        Args:
            **changes: StatusSnapshot field values

        Returns:
            The current snapshot
        """
        new_snapshot = replace(self._snapshot, **changes)
        if new_snapshot == self._snapshot:
            return self._snapshot

        self._snapshot = new_snapshot
        logger.debug(
            f"Status: bt={new_snapshot.bluetooth.value} wifi={new_snapshot.wifi.value} "
            f"phase={new_snapshot.phase.value} msg='{new_snapshot.status_message}'"
        )
        for listener in list(self._listeners):
            try:
                listener(new_snapshot)
            except Exception as e:
                logger.warning(f"Status listener {listener!r} raised: {e}")
        return new_snapshot

    def reset_link(self, message: str = "") -> StatusSnapshot:
        """Collapse both channels to disconnected and clear the stream endpoint.

        Telemetry is kept: it is the last known location, not link state.
        """
        return self.update(
            bluetooth=ConnectionState.DISCONNECTED,
            wifi=ConnectionState.DISCONNECTED,
            phase=LinkPhase.IDLE,
            stream_endpoint="",
            status_message=message,
        )

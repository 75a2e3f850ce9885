"""GoPro BLE identifiers and the one command the link sends.

References:
- OpenGoPro BLE docs: https://gopro.github.io/OpenGoPro/ble/
"""

from __future__ import annotations

__all__ = ["AP_MODE_ON_COMMAND", "GoProBleUUID", "get_uuid_name"]

from typing import Final

# Command 0x17 (AP control), one parameter byte, value 1 = access point on
AP_MODE_ON_COMMAND: Final = bytes([0x03, 0x17, 0x01, 0x01])


class GoProBleUUID:
    """UUIDs in the standard string form bleak accepts."""

    # Advertised by every camera; the scan filter
    S_CONTROL_QUERY: Final = "0000fea6-0000-1000-8000-00805f9b34fb"
    # Write-with-response target of AP_MODE_ON_COMMAND
    CQ_COMMAND: Final = "b5f90072-aa8d-11e3-9046-0002a5d5c51b"


_NAMES: Final[dict[str, str]] = {
    GoProBleUUID.S_CONTROL_QUERY: "control service",
    GoProBleUUID.CQ_COMMAND: "command characteristic",
}


def get_uuid_name(uuid: str) -> str:
    """Readable name for log lines; unknown UUIDs are returned as given."""
    return _NAMES.get(uuid.lower(), uuid)

"""GoPro link - connect an action camera over BLE + WiFi and stream its preview.

Main components:
- connection/: BLE adapter session, BLE/WiFi connectors, host WiFi, HTTP client
- commands/: Accessory HTTP commands (stream, photo, media)
- orchestrator.py: Connection state machine (single owner of the link)
- telemetry.py: GPS polling while the stream is up
- status.py: Observable link status for presentation layers
- config.py: Accessory profiles and timeouts

Key features:
- Two-phase link (BLE wakes the accessory access point, WiFi carries the stream)
- Recreate-on-failure BLE adapter handling
- Never-raising reconnect/reset recovery
- GPS telemetry via capture/metadata/delete cycles
"""

from importlib.metadata import version

__version__ = version("gopro-link")

from .config import AccessoryProfile, AccessoryProfileStore, TimeoutConfig
from .connection.radio import AdapterState, BleakRadioSession, RadioHandle, RadioSession
from .exceptions import (
    AccessoryHttpError,
    BleConnectionError,
    CharacteristicWriteError,
    ConnectCancelledError,
    ConnectFailedError,
    GoProLinkError,
    ProfileNotFoundError,
    RadioError,
    RadioHandleDestroyedError,
    RadioNotReadyError,
    ScanError,
    ServiceDiscoveryError,
    StreamStartError,
    TelemetryStepError,
    WifiAssociationError,
)
from .logging_config import get_logger, setup_logging
from .orchestrator import AccessoryHandle, ConnectionOrchestrator
from .rich_utils import Console, Table, console, create_table, render_status
from .status import ConnectionState, LinkPhase, StatusSnapshot, StatusStore, TelemetrySample
from .telemetry import TelemetryPoller

__all__ = [
    "AccessoryHandle",
    "AccessoryHttpError",
    "AccessoryProfile",
    "AccessoryProfileStore",
    "AdapterState",
    "BleConnectionError",
    "BleakRadioSession",
    "CharacteristicWriteError",
    "ConnectCancelledError",
    "ConnectFailedError",
    "ConnectionOrchestrator",
    "ConnectionState",
    "Console",
    "GoProLinkError",
    "LinkPhase",
    "ProfileNotFoundError",
    "RadioError",
    "RadioHandle",
    "RadioHandleDestroyedError",
    "RadioNotReadyError",
    "RadioSession",
    "ScanError",
    "ServiceDiscoveryError",
    "StatusSnapshot",
    "StatusStore",
    "StreamStartError",
    "Table",
    "TelemetryPoller",
    "TelemetrySample",
    "TelemetryStepError",
    "TimeoutConfig",
    "WifiAssociationError",
    "console",
    "create_table",
    "get_logger",
    "render_status",
    "setup_logging",
]

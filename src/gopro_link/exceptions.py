"""Custom exception classes."""

__all__ = [
    "AccessoryHttpError",
    "BleConnectionError",
    "CharacteristicWriteError",
    "ConnectCancelledError",
    "ConnectFailedError",
    "GoProLinkError",
    "ProfileNotFoundError",
    "RadioError",
    "RadioHandleDestroyedError",
    "RadioNotReadyError",
    "ScanError",
    "ServiceDiscoveryError",
    "StreamStartError",
    "TelemetryStepError",
    "WifiAssociationError",
]


class GoProLinkError(Exception):
    """Base class for all gopro-link exceptions."""


class RadioError(GoProLinkError):
    """BLE adapter session error."""


class RadioNotReadyError(RadioError):
    """Adapter is not powered on. The handle has been recreated, retrying is allowed."""

    def __init__(self, state: str) -> None:
        super().__init__(f"Bluetooth is not ready: {state}")
        self.state = state


class RadioHandleDestroyedError(RadioError):
    """Operation issued against a destroyed adapter session."""


class BleConnectionError(GoProLinkError):
    """BLE connection related error."""


class ScanError(BleConnectionError):
    """Device discovery failed or found nothing."""


class ConnectFailedError(BleConnectionError):
    """Connecting to the discovered accessory failed."""


class ServiceDiscoveryError(BleConnectionError):
    """Services or the control characteristic could not be resolved."""


class CharacteristicWriteError(BleConnectionError):
    """Writing the AP-mode command failed."""


class WifiAssociationError(GoProLinkError):
    """Host could not join the accessory access point."""


class AccessoryHttpError(GoProLinkError):
    """Accessory-local HTTP request failed."""


class StreamStartError(AccessoryHttpError):
    """Start-stream command failed."""


class TelemetryStepError(AccessoryHttpError):
    """One step of a telemetry poll cycle failed (never propagated out of the poller)."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"Telemetry step '{step}' failed: {message}")
        self.step = step


class ProfileNotFoundError(GoProLinkError):
    """No accessory profile stored for the requested serial."""


class ConnectCancelledError(GoProLinkError):
    """The in-flight connect attempt was cancelled by reconnect, reset or teardown."""

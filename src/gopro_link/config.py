"""Accessory profile and timeout configuration."""

from __future__ import annotations

__all__ = ["AccessoryProfile", "AccessoryProfileStore", "TimeoutConfig"]

import contextlib
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from tinydb import Query, TinyDB

from .exceptions import ProfileNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_ACCESSORY_IP = "10.5.5.9"
DEFAULT_STREAM_PORT = 8556
DEFAULT_CONTROL_PORT = 8080


@dataclass
class AccessoryProfile:
    """Connection parameters of the paired accessory.

    Attributes:
        serial: Serial prefix the accessory advertises its access point with
        wifi_password: Pre-shared key of the accessory access point
        ssid_prefix: SSID prefix to join, defaults to ``GP<serial>``
        accessory_ip: Accessory address on its own access point
        stream_port: Local UDP port the preview stream is sent to
        control_port: Port of the accessory's stream-control HTTP service
    """

    serial: str
    wifi_password: str
    ssid_prefix: str = ""
    accessory_ip: str = DEFAULT_ACCESSORY_IP
    stream_port: int = DEFAULT_STREAM_PORT
    control_port: int = DEFAULT_CONTROL_PORT

    def __post_init__(self) -> None:
        if not self.ssid_prefix:
            self.ssid_prefix = f"GP{self.serial}"

    @property
    def base_url(self) -> str:
        """Base URL of the accessory-local control surface."""
        return f"http://{self.accessory_ip}"

    def to_dict(self) -> dict[str, str | int]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AccessoryProfile:
        """Create from dictionary."""
        return cls(
            serial=data["serial"],
            wifi_password=data["wifi_password"],
            ssid_prefix=data.get("ssid_prefix", ""),
            accessory_ip=data.get("accessory_ip", DEFAULT_ACCESSORY_IP),
            stream_port=int(data.get("stream_port", DEFAULT_STREAM_PORT)),
            control_port=int(data.get("control_port", DEFAULT_CONTROL_PORT)),
        )


@dataclass
class TimeoutConfig:
    """Timeout and cadence configuration. All values in seconds unless noted."""

    # BLE
    ble_discovery_timeout: float = 15.0  # Time allowed for the first matching advertisement
    ble_connect_timeout: float = 20.0
    ble_write_timeout: float = 10.0
    ble_disconnect_timeout: float = 5.0

    # WiFi
    wifi_associate_timeout: float = 30.0
    wifi_disconnect_timeout: float = 10.0

    # HTTP
    http_request_timeout: float = 10.0

    # Telemetry
    telemetry_poll_interval: float = 5.0
    telemetry_settle_delay: float = 1.0  # Photo processing time before the media list is read

    # Recovery
    reset_settle_delay: float = 1.0  # Pause after a reset before the fresh connect
    max_radio_retries: int = 1  # Recreate + retry rounds on a destroyed adapter session
    connection_retry_interval: float = 1.0  # Base of the exponential backoff


class AccessoryProfileStore:
    """Accessory profile persistence.

    Uses Repository pattern to encapsulate TinyDB operations. Only accessory
    configuration is stored; connection history is never written.

    Supports context manager protocol for automatic resource cleanup:
        with AccessoryProfileStore() as store:
            store.save(profile)
    """

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Database file path, defaults to accessory_profiles.json in current directory
        """
        if db_path is None:
            db_path = Path("accessory_profiles.json")

        self._db_path = db_path
        self._db: TinyDB | None = TinyDB(str(db_path))
        self._table = self._db.table("profiles")
        logger.debug(f"Accessory profile database opened: {db_path}")

    def __enter__(self) -> AccessoryProfileStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        with contextlib.suppress(Exception):
            if getattr(self, "_db", None) is not None:
                self._db.close()

    def save(self, profile: AccessoryProfile) -> None:
        """Save or update a profile, keyed by serial."""
        query = Query()
        data = profile.to_dict()

        if self._table.search(query.serial == profile.serial):
            self._table.update(data, query.serial == profile.serial)
            logger.info(f"Updated accessory profile {profile.serial}")
        else:
            self._table.insert(data)
            logger.info(f"Saved accessory profile {profile.serial}")

    def load(self, serial: str) -> AccessoryProfile:
        """Load the profile for a serial.

        Raises:
            ProfileNotFoundError: No profile stored for this serial
        """
        query = Query()
        result = self._table.search(query.serial == serial)
        if not result:
            raise ProfileNotFoundError(f"No accessory profile stored for {serial}")
        return AccessoryProfile.from_dict(result[0])

    def delete(self, serial: str) -> bool:
        """Delete a profile.

        Returns:
            Whether a profile was removed
        """
        query = Query()
        removed = self._table.remove(query.serial == serial)
        if removed:
            logger.info(f"Deleted accessory profile {serial}")
            return True
        logger.debug(f"Accessory profile {serial} does not exist")
        return False

    def list_all(self) -> dict[str, AccessoryProfile]:
        """Mapping from serial to profile."""
        return {record["serial"]: AccessoryProfile.from_dict(record) for record in self._table.all()}

    def close(self) -> None:
        """Close database connection."""
        if self._db is not None:
            self._db.close()
            self._db = None
            logger.debug("Accessory profile database closed")

"""WiFi phase of the link: join the accessory AP, start the UDP preview stream."""

from __future__ import annotations

__all__ = ["WifiConnector", "stream_endpoint_for"]

import logging
from typing import TYPE_CHECKING

from ..config import AccessoryProfile, TimeoutConfig
from ..exceptions import AccessoryHttpError, StreamStartError
from .host_wifi import HostWifiBackend

if TYPE_CHECKING:
    from ..commands.http_commands import HttpCommands

logger = logging.getLogger(__name__)


def stream_endpoint_for(port: int) -> str:
    """Transport URI the media player opens for a stream on ``port``."""
    return f"udp://@:{port}"


class WifiConnector:
    """WiFi connector.

    Args:
        profile: Accessory SSID prefix, pre-shared key and stream port
        timeout_config: Timeout configuration
        host_wifi: Host WiFi backend
        http_commands: Accessory HTTP commands (stream start)
    """

    def __init__(
        self,
        profile: AccessoryProfile,
        timeout_config: TimeoutConfig,
        host_wifi: HostWifiBackend,
        http_commands: HttpCommands,
    ) -> None:
        self.profile = profile
        self._timeout = timeout_config
        self._host_wifi = host_wifi
        self._commands = http_commands
        self.ssid: str | None = None

    async def associate(self) -> str:
        """Join the accessory access point.

        Raises:
            WifiAssociationError: Network not found or join failed
        """
        self.ssid = await self._host_wifi.associate(
            self.profile.ssid_prefix,
            self.profile.wifi_password,
            timeout=self._timeout.wifi_associate_timeout,
        )
        return self.ssid

    async def start_stream(self) -> str:
        """Start the preview stream and return its endpoint.

        Raises:
            StreamStartError: Start-stream command failed
        """
        try:
            port = await self._commands.start_stream(self.profile.stream_port)
        except StreamStartError:
            raise
        except AccessoryHttpError as e:
            raise StreamStartError(str(e)) from e
        return stream_endpoint_for(port)

    async def connect(self) -> str:
        """Associate, then start the stream.

        Returns:
            Stream endpoint (``udp://@:<port>``)
        """
        await self.associate()
        return await self.start_stream()

    async def disconnect(self) -> None:
        """Disassociate the host from the accessory access point.

        Raises:
            WifiAssociationError: The host interface refused to disconnect
        """
        self.ssid = None
        await self._host_wifi.disassociate(timeout=self._timeout.wifi_disconnect_timeout)

"""Accessory connection management module.

Contains:
- BLE adapter session and handle
- BLE connector (discover, connect, AP-mode command)
- Host WiFi association
- Accessory HTTP client
- WiFi connector (association + stream start)
"""

from .ble_connector import *  # noqa: F403
from .host_wifi import *  # noqa: F403
from .http_client import *  # noqa: F403
from .radio import *  # noqa: F403
from .wifi_connector import *  # noqa: F403

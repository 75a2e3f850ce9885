"""Host-side WiFi association.

Joins the host to the accessory access point. The default backend drives
NetworkManager through ``nmcli``.
"""

from __future__ import annotations

__all__ = ["HostWifiBackend", "NmcliWifiBackend"]

import asyncio
import contextlib
import logging
import time
from abc import ABC, abstractmethod

from ..exceptions import WifiAssociationError

logger = logging.getLogger(__name__)


class HostWifiBackend(ABC):
    """Host WiFi interface control."""

    @abstractmethod
    async def associate(self, ssid_prefix: str, password: str, timeout: float) -> str:
        """Join the first visible network whose SSID starts with ``ssid_prefix``.

        Returns:
            The SSID joined

        Raises:
            WifiAssociationError: Network not found or join failed
        """

    @abstractmethod
    async def disassociate(self, timeout: float) -> None:
        """Leave the network joined by ``associate()``. No-op if none.

        Raises:
            WifiAssociationError: The interface refused to disconnect
        """


class NmcliWifiBackend(HostWifiBackend):
    """NetworkManager backend (Linux)."""

    def __init__(self, interface: str | None = None, rescan_interval: float = 2.0) -> None:
        self._interface = interface
        self._rescan_interval = rescan_interval
        self._active_ssid: str | None = None

    async def _run(self, *args: str, timeout: float) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                "nmcli",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise WifiAssociationError("nmcli command unavailable") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise WifiAssociationError(f"nmcli {' '.join(args[:3])} timed out") from e

        if proc.returncode != 0:
            error_output = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
            raise WifiAssociationError(error_output or f"nmcli exited with {proc.returncode}")
        return stdout.decode(errors="replace")

    def _ifname_args(self) -> list[str]:
        return ["ifname", self._interface] if self._interface else []

    @staticmethod
    def _unescape(value: str) -> str:
        # nmcli terse output escapes backslashes and colons
        return value.replace("\\\\", "\\").replace("\\:", ":")

    async def _visible_ssids(self, timeout: float) -> list[str]:
        try:
            await self._run("device", "wifi", "rescan", *self._ifname_args(), timeout=timeout)
        except WifiAssociationError as e:
            # Drivers refuse a rescan while one is running; the cached list is still usable
            logger.debug(f"WiFi rescan refused: {e}")

        output = await self._run("-t", "-f", "SSID", "device", "wifi", "list", *self._ifname_args(), timeout=timeout)
        return [self._unescape(line.strip()) for line in output.splitlines() if line.strip()]

    async def associate(self, ssid_prefix: str, password: str, timeout: float) -> str:
        logger.info(f"Looking for WiFi SSID starting with '{ssid_prefix}'...")
        deadline = time.monotonic() + timeout
        found_ssid: str | None = None

        while time.monotonic() < deadline:
            remaining = max(deadline - time.monotonic(), 1.0)
            for ssid in await self._visible_ssids(timeout=remaining):
                if ssid.startswith(ssid_prefix):
                    found_ssid = ssid
                    break
            if found_ssid:
                break
            logger.debug("Accessory SSID not visible yet...")
            await asyncio.sleep(self._rescan_interval)

        if not found_ssid:
            raise WifiAssociationError(f"No network starting with '{ssid_prefix}' found within {timeout:.0f}s")

        logger.info(f"Joining {found_ssid}...")
        remaining = max(deadline - time.monotonic(), 5.0)
        await self._run(
            "device", "wifi", "connect", found_ssid, "password", password, *self._ifname_args(), timeout=remaining
        )
        self._active_ssid = found_ssid
        logger.info(f"✅ Host joined {found_ssid}")
        return found_ssid

    async def disassociate(self, timeout: float) -> None:
        ssid, self._active_ssid = self._active_ssid, None
        if ssid is None:
            logger.debug("No accessory network joined, nothing to disconnect")
            return
        await self._run("connection", "down", "id", ssid, timeout=timeout)
        logger.info(f"Host left {ssid}")

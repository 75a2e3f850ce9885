"""Stream example: Bring up the BLE + WiFi link and watch its status.

This example demonstrates:
- Loading the accessory profile (pre-shared key) from the profile store
- Connecting: BLE wakes the camera access point, the host joins it, the preview stream starts
- Rendering live status and GPS telemetry with rich
- Recovering with reset() when the link drops

Prerequisites:
    Linux host with NetworkManager (nmcli) and a Bluetooth adapter.
    Store the camera WiFi password once:
        python stream_example.py 1234 --password <wifi-password>

Usage:
    python stream_example.py 1234
"""

import argparse
import asyncio
import logging

from rich.live import Live

from gopro_link import (
    AccessoryProfile,
    AccessoryProfileStore,
    ConnectionOrchestrator,
    GoProLinkError,
    console,
    render_status,
    setup_logging,
)

# Enable logging with rich formatting
setup_logging(level=logging.INFO)

logger = logging.getLogger(__name__)


async def async_main(serial: str, duration: float):
    """Connect, stream for ``duration`` seconds, reset once if the stream is lost."""
    with AccessoryProfileStore() as store:
        profile = store.load(serial)

    async with ConnectionOrchestrator(profile) as link:
        logger.info(f"Open {link.status.stream_endpoint} in your media player")

        with Live(render_status(link.status.snapshot()), console=console, refresh_per_second=4) as live:
            unsubscribe = link.status.subscribe(lambda snapshot: live.update(render_status(snapshot)))
            try:
                loop = asyncio.get_running_loop()
                deadline = loop.time() + duration
                while loop.time() < deadline:
                    await asyncio.sleep(1)
                    if not link.status.snapshot().is_streaming:
                        logger.warning("Stream lost, resetting link...")
                        if not await link.reset():
                            logger.error("Reset failed, giving up")
                            break
            finally:
                unsubscribe()

        logger.info(f"Link stats: {link.get_link_stats()}")


def main():
    """Connect to a GoPro and stream its preview."""
    parser = argparse.ArgumentParser(description="Connect to a GoPro over BLE + WiFi and stream its preview")
    parser.add_argument(
        "serial",
        help="Camera serial prefix (the camera access point is named GP<serial>...)",
    )
    parser.add_argument("--password", help="Store this camera WiFi password and exit")
    parser.add_argument("--duration", type=float, default=60.0, help="Seconds to stream (default: 60)")
    args = parser.parse_args()

    if args.password:
        with AccessoryProfileStore() as store:
            store.save(AccessoryProfile(serial=args.serial, wifi_password=args.password))
        logger.info(f"Profile for {args.serial} saved")
        return

    try:
        asyncio.run(async_main(args.serial, args.duration))
    except GoProLinkError as e:
        logger.error(f"❌ {e}")


if __name__ == "__main__":
    main()

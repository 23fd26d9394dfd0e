"""Systemd notify support for the WebGL host.

Sends READY=1 (with a STATUS= line) once the memory cache has been
preloaded, then WATCHDOG=1 at regular intervals.  Silently no-ops when
NOTIFY_SOCKET is unset (macOS / dev mode / containers).

Usage:
    from .watchdog import sd_notify, watchdog_loop
    sd_notify("READY=1\\nSTATUS=4 files cached")
    asyncio.create_task(watchdog_loop())
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket.

    Returns True if a socket was configured and the message was sent.
    """
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    except OSError as e:
        logger.warning("sd_notify failed: %s", e)
        return False
    finally:
        sock.close()
    return True


def notify_ready(status: str):
    sd_notify(f"READY=1\nSTATUS={status}")


async def watchdog_loop(interval: int = 20):
    """Send WATCHDOG=1 every *interval* seconds.  Call as asyncio.create_task()."""
    if not os.environ.get("NOTIFY_SOCKET"):
        return
    logger.info("Watchdog started (interval=%ds)", interval)
    while True:
        sd_notify("WATCHDOG=1")
        await asyncio.sleep(interval)

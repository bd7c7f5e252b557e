"""Utility helpers for signals and shutdown."""

from __future__ import annotations

import asyncio
import signal
import sys

from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.structs import GlobalObject

logger = get_logger(__name__)
g = GlobalObject()

MIN_PY_VERSION = (3, 12)


async def shutdown() -> None:
    """Stop every controller and the API server, then cancel what is left."""
    logger.info("Roomba Bridge: Starting shutdown...")
    for name, controller in g.controllers.items():
        logger.debug("Stopping controller for %s...", name)
        try:
            await controller.stop()
        except Exception:
            logger.exception("Error stopping controller for %s", name)
    if g.api_server:
        logger.debug("Stopping api_server...")
        await g.api_server.stop()
    for task in g.tasks:
        if not task.done():
            logger.debug("Roomba Bridge: Cancelling task: %s", task.get_name())
            _ = task.cancel()
    logger.info("Roomba Bridge: Shutdown completed")


def signal_handler(signum: int) -> None:
    """Handle incoming POSIX signals by scheduling async cleanup."""
    logger.info("Roomba Bridge: Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
    loop = g.loop or asyncio.get_event_loop()
    _ = loop.create_task(shutdown())


def check_python_version():
    """Ensure the running interpreter meets the minimum supported version."""
    if sys.version_info < MIN_PY_VERSION:
        version_message = (
            f"Roomba Bridge requires Python {MIN_PY_VERSION[0]}.{MIN_PY_VERSION[1]} or newer; "
            f"detected {sys.version_info.major}.{sys.version_info.minor}"
        )
        raise RuntimeError(version_message)

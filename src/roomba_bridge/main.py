"""Main entrypoint and lifecycle management for the Roomba bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Mapping, Sequence
from functools import partial
from pathlib import Path
from typing import cast

import dotenv
import uvloop
import yaml
from pydantic import ValidationError

from roomba_bridge.api import ApiServer
from roomba_bridge.const import ROOMBA_VERSION
from roomba_bridge.controller import RobotController
from roomba_bridge.correlation import correlation_context, ensure_correlation_id
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.metrics import start_metrics_server
from roomba_bridge.structs import DeviceConfig, GlobalObject
from roomba_bridge.utils import check_python_version, shutdown, signal_handler

logger = get_logger(__name__)

# Configure third-party loggers (uvicorn, aiomqtt) to reduce noise
uv_handler = logging.StreamHandler(sys.stdout)
uv_handler.setLevel(logging.INFO)
uv_handler.setFormatter(
    logging.Formatter(
        "%(asctime)s.%(msecs)d %(levelname)s (%(name)s) > %(message)s",
        "%m/%d/%y %H:%M:%S",
    ),
)
for _ul in (logging.getLogger("uvicorn"), logging.getLogger("uvicorn.error"), logging.getLogger("uvicorn.access")):
    _ul.setLevel(logging.INFO)
    _ul.propagate = False
    _ul.addHandler(uv_handler)

mqtt_logger = logging.getLogger("aiomqtt")
mqtt_logger.setLevel(logging.WARNING)
mqtt_logger.propagate = False

API_SRV_START_TASK_NAME = "api_server_start"
IDLE_TASK_NAME = "roomba_bridge_idle"

g = GlobalObject()


def _parse_robot_entry(index: int, entry: object) -> DeviceConfig | None:
    """Validate one ``robots:`` entry. Returns None (and logs) when it is unusable."""
    if not isinstance(entry, Mapping):
        logger.warning("Skipping robot #%d: expected a mapping, got %s", index, type(entry).__name__)
        return None
    entry_map = cast("Mapping[str, object]", entry)
    enabled = entry_map.get("enabled", True)
    if enabled is False or (isinstance(enabled, str) and enabled.lower() == "false"):
        logger.debug("Skipping disabled robot #%d (%s)", index, entry_map.get("name"))
        return None
    try:
        return DeviceConfig.model_validate({k: v for k, v in entry_map.items() if k != "enabled"})
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        logger.warning(
            "Skipping invalid robot #%d (%s)",
            index,
            entry_map.get("name", "unnamed"),
            extra={"invalid_fields": fields},
        )
        return None


async def parse_config(config_file: Path) -> list[DeviceConfig]:
    """Parse a YAML configuration file and return the robots it declares.

    Args:
        config_file: Path to the YAML configuration file

    Returns:
        One DeviceConfig per valid, enabled ``robots:`` entry, names unique

    Raises:
        Exception: If the config file cannot be read or is not valid YAML

    """
    logger.debug("Parsing config file: %s", config_file)
    try:
        with config_file.open() as f:
            raw_config = cast("object", yaml.safe_load(f))
    except Exception:
        logger.exception("Failed to parse config file: %s", config_file)
        raise

    if not isinstance(raw_config, Mapping):
        logger.warning("Invalid config structure: expected mapping at root")
        return []
    robots_obj = cast("Mapping[str, object]", raw_config).get("robots")
    if not isinstance(robots_obj, list):
        logger.warning("No 'robots' list found in config file")
        return []

    robots: list[DeviceConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(cast("list[object]", robots_obj)):
        config = _parse_robot_entry(index, entry)
        if config is None:
            continue
        if config.name in seen:
            logger.warning("Skipping robot #%d: duplicate name '%s'", index, config.name)
            continue
        seen.add(config.name)
        robots.append(config)

    logger.info("Parsed config: %d robot(s)", len(robots))
    return robots


class RoombaBridge:
    """Singleton wiring the robot controllers, API server and metrics together."""

    lp: str = "RoombaBridge:"
    config_file: Path | None = None
    _instance: RoombaBridge | None = None
    _initialized: bool = False

    def __new__(cls, *_args: object, **_kwargs: object) -> RoombaBridge:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, *_args: object, **_kwargs: object) -> None:
        """Create the uvloop event loop and install signal handlers."""
        if getattr(self, "_initialized", False):
            return
        self._initialized = True

        loop = uvloop.new_event_loop()
        g.loop = loop
        asyncio.set_event_loop(loop)

        logger.info(" Initializing Roomba Bridge", extra={"version": ROOMBA_VERSION})

        loop.add_signal_handler(signal.SIGINT, partial(signal_handler, signal.SIGINT))
        loop.add_signal_handler(signal.SIGTERM, partial(signal_handler, signal.SIGTERM))
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    async def start(self):
        """Start a controller per configured robot, plus the API and metrics servers when enabled."""
        _ = ensure_correlation_id()
        env = g.env
        self.config_file = cfg_file = Path(env.config_file_path).expanduser().resolve()

        if cfg_file.exists():
            logger.info(" Loading configuration", extra={"config_path": str(cfg_file)})
            for config in await parse_config(cfg_file):
                controller = RobotController(config)
                g.controllers[config.name] = controller
                controller.start()
            logger.info(" Configuration loaded", extra={"robot_count": len(g.controllers)})
        else:
            logger.error(
                " Configuration file not found",
                extra={"config_path": str(cfg_file), "action_required": "create a 'robots:' list"},
            )

        if env.enable_metrics:
            logger.info(" Starting metrics server", extra={"port": env.metrics_port})
            start_metrics_server(env.metrics_port)

        if env.enable_api:
            api_server = ApiServer(env.srv_host, env.api_port)
            g.api_server = api_server
            a_start: asyncio.Task[None] = asyncio.create_task(api_server.start(), name=API_SRV_START_TASK_NAME)
            api_server.start_task = a_start
            g.tasks.append(a_start)

        # Controllers poll in their own tasks; keep the loop alive until shutdown cancels this
        idle = asyncio.create_task(asyncio.Event().wait(), name=IDLE_TASK_NAME)
        g.tasks.append(idle)

        try:
            _ = await asyncio.gather(*g.tasks, return_exceptions=True)
        except Exception as e:
            logger.exception(" Service startup failed", extra={"error": str(e)})
            await shutdown()
            raise


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the bridge process and apply them to the global settings."""
    parser = argparse.ArgumentParser(description="Roomba Bridge")
    _ = parser.add_argument("--config", help="Path to the robots YAML file", default=None, type=Path)
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument(
        "--api",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve the HTTP accessory API (default: ROOMBA_ENABLE_API)",
    )
    args = parser.parse_args(argv)
    g.cli_args = args

    if args.env:
        _load_env_file(cast("Path", args.env))
    if args.config:
        g.env.config_file_path = str(args.config)
    if args.api is not None:
        g.env.enable_api = args.api
    if args.debug or g.env.debug:
        _enable_debug()
    return args


def _load_env_file(env_file: Path) -> None:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return
    if dotenv.load_dotenv(env_path, override=True):
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
        g.reload_env()
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})


def _enable_debug() -> None:
    logger.set_level(logging.DEBUG)
    logger.info("Debug mode enabled")


def main():
    """Run the Roomba Bridge entry point."""
    with correlation_context():
        logger.info("Starting Roomba Bridge", extra={"version": ROOMBA_VERSION})
        _ = parse_cli()
        check_python_version()
        bridge = RoombaBridge()

        try:
            cast("asyncio.AbstractEventLoop", g.loop).run_until_complete(bridge.start())
        except asyncio.CancelledError:
            logger.info("Roomba Bridge cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
        else:
            logger.info(" Roomba Bridge stopped gracefully")
        finally:
            if g.loop is not None and not g.loop.is_closed():
                g.loop.close()
            logger.info("Roomba Bridge shutdown complete")


if __name__ == "__main__":
    main()

"""FastAPI accessory facade: read cached robot status and invoke commands."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from roomba_bridge.accessory import RobotStatusView
from roomba_bridge.const import ROOMBA_API_PORT, ROOMBA_SRV_HOST, ROOMBA_VERSION
from roomba_bridge.controller import RobotController
from roomba_bridge.exceptions import RoombaBridgeError
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.structs import GlobalObject

g = GlobalObject()
logger = get_logger(__name__)

# Failure kind -> HTTP status
ERROR_STATUS_CODES: dict[str, int] = {
    "busy": 409,
    "connection": 503,
    "command": 502,
    "state_query": 502,
    "dock_timeout": 504,
}

app = FastAPI(title="Roomba Bridge", version=ROOMBA_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _masked_http_exception(operation: str, exc: Exception, user_message: str) -> HTTPException:
    """Create a sanitized HTTPException while logging full details server-side."""
    error_id = uuid.uuid4().hex[:8]
    logger.exception("%s error_id=%s unexpected error: %s", operation, error_id, exc)
    return HTTPException(
        status_code=500,
        detail={
            "error_id": error_id,
            "message": user_message,
        },
    )


def _robot_error(err: RoombaBridgeError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(err.kind, 500),
        detail={"kind": err.kind, "message": str(err)},
    )


def _get_controller(name: str) -> RobotController:
    controller = g.controllers.get(name)
    if controller is None:
        raise HTTPException(status_code=404, detail=f"Unknown robot: {name}")
    return controller


async def _run_command(
    name: str,
    operation: str,
    command: Callable[[RobotController], Awaitable[None]],
) -> dict[str, Any]:
    controller = _get_controller(name)
    try:
        await command(controller)
    except RoombaBridgeError as e:
        raise _robot_error(e) from e
    except Exception as e:
        raise _masked_http_exception(
            f"{operation} on {name} failed",
            e,
            f"Failed to {operation.replace('_', ' ')}. Check server logs with the provided error ID.",
        ) from e
    return {
        "success": True,
        "message": f"{operation} accepted by {name}",
        "status": RobotStatusView.from_controller(controller).model_dump(mode="json"),
    }


@app.get("/api/healthcheck")
async def health_check():
    """Health check endpoint to verify if the server is running."""
    return {"status": "ok", "message": "Roomba bridge is running", "robots": len(g.controllers)}


@app.get("/api/robots")
async def list_robots() -> list[dict[str, Any]]:
    """Cached status of every configured robot. Never contacts the robots."""
    return [RobotStatusView.from_controller(c).model_dump(mode="json") for c in g.controllers.values()]


@app.get("/api/robots/{name}")
async def get_robot(name: str) -> dict[str, Any]:
    """Cached status of one robot; also asks its poller for a prompt refresh."""
    controller = _get_controller(name)
    controller.refresh_status_for_user()
    return RobotStatusView.from_controller(controller).model_dump(mode="json")


@app.post("/api/robots/{name}/start")
async def start_robot(name: str) -> dict[str, Any]:
    return await _run_command(name, "turn_on", RobotController.turn_on)


@app.post("/api/robots/{name}/stop")
async def stop_robot(name: str) -> dict[str, Any]:
    return await _run_command(name, "turn_off", RobotController.turn_off)


@app.post("/api/robots/{name}/identify")
async def identify_robot(name: str) -> dict[str, Any]:
    return await _run_command(name, "identify", RobotController.identify)


class ApiServer:
    """Singleton class managing the FastAPI server lifecycle."""

    lp = "ApiServer:"
    running: bool = False
    start_task: asyncio.Task[None] | None = None
    _instance: ApiServer | None = None

    def __new__(cls, *_args, **_kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, host: str = ROOMBA_SRV_HOST, port: int = ROOMBA_API_PORT):
        self.app = app
        self.host = host
        self.port = port
        self.uvi_server = uvicorn.Server(
            config=uvicorn.Config(
                app,
                host=host,
                port=port,
                log_config={
                    "version": 1,
                    "disable_existing_loggers": False,
                },
                log_level="info",
            )
        )

    async def start(self):
        """Serve until shut down."""
        lp = f"{self.lp}start:"
        logger.info("%s Starting API server on %s:%s", lp, self.host, self.port)
        self.running = True
        try:
            await self.uvi_server.serve()
        except asyncio.CancelledError:
            logger.info("%s API server stopped", lp)
            raise
        except Exception:
            logger.exception("%s Error running API server", lp)
        finally:
            self.running = False

    async def stop(self):
        lp = f"{self.lp}stop:"
        logger.info("%s Stopping API server...", lp)
        # serve() notices should_exit on its next tick and shuts itself down
        self.uvi_server.should_exit = True
        task = self.start_task
        if task is None or task.done():
            self.running = False
            return
        try:
            async with asyncio.timeout(5):
                await asyncio.shield(task)
        except TimeoutError:
            logger.warning("%s API server did not stop in time, cancelling", lp)
            _ = task.cancel()
        self.running = False

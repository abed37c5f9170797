"""Loopback HTTP surface of the daemon (FastAPI + uvicorn).

Routes:
    ``GET /health``     snapshot, bypasses the queue
    ``POST /command``   ``{command, payload}`` -> ``{success, data}`` / ``400 {success: false, error}``
    ``POST /shutdown``  same shutdown transition as SIGTERM
"""

from __future__ import annotations

import json
import logging
import os
import socket
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from web_browse import __version__
from web_browse.browser.process import ProcessRegistry
from web_browse.daemon.service import DaemonService
from web_browse.logging_config import LOG_LEVEL_ENV, configure_logging
from web_browse.models import CommandRequest, CommandResponse
from web_browse.settings.config import Settings

logger = logging.getLogger(__name__)


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(CommandResponse(success=False, error=message).to_wire(), status_code=status_code)


def create_app(service: DaemonService, *, manage_lifecycle: bool = True) -> FastAPI:
    """Build the daemon's FastAPI application around *service*.

    Args:
        service: The daemon service the routes delegate to.
        manage_lifecycle: Start and shut down *service* from the app lifespan.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await service.shutdown()

    application = FastAPI(title="web-browse daemon", version=__version__, lifespan=lifespan)
    application.state.service = service
    application.state.server = None

    @application.get("/health")
    async def health() -> dict:
        return service.health().to_wire()

    @application.post("/command")
    async def command(request: Request) -> JSONResponse:
        raw = await request.body()
        try:
            body = json.loads(raw or b"{}")
        except ValueError as exc:
            return _error(f"invalid JSON body: {exc}")

        try:
            parsed = CommandRequest.model_validate(body)
        except ValidationError:
            return _error("request body must be an object with a string 'command' and an object 'payload'")

        try:
            data = await service.execute(parsed)
        except Exception as exc:
            logger.warning("Command %s failed: %s", parsed.command, exc)
            return _error(str(exc) or exc.__class__.__name__)

        return JSONResponse(CommandResponse(success=True, data=data).to_wire())

    @application.post("/shutdown")
    async def shutdown() -> dict:
        server = application.state.server
        if server is not None:
            # lifespan exit runs service.shutdown()
            server.should_exit = True
        else:
            await service.shutdown()
        return {"status": "shutting down"}

    return application


class DaemonServer(uvicorn.Server):
    """uvicorn server that records the PID file only after its sockets are bound.

    uvicorn runs the lifespan startup before binding, so a second daemon on a
    taken port would otherwise claim the PID file of the one already serving.
    """

    def __init__(self, config: uvicorn.Config, service: DaemonService) -> None:
        super().__init__(config)
        self.service = service

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        await super().startup(sockets=sockets)
        if self.started and not self.should_exit:
            self.service.mark_bound()


def run_daemon(settings: Settings) -> bool:
    """Run the daemon in the foreground until a signal or ``POST /shutdown``.

    uvicorn's own SIGINT/SIGTERM handlers only request an exit; the lifespan
    exit then performs the full shutdown before the process ends.

    Returns:
        True if the daemon started and later stopped cleanly, False if startup failed.
    """
    level = os.environ.get(LOG_LEVEL_ENV) or "INFO"
    configure_logging(level, log_file=settings.daemon.log_file or None)
    registry = ProcessRegistry()
    service = DaemonService(settings, registry)
    app = create_app(service)

    config = uvicorn.Config(
        app,
        host=settings.daemon.host,
        port=settings.daemon.port,
        lifespan="on",
        log_level=level.lower(),
        access_log=False,
        log_config=None,
    )
    server = DaemonServer(config, service)
    app.state.server = server
    try:
        server.run()
    except SystemExit as exc:
        # uvicorn exits from startup when the port cannot be bound
        logger.error("Daemon failed to start on %s (exit code %s)", settings.daemon.url, exc.code)
        return False
    finally:
        registry.release_all()
    return server.started

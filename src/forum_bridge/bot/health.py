"""Liveness and readiness probes over HTTP (aiohttp).

``/health`` and ``/api/health`` answer 200 while the process is up.
``/ready`` and ``/api/ready`` answer 200 once the gateway client is
connected and 503 otherwise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from aiohttp import web

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthServer:
    """Small aiohttp app exposing probe endpoints.

    Args:
        port: TCP port to listen on.
        is_ready: Returns whether the gateway client is connected.
        host: Interface to bind.
    """

    def __init__(
        self,
        port: int,
        is_ready: Callable[[], bool],
        host: str = "0.0.0.0",
    ) -> None:
        self.port = port
        self.host = host
        self.is_ready = is_ready
        self._runner: web.AppRunner | None = None

    async def liveness(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "timestamp": _now()})

    async def readiness(self, request: web.Request) -> web.Response:
        ready = bool(self.is_ready())
        body = {
            "status": "ready" if ready else "not_ready",
            "discord_connected": ready,
            "timestamp": _now(),
        }
        return web.json_response(body, status=200 if ready else 503)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.liveness)
        app.router.add_get("/api/health", self.liveness)
        app.router.add_get("/ready", self.readiness)
        app.router.add_get("/api/ready", self.readiness)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info("Health probes listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health probes stopped")

"""Health check server for the poller process."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .. import __version__


logger = structlog.get_logger(__name__)


class HealthCheckServer:
    """HTTP server for health checks and poller status."""

    def __init__(self, port: int = 8081, poller=None) -> None:
        """Initialize health check server.

        Args:
            port: Port to listen on
            poller: Active visitors poller to report on
        """
        self.port = port
        self.poller = poller
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._startup_time = datetime.now(timezone.utc)

        self.app.router.add_get('/healthz', self._health_handler)
        self.app.router.add_get('/readyz', self._readiness_handler)
        self.app.router.add_get('/stats', self._stats_handler)
        self.app.router.add_get('/metrics', self._metrics_handler)

        logger.info("Initialized HealthCheckServer", port=port)

    async def start(self) -> None:
        """Start the health check server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, '0.0.0.0', self.port)
        await self.site.start()

        logger.info("Health check server started", port=self.port)

    async def stop(self) -> None:
        """Stop the health check server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Health check server stopped")

    def _uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle liveness requests."""
        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": self._uptime_seconds(),
            "version": __version__,
        })

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        """Handle readiness requests.

        Ready means a poller is attached and, when enabled, its timer runs.
        """
        checks = {}
        if self.poller is None:
            checks["poller"] = "not_available"
        elif self.poller.config.enabled and not self.poller.timer_armed:
            checks["poller"] = "timer_not_armed"
        else:
            checks["poller"] = "available"

        ready = checks["poller"] == "available"
        return web.json_response(
            {
                "status": "ready" if ready else "not_ready",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "checks": checks,
            },
            status=200 if ready else 503,
        )

    async def _stats_handler(self, request: web.Request) -> web.Response:
        """Handle statistics requests."""
        stats = {
            "process": {
                "uptime_seconds": self._uptime_seconds(),
                "startup_time": self._startup_time.isoformat(),
                "version": __version__,
            }
        }

        if self.poller is not None:
            try:
                stats["poller"] = self.poller.get_stats()
            except Exception as e:
                logger.warning("Failed to get poller stats", error=str(e))
                stats["poller"] = {"error": str(e)}

        return web.json_response(stats)

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        """Handle Prometheus metrics exposition."""
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

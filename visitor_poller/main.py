"""Main entry point for the visitor poller."""

import asyncio
import signal

from prometheus_client import start_http_server

from . import __version__
from .config import PollerSettings
from .poller import ActiveVisitorsPoller, ObservedState
from .stats import StatsQuery, StatsQueryClient
from .utils import HealthCheckServer, setup_logging

# Global settings instance
settings = PollerSettings()

# Setup structured logging
logger = setup_logging(settings.log_level, settings.log_format)


def log_state(state: ObservedState) -> None:
    """Log every observed state change."""
    logger.info(
        "Active visitors",
        active_visitors=state.active_visitors,
        is_loading=state.is_loading,
        error=str(state.error) if state.error is not None else None,
    )


async def run(settings: PollerSettings) -> None:
    """Poll until SIGINT or SIGTERM."""
    logger.info("Starting visitor poller", version=__version__)

    client = StatsQueryClient(timeout=settings.request_timeout)
    poller = ActiveVisitorsPoller(
        settings.poll_config(),
        StatsQuery(client),
        interval=settings.refresh_interval,
    )
    poller.subscribe(log_state)

    if settings.metrics_enabled:
        start_http_server(settings.metrics_port)
        logger.info("Started Prometheus metrics server", port=settings.metrics_port)

    health_server = HealthCheckServer(settings.health_port, poller)
    await health_server.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        async with poller:
            await stop_event.wait()
    finally:
        logger.info("Shutting down visitor poller")
        await health_server.stop()
        await client.close()


def main() -> None:
    """Main entry point for the poller."""
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()

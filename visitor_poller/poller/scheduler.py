"""Periodic refresh timer for pollers."""

import asyncio
from typing import Callable, Optional

import structlog
from prometheus_client import Gauge


logger = structlog.get_logger(__name__)

REFRESH_INTERVAL_SECONDS = 60.0

ARMED_TIMERS = Gauge(
    "visitor_poller_armed_timers", "Number of armed refresh timers"
)


class RefreshScheduler:
    """Recurring timer that bumps a refresh counter on every tick.

    The timer only runs between ``arm`` and ``disarm``. Arming always
    restarts the counter at zero.
    """

    def __init__(
        self,
        interval: float = REFRESH_INTERVAL_SECONDS,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            interval: Seconds between ticks
            on_tick: Called with the new refresh counter after each tick
        """
        self.interval = interval
        self.on_tick = on_tick

        self._refresh_counter = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def refresh_counter(self) -> int:
        return self._refresh_counter

    @property
    def is_armed(self) -> bool:
        return self._timer_task is not None

    def arm(self) -> None:
        """Reset the counter and start the recurring timer."""
        if self._timer_task is not None:
            logger.warning("Refresh timer already armed")
            return

        self._refresh_counter = 0
        self._stop_event = asyncio.Event()
        self._timer_task = asyncio.get_running_loop().create_task(
            self._timer_loop(self._stop_event)
        )
        ARMED_TIMERS.inc()

        logger.info("Armed refresh timer", interval=self.interval)

    async def disarm(self) -> None:
        """Cancel the timer; a no-op when it is not armed."""
        task = self._timer_task
        if task is None:
            return

        self._timer_task = None
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            ARMED_TIMERS.dec()

        logger.info("Disarmed refresh timer", refresh_counter=self._refresh_counter)

    async def _timer_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass

            self._refresh_counter += 1
            logger.debug("Refresh tick", refresh_counter=self._refresh_counter)

            if self.on_tick is None:
                continue
            try:
                self.on_tick(self._refresh_counter)
            except Exception as e:
                logger.error(
                    "Error in refresh tick handler",
                    refresh_counter=self._refresh_counter,
                    error=str(e),
                )

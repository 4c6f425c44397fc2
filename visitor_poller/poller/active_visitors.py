"""Active visitors poller: scheduling, querying and reconciliation."""

from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from prometheus_client import Gauge

from ..config import PollConfig, SiteIdentity
from ..stats.endpoints import ACTIVE_VISITORS_ENDPOINT, get_stat_endpoint_url, get_token
from ..stats.query import FetchOutcome, QueryRequest, StatsQuery
from .params import SITE_PARAM, build_query_params
from .reconciler import ObservedState, ResultReconciler
from .scheduler import REFRESH_INTERVAL_SECONDS, RefreshScheduler

logger = structlog.get_logger(__name__)

ACTIVE_VISITORS = Gauge(
    "visitor_poller_active_visitors",
    "Last observed number of active visitors",
    ["site_uuid"],
)

StateCallback = Callable[[ObservedState], None]


class ActiveVisitorsPoller:
    """Keeps a live active visitors count for one site.

    The poller re-evaluates whenever its config changes, the refresh timer
    ticks, or the query settles. Each evaluation reads the query's latest
    snapshot and reconciles it against the last retained count.
    """

    def __init__(
        self,
        config: PollConfig,
        query: StatsQuery,
        *,
        interval: float = REFRESH_INTERVAL_SECONDS,
        resolve_endpoint: Callable[[Optional[SiteIdentity], str], str] = get_stat_endpoint_url,
        resolve_token: Callable[[Optional[SiteIdentity]], str] = get_token,
    ) -> None:
        """Initialize the poller.

        Args:
            config: Initial poll configuration
            query: Query whose snapshots feed the poller
            interval: Seconds between refresh ticks
            resolve_endpoint: Maps a site identity and pipe name to a URL
            resolve_token: Maps a site identity to a read token
        """
        self.query = query
        self.resolve_endpoint = resolve_endpoint
        self.resolve_token = resolve_token

        self._config = config
        self._reconciler = ResultReconciler()
        self._scheduler = RefreshScheduler(interval, on_tick=self._on_tick)
        self._state = ObservedState()
        self._subscribers: List[StateCallback] = []
        self._started = False
        self._closed = False

        self._endpoint, self._token = self._resolve(config.site_identity)
        self.query.listen(self._on_query_settled)

        logger.info(
            "Initialized active visitors poller",
            site=self._site_uuid,
            enabled=config.enabled,
            interval=interval,
        )

    @property
    def config(self) -> PollConfig:
        return self._config

    @property
    def state(self) -> ObservedState:
        return self._state

    @property
    def refresh_counter(self) -> int:
        return self._scheduler.refresh_counter

    @property
    def retained_count(self) -> Optional[int]:
        return self._reconciler.retained_count

    @property
    def timer_armed(self) -> bool:
        return self._scheduler.is_armed

    @property
    def _site_uuid(self) -> str:
        site = self._config.site_identity
        return site.id if site is not None else ""

    def _resolve(self, site: Optional[SiteIdentity]) -> Tuple[str, str]:
        return (
            self.resolve_endpoint(site, ACTIVE_VISITORS_ENDPOINT),
            self.resolve_token(site),
        )

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Call ``callback`` with every new observed state.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self) -> ObservedState:
        """Run the first evaluation and arm the timer when enabled."""
        if self._closed:
            logger.warning("Ignoring start on closed poller", site=self._site_uuid)
            return self._state

        if self._started:
            logger.warning("Poller already started", site=self._site_uuid)
            return self._state

        self._started = True
        if self._config.enabled:
            self._reconciler.reset()
            self._scheduler.arm()

        logger.info("Started active visitors poller", site=self._site_uuid)
        return self.evaluate()

    async def update(self, config: PollConfig) -> ObservedState:
        """Apply a new config and re-evaluate.

        Only a change of ``enabled`` touches the timer; other fields just
        change the next query.
        """
        if self._closed:
            logger.warning("Ignoring update on closed poller", site=self._site_uuid)
            return self._state

        previous = self._config
        self._config = config

        if config.site_identity != previous.site_identity:
            previous_site = previous.site_identity.id if previous.site_identity else ""
            self._endpoint, self._token = self._resolve(config.site_identity)
            if previous_site != self._site_uuid:
                self._drop_gauge(previous_site)
            logger.info(
                "Site identity changed",
                previous_site=previous_site,
                site=self._site_uuid,
            )

        if self._started and config.enabled != previous.enabled:
            if config.enabled:
                self._reconciler.reset()
                self._scheduler.arm()
            else:
                await self._scheduler.disarm()

        return self.evaluate()

    def evaluate(self) -> ObservedState:
        """Reconcile the latest query snapshot into the observed state."""
        if self._closed:
            return self._state

        enabled = self._config.enabled
        params = build_query_params(self._config, self._scheduler.refresh_counter)
        request = QueryRequest(
            endpoint=self._endpoint,
            token=self._token,
            params=params,
            enabled=enabled,
        )

        outcome = self.query.execute(request)
        if self._is_stale(outcome, request):
            logger.debug(
                "Ignoring stale query outcome",
                outcome_refresh=outcome.refresh_counter,
                latest_refresh=request.refresh_counter,
            )
            outcome = FetchOutcome.pending(request.refresh_counter)

        state = self._reconciler.reconcile(outcome, enabled)
        if state != self._state:
            self._set_state(state)
        return state

    @staticmethod
    def _is_stale(outcome: FetchOutcome, request: QueryRequest) -> bool:
        if outcome.refresh_counter is None or request.refresh_counter is None:
            return False
        return outcome.refresh_counter < request.refresh_counter

    @staticmethod
    def _drop_gauge(site_uuid: str) -> None:
        try:
            ACTIVE_VISITORS.remove(site_uuid)
        except KeyError:
            pass  # No count was ever exported for this site

    def _set_state(self, state: ObservedState) -> None:
        self._state = state
        ACTIVE_VISITORS.labels(site_uuid=self._site_uuid).set(state.active_visitors)

        if state.error is not None:
            logger.warning(
                "Active visitors query error",
                site=self._site_uuid,
                error=str(state.error),
                active_visitors=state.active_visitors,
            )
        else:
            logger.debug(
                "Observed state changed",
                site=self._site_uuid,
                active_visitors=state.active_visitors,
                is_loading=state.is_loading,
            )

        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                logger.error("State subscriber failed", site=self._site_uuid, error=str(e))

    def _on_tick(self, refresh_counter: int) -> None:
        self.evaluate()

    def _on_query_settled(self) -> None:
        if not self._closed:
            self.evaluate()

    async def close(self) -> None:
        """Cancel the timer and the query. Safe to call more than once."""
        if self._closed:
            return

        self._closed = True
        await self._scheduler.disarm()
        await self.query.close()
        self._subscribers.clear()
        self._drop_gauge(self._site_uuid)

        logger.info("Closed active visitors poller", site=self._site_uuid)

    async def __aenter__(self) -> "ActiveVisitorsPoller":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get poller statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            SITE_PARAM: self._site_uuid,
            "enabled": self._config.enabled,
            "timer_armed": self._scheduler.is_armed,
            "refresh_counter": self._scheduler.refresh_counter,
            "retained_count": self._reconciler.retained_count,
            "active_visitors": self._state.active_visitors,
            "is_loading": self._state.is_loading,
            "error": str(self._state.error) if self._state.error is not None else None,
        }

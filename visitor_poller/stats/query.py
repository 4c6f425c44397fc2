"""Query execution against stats pipe endpoints."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
import structlog
from prometheus_client import Counter, Histogram


logger = structlog.get_logger(__name__)

REFRESH_PARAM = "_refresh"

QUERIES_TOTAL = Counter(
    "visitor_poller_queries_total",
    "Total number of stats queries executed",
    ["status"],
)

QUERY_DURATION = Histogram(
    "visitor_poller_query_duration_seconds",
    "Time spent waiting for stats queries",
)


class QueryError(Exception):
    """Raised when a stats query fails or returns an unusable payload."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class QueryRequest:
    """Everything needed to run one stats query."""

    endpoint: str
    token: str
    params: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    @property
    def refresh_counter(self) -> Optional[int]:
        return self.params.get(REFRESH_PARAM)

    def cache_key(self) -> Tuple[Any, ...]:
        """Key that identifies a logically distinct query."""
        return (self.endpoint, self.token, tuple(sorted(self.params.items())))


@dataclass(frozen=True)
class FetchOutcome:
    """Snapshot of a query: rows, loading flag and error."""

    rows: Optional[List[Dict[str, Any]]] = None
    loading: bool = False
    error: Optional[Exception] = None
    refresh_counter: Optional[int] = None

    @classmethod
    def pending(cls, refresh_counter: Optional[int] = None) -> "FetchOutcome":
        return cls(rows=None, loading=True, refresh_counter=refresh_counter)


class StatsQueryClient:
    """Async HTTP client for stats pipe endpoints."""

    def __init__(
        self,
        timeout: int = 10,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the query client.

        Args:
            timeout: Request timeout in seconds
            session: Existing session to reuse; the client owns the session
                it creates itself and leaves borrowed ones open on close
        """
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

        logger.info("Initialized stats query client", timeout=timeout)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure the HTTP session is initialized."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def fetch(
        self, endpoint: str, token: str, params: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Run one query and return the rows of its ``data`` list.

        Args:
            endpoint: Pipe URL
            token: Bearer token, sent only when non-empty
            params: Query string parameters

        Returns:
            Rows returned by the pipe

        Raises:
            QueryError: On transport failure, non-2xx status or malformed payload
        """
        if not endpoint:
            QUERIES_TOTAL.labels(status="unconfigured").inc()
            raise QueryError("Stats endpoint is not configured")

        session = await self._ensure_session()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        started = time.monotonic()

        try:
            async with session.get(endpoint, params=params, headers=headers) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    QUERIES_TOTAL.labels(status="http_error").inc()
                    logger.warning(
                        "Stats query returned error status",
                        url=endpoint,
                        status=response.status,
                        body=body[:200],
                    )
                    raise QueryError(
                        f"Stats query failed with status {response.status}",
                        status=response.status,
                    )
                payload = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            QUERIES_TOTAL.labels(status="transport_error").inc()
            logger.warning("Stats query transport error", url=endpoint, error=str(e))
            raise QueryError(f"Stats query failed: {e}") from e

        except asyncio.TimeoutError as e:
            QUERIES_TOTAL.labels(status="timeout").inc()
            logger.warning("Stats query timed out", url=endpoint, timeout=self.timeout)
            raise QueryError(f"Stats query timed out after {self.timeout}s") from e

        except ValueError as e:
            QUERIES_TOTAL.labels(status="malformed").inc()
            logger.warning("Stats query returned invalid JSON", url=endpoint, error=str(e))
            raise QueryError("Stats query returned invalid JSON") from e

        finally:
            QUERY_DURATION.observe(time.monotonic() - started)

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            QUERIES_TOTAL.labels(status="malformed").inc()
            logger.warning("Stats query payload has no data list", url=endpoint)
            raise QueryError("Stats query payload has no data list")

        QUERIES_TOTAL.labels(status="success").inc()
        logger.debug("Stats query successful", url=endpoint, rows=len(data))
        return data

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

        logger.debug("Closed stats query client")


class StatsQuery:
    """Keyed query whose latest result is read as a snapshot.

    ``execute`` never blocks: a request with a new cache key starts a
    background fetch and returns a loading snapshot. Listeners are called
    once that fetch settles so the owner can read the fresh snapshot.
    """

    def __init__(self, client: StatsQueryClient) -> None:
        self.client = client
        self._key: Optional[Tuple[Any, ...]] = None
        self._outcome = FetchOutcome()
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[], None]] = []

    def listen(self, callback: Callable[[], None]) -> None:
        """Register a callback for settled fetches."""
        self._listeners.append(callback)

    def execute(self, request: QueryRequest) -> FetchOutcome:
        """Return the snapshot for ``request``, fetching when it is new."""
        if not request.enabled:
            self._cancel_inflight()
            self._key = None
            self._outcome = FetchOutcome(refresh_counter=request.refresh_counter)
            return self._outcome

        key = request.cache_key()
        if key == self._key:
            return self._outcome

        self._cancel_inflight()
        self._key = key
        self._outcome = FetchOutcome.pending(request.refresh_counter)
        self._task = asyncio.get_running_loop().create_task(self._fetch(request, key))
        return self._outcome

    async def _fetch(self, request: QueryRequest, key: Tuple[Any, ...]) -> None:
        try:
            rows = await self.client.fetch(request.endpoint, request.token, request.params)
            outcome = FetchOutcome(
                rows=rows, loading=False, refresh_counter=request.refresh_counter
            )
        except QueryError as e:
            outcome = FetchOutcome(
                rows=None, loading=False, error=e, refresh_counter=request.refresh_counter
            )

        if key != self._key:
            logger.debug(
                "Discarding superseded query result",
                refresh_counter=request.refresh_counter,
            )
            return

        self._outcome = outcome
        self._task = None
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error("Query listener failed", error=str(e))

    def _cancel_inflight(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def close(self) -> None:
        """Cancel any in-flight fetch."""
        task = self._task
        self._cancel_inflight()
        self._key = None
        self._listeners.clear()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

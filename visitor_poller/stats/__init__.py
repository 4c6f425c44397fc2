"""Stats backend access: endpoint resolution and query execution."""

from .endpoints import ACTIVE_VISITORS_ENDPOINT, get_stat_endpoint_url, get_token
from .query import FetchOutcome, QueryError, QueryRequest, StatsQuery, StatsQueryClient

__all__ = [
    "ACTIVE_VISITORS_ENDPOINT",
    "get_stat_endpoint_url",
    "get_token",
    "FetchOutcome",
    "QueryError",
    "QueryRequest",
    "StatsQuery",
    "StatsQueryClient",
]

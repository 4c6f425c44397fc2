"""Reconciliation of query snapshots into a flicker-free visitor count."""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from ..stats.query import FetchOutcome


logger = structlog.get_logger(__name__)

COUNT_FIELD = "active_visitors"


@dataclass(frozen=True)
class ObservedState:
    """State exposed to consumers of a poller."""

    active_visitors: int = 0
    is_loading: bool = False
    error: Optional[Exception] = None


def extract_active_visitors(rows: Optional[List[Dict[str, Any]]]) -> Optional[int]:
    """Return the count from the first row, or None if there is no valid count.

    A count is valid when the row carries a numeric ``active_visitors``;
    it is truncated to an integer and clamped at zero.
    """
    if not rows:
        return None

    record = rows[0]
    if not isinstance(record, dict):
        return None

    value = record.get(COUNT_FIELD)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None

    return max(0, int(value))


class ResultReconciler:
    """Turns successive query snapshots into stable observed state.

    The last valid count is retained for the current enabled session and
    shown whenever a cycle yields no valid record, so consumers never see a
    refresh drop back to zero or to a loading indicator.
    """

    def __init__(self) -> None:
        self._retained_count: Optional[int] = None

    @property
    def retained_count(self) -> Optional[int]:
        return self._retained_count

    def reset(self) -> None:
        """Start a fresh session with no retained count."""
        self._retained_count = None

    def reconcile(self, outcome: FetchOutcome, enabled: bool) -> ObservedState:
        """Derive the observed state for one cycle."""
        if not enabled:
            return ObservedState()

        count = extract_active_visitors(outcome.rows)
        if count is not None:
            if count != self._retained_count:
                logger.debug(
                    "Retained visitor count updated",
                    previous=self._retained_count,
                    current=count,
                )
            self._retained_count = count
            return ObservedState(active_visitors=count, is_loading=False, error=outcome.error)

        if self._retained_count is None:
            # Loading is only shown before the first count of the session
            return ObservedState(
                active_visitors=0, is_loading=outcome.loading, error=outcome.error
            )

        return ObservedState(
            active_visitors=self._retained_count, is_loading=False, error=outcome.error
        )

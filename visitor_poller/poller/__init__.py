"""Polling subsystem for the active visitors count."""

from .active_visitors import ActiveVisitorsPoller
from .params import build_query_params
from .reconciler import ObservedState, ResultReconciler
from .scheduler import RefreshScheduler

__all__ = [
    "ActiveVisitorsPoller",
    "ObservedState",
    "RefreshScheduler",
    "ResultReconciler",
    "build_query_params",
]

"""Utility functions and helpers."""

from .health import HealthCheckServer
from .logging import setup_logging

__all__ = ["HealthCheckServer", "setup_logging"]

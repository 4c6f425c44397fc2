"""Live active-visitor polling for stats dashboards."""

__version__ = "0.1.0"

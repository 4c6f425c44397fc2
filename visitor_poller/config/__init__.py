"""Configuration management with Pydantic models."""

from .settings import LocalStatsConfig, PollConfig, PollerSettings, SiteIdentity

__all__ = ["PollerSettings", "PollConfig", "SiteIdentity", "LocalStatsConfig"]

"""Configuration models using Pydantic."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStatsConfig(BaseModel):
    """Override for running against a local stats backend."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=False,
        description="Route queries to the local endpoint instead of the hosted one"
    )
    endpoint: str = Field(
        default="",
        description="Base URL of the local stats backend"
    )
    token: str = Field(
        default="",
        description="Token accepted by the local stats backend"
    )


class SiteIdentity(BaseModel):
    """Identifies a site and the stats backend that serves it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        description="Site UUID sent with every query"
    )
    endpoint: str = Field(
        description="Base URL of the stats backend"
    )
    token: str = Field(
        default="",
        description="Read token for the stats backend"
    )
    local: Optional[LocalStatsConfig] = Field(
        default=None,
        description="Optional local backend override"
    )


class PollConfig(BaseModel):
    """Caller input for an active visitors poller."""

    model_config = ConfigDict(frozen=True)

    site_identity: Optional[SiteIdentity] = Field(
        default=None,
        description="Site to poll; queries go out with an empty site UUID when absent"
    )
    resource_filter: Optional[str] = Field(
        default=None,
        description="Restrict the count to a single post"
    )
    enabled: bool = Field(
        default=True,
        description="Gate for polling; a disabled poller always reports zero"
    )


class PollerSettings(BaseSettings):
    """Process configuration for the visitor poller runner."""

    model_config = SettingsConfigDict(
        env_prefix="VISITOR_POLLER_",
        case_sensitive=False,
        validate_assignment=True,
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log format (json, plain)"
    )

    # Polling configuration
    refresh_interval: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Seconds between refresh ticks"
    )
    request_timeout: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Stats query timeout in seconds"
    )
    enabled: bool = Field(
        default=True,
        description="Start with polling enabled"
    )

    # Site configuration
    site_id: Optional[str] = Field(
        default=None,
        description="Site UUID (no site identity when unset)"
    )
    stats_endpoint: str = Field(
        default="",
        description="Base URL of the stats backend"
    )
    stats_token: str = Field(
        default="",
        description="Read token for the stats backend"
    )
    local_stats_enabled: bool = Field(
        default=False,
        description="Query the local stats backend instead"
    )
    local_stats_endpoint: str = Field(
        default="",
        description="Base URL of the local stats backend"
    )
    local_stats_token: str = Field(
        default="",
        description="Token for the local stats backend"
    )
    post_uuid: Optional[str] = Field(
        default=None,
        description="Only count visitors of this post"
    )

    # Metrics configuration
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_port: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="Port for Prometheus metrics server"
    )

    # Health check configuration
    health_port: int = Field(
        default=8081,
        ge=1024,
        le=65535,
        description="Port for health check endpoint"
    )

    def site_identity(self) -> Optional[SiteIdentity]:
        """Build the site identity, or None when no site is configured."""
        if not self.site_id:
            return None

        local = None
        if self.local_stats_enabled:
            local = LocalStatsConfig(
                enabled=True,
                endpoint=self.local_stats_endpoint,
                token=self.local_stats_token,
            )

        return SiteIdentity(
            id=self.site_id,
            endpoint=self.stats_endpoint,
            token=self.stats_token,
            local=local,
        )

    def poll_config(self) -> PollConfig:
        """Build the initial poll configuration from these settings."""
        return PollConfig(
            site_identity=self.site_identity(),
            resource_filter=self.post_uuid,
            enabled=self.enabled,
        )

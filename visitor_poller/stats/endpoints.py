"""Endpoint and token resolution for stats pipes."""

from typing import Optional

from ..config import SiteIdentity

ACTIVE_VISITORS_ENDPOINT = "api_active_visitors"


def _uses_local(site: SiteIdentity) -> bool:
    return site.local is not None and site.local.enabled


def get_stat_endpoint_url(
    site: Optional[SiteIdentity], endpoint: str, params: str = ""
) -> str:
    """Build the URL of a stats pipe for a site.

    Args:
        site: Site identity, or None when no site is configured
        endpoint: Pipe name, e.g. ``api_active_visitors``
        params: Pre-encoded query string to append

    Returns:
        Pipe URL, or an empty string when there is no site
    """
    if site is None:
        return ""

    base_url = site.local.endpoint if _uses_local(site) else site.endpoint
    url = f"{base_url.rstrip('/')}/v0/pipes/{endpoint}.json"
    if params:
        url = f"{url}?{params}"
    return url


def get_token(site: Optional[SiteIdentity]) -> str:
    """Return the read token for a site, or an empty string."""
    if site is None:
        return ""
    if _uses_local(site):
        return site.local.token
    return site.token

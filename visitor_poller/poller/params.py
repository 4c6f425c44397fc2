"""Query parameters for the active visitors pipe."""

from typing import Any, Dict

from ..config import PollConfig
from ..stats.query import REFRESH_PARAM

SITE_PARAM = "site_uuid"
RESOURCE_PARAM = "post_uuid"


def build_query_params(config: PollConfig, refresh_counter: int) -> Dict[str, Any]:
    """Build the pipe parameters for one refresh cycle.

    The post filter key is left out entirely when no filter is set, so the
    pipe never receives an empty filter.
    """
    site = config.site_identity
    params: Dict[str, Any] = {
        SITE_PARAM: site.id if site is not None else "",
        REFRESH_PARAM: refresh_counter,
    }
    if config.resource_filter:
        params[RESOURCE_PARAM] = config.resource_filter
    return params

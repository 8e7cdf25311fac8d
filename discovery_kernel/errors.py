"""
Error taxonomy for the discovery kernel.

Collaborator failures (parse, score, catalog) are recovered locally with a
degraded result and never reach the caller. Only malformed input is surfaced,
as InvalidRequest.
"""


class DiscoveryError(Exception):
    """Base class for all discovery kernel errors."""


class ParseUnavailable(DiscoveryError):
    """The NLP parse collaborator could not run or timed out."""


class ScoreUnavailable(DiscoveryError):
    """The embedding score collaborator could not run or timed out."""


class CatalogUnavailable(DiscoveryError):
    """The service catalog could not be fetched."""


class InvalidRequest(DiscoveryError):
    """The caller sent a malformed request (e.g., no session id)."""


# Degradation markers recorded on responses when a collaborator failed
DEGRADED_PARSE = "parse_unavailable"
DEGRADED_SCORE = "score_unavailable"
DEGRADED_CATALOG = "catalog_unavailable"
DEGRADED_CATALOG_CACHED = "catalog_served_from_cache"

"""Error taxonomy for the intelligence engine.

Adapter-level errors (everything under SourceError) are raised by the
source adapters and caught at the fan-out boundary, where they are
recorded into source health. They never reach callers of the engine.
"""

from typing import Optional


class FootballIntelError(Exception):
    """Base class for all engine errors."""


class SourceError(FootballIntelError):
    """A third-party source could not serve a request."""

    def __init__(self, source: str, message: str = "", status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"[{source}] {message}" if message else f"[{source}] request failed")


class NetworkError(SourceError):
    """Connection-level failure (DNS, refused, reset)."""


class SourceTimeout(NetworkError):
    """The source did not answer within the configured timeout."""


class RateLimitExceeded(SourceError):
    """HTTP 429 from the source."""

    def __init__(self, source: str, message: str = "rate limited", status_code: int = 429):
        super().__init__(source, message, status_code)


class UpstreamServerError(SourceError):
    """HTTP 5xx from the source."""


class NotFound(SourceError):
    """The source has no such team or match."""


class MalformedResponse(SourceError):
    """The payload did not have the vendor's documented shape."""


class PersistenceError(FootballIntelError):
    """The identity store could not read or write a record."""

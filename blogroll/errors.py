"""Error taxonomy for blogroll.

Per-feed and per-source errors are caught at that granularity by the sync
engine and stored on the failing record; only run-level failures escape.
"""

from typing import Optional


class BlogrollError(Exception):
    """Base class for all blogroll errors."""


class FetchError(BlogrollError):
    """A remote document could not be retrieved."""


class FetchTimeout(FetchError):
    """The request did not complete within the caller-supplied timeout."""

    def __init__(self, url: str, timeout: float):
        super().__init__(f"Request timed out after {timeout:g}s: {url}")
        self.url = url
        self.timeout = timeout


class FetchFailed(FetchError):
    """Network failure or non-2xx HTTP response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseFailed(BlogrollError):
    """Malformed feed or subscription-list document."""


class NotFound(BlogrollError):
    """A referenced source or blog does not exist."""


class AdapterUnavailable(BlogrollError):
    """The mirrored subscription subsystem is not installed."""


class AlreadyRunning(BlogrollError):
    """A full sync is already in progress."""

"""Error taxonomy shared by the fetcher, adapters, scrapers and store.

Adapters never let these escape; they are carried as values inside
``FetchResult`` / ``AdapterResult``. Only ``StorageConflictError`` and
``DeliveryError`` are raised across module boundaries.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for every failure the aggregation pipeline knows about."""

    retryable = False

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.message


class TransientNetworkError(PipelineError):
    """Timeout or connection failure."""

    retryable = True


class RateLimited(PipelineError):
    """Upstream answered 429 and retries were exhausted."""

    retryable = True


class UpstreamHTTPError(PipelineError):
    """Upstream answered with a non-2xx status other than 429."""

    def __init__(self, message: str, status_code: int, source: Optional[str] = None):
        super().__init__(message, source)
        self.status_code = status_code


class UpstreamFormatError(PipelineError):
    """Payload did not have the expected shape."""


class ScrapeStructureNotFound(PipelineError):
    """The page rendered but the expected table/section was not there."""


class StorageConflictError(PipelineError):
    """The snapshot upsert failed at the persistence layer."""


class DeliveryError(PipelineError):
    """A one-time passcode could not be delivered."""

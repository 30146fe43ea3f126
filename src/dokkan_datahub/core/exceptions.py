"""Custom exception hierarchy for dokkan-datahub."""

from typing import Any


class DataHubError(Exception):
    """Base exception for all dokkan-datahub errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(DataHubError):
    """Invalid or missing configuration.

    Raised by load_config() during startup, and by the orchestrator when a
    data type has no source priority list. Never retried.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value
        data_type (str): the data type with no priority list
    """


class SourceError(DataHubError):
    """An upstream source could not provide data.

    Context keys:
        source (str): the source identifier
        data_type (str): the data type being fetched
    """


class TransientSourceError(SourceError):
    """One source failed or returned nothing.

    Policy: log and fall back to the next source. Never surfaced to the
    caller unless every source is exhausted.

    Context keys:
        url (str): the URL that was being fetched
        status_code (int | None): HTTP status if applicable
    """


class RateLimitError(TransientSourceError):
    """Source answered HTTP 429 after retry exhaustion.

    Context keys:
        retry_after (int | None): seconds the source asked us to wait
    """


class SourceExhaustedError(SourceError):
    """Every configured source for a data type failed or was empty.

    Surfaced to callers of fetch_best() and get_or_refresh(). The last
    underlying error (if any) is kept on `last_error` for diagnostics.

    Context keys:
        data_type (str): the data type that could not be fetched
        sources (list[str]): the sources that were tried, in order
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        last_error: BaseException | None = None,
    ):
        super().__init__(message, context)
        self.last_error = last_error


class ParseFieldError(DataHubError):
    """A single field transformation raised.

    Policy: log and keep the raw value. Never aborts the batch.

    Context keys:
        data_type: str
        field: str
        source: str
        index (int): position of the record in the batch
    """


class CacheIOError(DataHubError):
    """Cache persistence failed.

    Policy: raise immediately. The coordinator must not report stale success;
    batch operations isolate it to the affected type.

    Context keys:
        operation (str): "put", "get", "clear", "initialize", etc.
        key (str): the cache key involved
    """

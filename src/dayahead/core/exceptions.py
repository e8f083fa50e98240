"""Custom exception hierarchy for dayahead."""

from typing import Any


class DayAheadError(Exception):
    """Base exception for all dayahead errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    ``status_code`` is the HTTP status the read API renders for the error.
    """

    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(DayAheadError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class StorageError(DayAheadError):
    """Object cache backend operation failed.

    Policy: raise immediately. The read API reports it as ServiceUnavailable.

    Context keys:
        operation: str — "has", "retrieve", "create", "delete", "keys"
        key: str | None — the cache key involved
    """


class ValidationError(DayAheadError):
    """Malformed date or hour in a read query."""

    status_code = 400


class NotFound(DayAheadError):
    """Missing day object or unresolved path segment.

    Context keys:
        date: str — the requested price date
        path: str | None — the sub-path that failed to resolve
    """

    status_code = 404


class IndexOutOfRange(NotFound):
    """Interval index outside the bounds of a window slot.

    Context keys:
        index: int — the requested index
        length: int — number of entries in the slot
        slot: str — "previous", "current" or "next"
    """


class ServiceUnavailable(DayAheadError):
    """Unexpected internal failure while serving a read query.

    Carries the upstream status code when one is known, otherwise 500.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        status_code: int = 500,
    ):
        super().__init__(message, context)
        self.status_code = status_code


class ProviderUnavailable(DayAheadError):
    """Upstream price fetch failed.

    Policy: log and skip the day. Retrying is the scheduler's job.

    Context keys:
        provider: str — the provider that was asked
        date: str — the delivery date
        status_code: int | None — HTTP status if applicable
    """


class RateUnavailable(DayAheadError):
    """Currency rate absent even after a refetch.

    Context keys:
        currency: str — the requested currency code
    """


class TransportError(DayAheadError):
    """Retained publish failed.

    Policy: abort the publish cycle. The next cycle republishes everything.

    Context keys:
        topic: str — the topic being published
        completed: list[str] — topics already published in this cycle
    """

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    ORDER_ERROR = 3
    LOOKUP_ERROR = 4


class AggregatorError(Exception):
    """Base error for the order aggregator."""


class ConfigError(AggregatorError):
    """Raised for configuration or argument issues."""


class LookupFailed(AggregatorError):
    """Raised by a lookup backend when a record cannot be fetched."""


class RecordNotFound(LookupFailed):
    """Raised by a lookup backend when the requested record does not exist."""


class FatalLookupError(AggregatorError):
    """
    Raised when the order lookup fails. This is the only error that crosses
    the enrich() boundary; no dependent lookups were attempted.
    """

    def __init__(self, message: str, seller_id: object = None) -> None:
        super().__init__(message)
        self.seller_id = seller_id


class SoftLookupError(AggregatorError):
    """
    Describes a failed offer/product lookup. Built for logging only; the
    dependent is reported as absent and the error is never raised to callers.
    """

    def __init__(self, message: str, *, dependency: str, ref: object, reason: str) -> None:
        super().__init__(message)
        self.dependency = dependency
        self.ref = ref
        self.reason = reason

    @classmethod
    def from_exception(cls, dependency: str, ref: object, exc: BaseException) -> SoftLookupError:
        reason = "not_found" if isinstance(exc, RecordNotFound) else "error"
        return cls(f"{dependency} lookup failed for {ref}: {exc}", dependency=dependency, ref=ref, reason=reason)


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, FatalLookupError):
        return int(ExitCode.ORDER_ERROR)
    if isinstance(exc, LookupFailed):
        return int(ExitCode.LOOKUP_ERROR)
    return 1

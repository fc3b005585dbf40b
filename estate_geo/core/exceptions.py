"""Domain-level exception hierarchy for the geo query services."""

from __future__ import annotations


class DomainError(Exception):
    """Base class for domain-specific failures."""


class ValidationError(DomainError):
    """Raised when a point, bounds or query spec is malformed."""


class AntimeridianNotSupported(ValidationError):
    """Raised for bounds whose west edge lies east of the east edge."""


class DecodeError(DomainError):
    """A single stored coordinate value could not be parsed.

    ``reason`` is ``"malformed"`` or ``"out_of_range"``.
    """

    MALFORMED = "malformed"
    OUT_OF_RANGE = "out_of_range"

    def __init__(self, reason: str, raw: object = None) -> None:
        super().__init__(f"cannot decode coordinates ({reason}): {raw!r}")
        self.reason = reason
        self.raw = raw


class InfrastructureError(DomainError):
    """Raised when infrastructure (DB or external service) is unavailable."""


class UpstreamUnavailable(InfrastructureError):
    """The indexed spatial backend is unreachable or lacks a capability."""


class FallbackExhausted(InfrastructureError):
    """Both the indexed and the fallback paths failed for a request."""


class QueryCancelled(DomainError):
    """The caller cancelled the request while a scan was in progress."""

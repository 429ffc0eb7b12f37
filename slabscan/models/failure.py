"""
Failure classification for scans.

Every failure the system can name has a FailureKind. Provider failures
(vision, certificate authority, marketplace) are raised inside provider
clients and absorbed at the component boundary, where a deterministic
fallback takes over. Only scan lookup and request validation failures
reach the caller as classified errors; anything else is a 500.
"""

from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Provider failures (absorbed by fallbacks)
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_UPSTREAM_RESPONSE = "malformed_upstream_response"

    # Caller failures
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"

    # Unknown
    UNKNOWN = "unknown"


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error response body."""
        return {
            "error": self.message,
            "kind": self.kind.value,
            "detail": self.detail,
        }


class UpstreamUnavailableError(KnownError):
    """
    A provider could not be reached or answered with a failure status.

    Covers network errors, timeouts and non-success HTTP responses.
    """

    def __init__(self, provider: str, detail: str | None = None):
        self.provider = provider
        super().__init__(
            kind=FailureKind.UPSTREAM_UNAVAILABLE,
            message=f"{provider} is unavailable",
            detail=detail,
            status_code=502,
        )


class MalformedUpstreamResponseError(KnownError):
    """A provider answered, but the body could not be parsed."""

    def __init__(self, provider: str, detail: str | None = None):
        self.provider = provider
        super().__init__(
            kind=FailureKind.MALFORMED_UPSTREAM_RESPONSE,
            message=f"{provider} returned an unreadable response",
            detail=detail,
            status_code=502,
        )


class ScanNotFoundError(KnownError):
    """No scan exists with the requested id."""

    def __init__(self, scan_id: str):
        self.scan_id = scan_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message="Scan not found",
            detail=f"scan_id={scan_id}",
            status_code=404,
        )

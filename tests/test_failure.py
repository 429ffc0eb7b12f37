"""Tests for failure classification."""

from slabscan.models.failure import (
    FailureKind,
    KnownError,
    MalformedUpstreamResponseError,
    ScanNotFoundError,
    UpstreamUnavailableError,
)


class TestKnownError:
    def test_to_dict(self) -> None:
        error = KnownError(FailureKind.VALIDATION_ERROR, "Invalid request", detail="bad grade")

        assert error.to_dict() == {
            "error": "Invalid request",
            "kind": "validation_error",
            "detail": "bad grade",
        }
        assert error.status_code == 400
        assert str(error) == "Invalid request"


class TestProviderErrors:
    def test_upstream_unavailable(self) -> None:
        error = UpstreamUnavailableError("ebay_finding", detail="timeout")

        assert error.kind == FailureKind.UPSTREAM_UNAVAILABLE
        assert error.provider == "ebay_finding"
        assert error.status_code == 502
        assert "ebay_finding" in error.message

    def test_malformed_response(self) -> None:
        error = MalformedUpstreamResponseError("vision", detail="not json")

        assert error.kind == FailureKind.MALFORMED_UPSTREAM_RESPONSE
        assert error.status_code == 502

    def test_provider_errors_are_known(self) -> None:
        """Provider errors share the KnownError base."""
        assert isinstance(UpstreamUnavailableError("x"), KnownError)
        assert isinstance(MalformedUpstreamResponseError("x"), KnownError)


class TestScanNotFound:
    def test_not_found(self) -> None:
        error = ScanNotFoundError("abc")

        assert error.kind == FailureKind.NOT_FOUND
        assert error.status_code == 404
        assert error.to_dict()["error"] == "Scan not found"
        assert error.scan_id == "abc"

"""Tests for the exception hierarchy."""

from pathlib import Path

from qic.exceptions import (
    AccessDeniedError,
    AssetStoreError,
    DownloadError,
    DownloadFailedError,
    ImageProcessingError,
    PollTimeoutError,
    QicError,
    QuotaExceededError,
    UnsupportedFormatError,
    VerificationError,
)
from qic.markdown.diff_check import verify_only_expected_changes


class TestHierarchy:
    """Tests for exception inheritance."""

    def test_all_are_qic_errors(self):
        """Test every domain error derives from QicError."""
        for cls in (DownloadError, AssetStoreError, ImageProcessingError, VerificationError, PollTimeoutError):
            assert issubclass(cls, QicError)

    def test_download_codes(self):
        """Test download errors carry a stable code."""
        assert AccessDeniedError("u", status=403).code == "ACCESS_DENIED"
        assert DownloadFailedError("u").code == "DOWNLOAD_FAILED"
        assert issubclass(AccessDeniedError, DownloadError)

    def test_quota_is_store_error(self):
        """Test quota errors are asset store errors."""
        error = QuotaExceededError("/tmp/a.png", "Monthly limit exceeded")
        assert isinstance(error, AssetStoreError)
        assert str(error) == "Upload quota exceeded for a.png: Monthly limit exceeded"

    def test_unsupported_format_message(self):
        """Test the message names the allowed extensions."""
        assert ".jpg/.jpeg/.png" in str(UnsupportedFormatError("x.webp"))


class TestVerificationError:
    """Tests for VerificationError."""

    def test_message_includes_index_and_report(self):
        """Test the message carries the first diff index and the report path."""
        result = verify_only_expected_changes("abc", "abd", {})
        error = VerificationError(result, {"report": Path("r.json")})
        assert "index 2" in str(error)
        assert "r.json" in str(error)
        assert error.result is result

    def test_without_artifacts(self):
        """Test artifacts default to an empty mapping."""
        result = verify_only_expected_changes("a", "b", {})
        assert VerificationError(result).artifacts == {}

"""Custom exceptions for QIC."""

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qic.markdown.diff_check import VerificationResult


class QicError(Exception):
    """Base exception class for QIC."""

    pass


class InvalidArticleUrlError(QicError):
    """Article URL could not be parsed."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"{message}: {url}")


class ConfigurationError(QicError):
    """Configuration error."""

    pass


class ImageProcessingError(QicError):
    """Error during image processing."""

    pass


class UnsupportedFormatError(ImageProcessingError):
    """Requested output format is neither JPEG nor PNG."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Unsupported output format (use .jpg/.jpeg/.png): {target}")


class OptimizationFailedError(ImageProcessingError):
    """No encoding fits the budget and the source dimensions are unknown."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"Failed to optimize image (unknown dimensions): {source}")


class DownloadError(QicError):
    """Error while downloading a source image."""

    code = "DOWNLOAD_FAILED"

    def __init__(self, url: str, status: int | None = None, cause: Exception | None = None) -> None:
        self.url = url
        self.status = status
        self.cause = cause
        super().__init__(f"Failed to download image ({self.code}): {url}")


class AccessDeniedError(DownloadError):
    """Origin refused to serve the asset (HTTP 403)."""

    code = "ACCESS_DENIED"


class DownloadFailedError(DownloadError):
    """Any download failure other than access denied."""

    code = "DOWNLOAD_FAILED"


class AssetStoreError(QicError):
    """Asset store operation failed."""

    pass


class QuotaExceededError(AssetStoreError):
    """The store rejected an upload for capacity reasons."""

    def __init__(self, path: Path | str, detail: str = "") -> None:
        self.path = Path(path)
        self.detail = detail
        message = f"Upload quota exceeded for {self.path.name}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UploadFailedError(AssetStoreError):
    """Upload did not produce a new asset URL."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"Upload failed for {self.path.name}: {message}")


class EditorError(QicError):
    """Editing session error."""

    pass


class EditorNotFoundError(EditorError):
    """No supported editor widget was found on the page."""

    def __init__(self, message: str = "Editor not found on page") -> None:
        super().__init__(message)


class SubstitutionNotAppliedError(EditorError):
    """The rewritten body never became visible through a live read."""

    def __init__(self, rules: int, timeout: float) -> None:
        self.rules = rules
        self.timeout = timeout
        super().__init__(
            f"Rewritten body was not reflected in the editor within {timeout:.1f}s "
            f"({rules} substitution rule(s))"
        )


class VerificationError(QicError):
    """The edited document differs from the expected substitution result."""

    def __init__(
        self,
        result: "VerificationResult",
        artifacts: dict[str, Path] | None = None,
    ) -> None:
        self.result = result
        self.artifacts = artifacts or {}
        message = (
            f"Non-URL changes detected at index {result.first_diff_index}; "
            "aborting before submit"
        )
        if "report" in self.artifacts:
            message = f"{message} (report: {self.artifacts['report']})"
        super().__init__(message)


class PublishError(QicError):
    """Submitting the document failed."""

    pass


class PollTimeoutError(QicError):
    """A polled condition did not hold before the deadline."""

    def __init__(self, description: str, timeout: float, last_value: object = None) -> None:
        self.description = description
        self.timeout = timeout
        self.last_value = last_value
        super().__init__(f"Timed out after {timeout:.1f}s waiting for {description}")

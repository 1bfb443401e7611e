"""Markdown processing: image URL extraction, substitution and diff verification."""

from qic.markdown.diff_check import (
    VerificationResult,
    normalize_document,
    verify_only_expected_changes,
)
from qic.markdown.urls import extract_image_urls, is_http_url, substitute

__all__ = [
    "VerificationResult",
    "extract_image_urls",
    "is_http_url",
    "normalize_document",
    "substitute",
    "verify_only_expected_changes",
]

"""Playwright-driven collaborators for the blogging platform."""

from qic.browser.asset_store import (
    PlaywrightAssetStore,
    extract_asset_urls,
    is_quota_error,
    is_valid_asset_url,
    parse_asset_key,
    run_deletion_passes,
)
from qic.browser.editor import EditorKind, PlaywrightEditingSession, editor_kind_from_probe
from qic.browser.publish import PlaywrightPublishChecker, evaluate_published_html
from qic.browser.session import BrowserSession

__all__ = [
    "BrowserSession",
    "EditorKind",
    "PlaywrightAssetStore",
    "PlaywrightEditingSession",
    "PlaywrightPublishChecker",
    "editor_kind_from_probe",
    "evaluate_published_html",
    "extract_asset_urls",
    "is_quota_error",
    "is_valid_asset_url",
    "parse_asset_key",
    "run_deletion_passes",
]

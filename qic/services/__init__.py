"""Collaborator interfaces and their file-backed implementations."""

from qic.services.editing import apply_url_substitutions
from qic.services.local import LocalDirectoryAssetStore, LocalFileEditingSession, LocalPublishChecker
from qic.services.protocols import (
    AssetStore,
    Downloader,
    EditingSession,
    PublishCheck,
    PublishChecker,
    SubstitutionOutcome,
)

__all__ = [
    "AssetStore",
    "Downloader",
    "EditingSession",
    "LocalDirectoryAssetStore",
    "LocalFileEditingSession",
    "LocalPublishChecker",
    "PublishCheck",
    "PublishChecker",
    "SubstitutionOutcome",
    "apply_url_substitutions",
]

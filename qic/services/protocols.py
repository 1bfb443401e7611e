"""Protocol definitions for the collaborators the pipeline drives.

The pipeline only ever talks to an editing session, an asset store, a
downloader and a publish checker through these interfaces, so the browser
backed implementations and the local file backed ones are interchangeable.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from qic.image.downloader import DownloadResult


@dataclass(frozen=True)
class SubstitutionOutcome:
    """Result of an in-place patch attempt on the editing surface."""

    ok: bool
    replaced_count: int = 0
    detail: str | None = None


@dataclass(frozen=True)
class PublishCheck:
    """What the public rendering of a document currently references."""

    ok: bool
    has_all_new: bool
    has_any_old: bool


class EditingSession(Protocol):
    """A single-writer document editing surface."""

    async def read_snapshot(self) -> str:
        """Read the body as currently rendered by the editor."""
        ...

    async def read_live(self) -> str:
        """Read the authoritative full body, bypassing render virtualization."""
        ...

    async def write(self, text: str) -> None:
        """Replace the whole body."""
        ...

    async def apply_substitutions(self, mapping: Mapping[str, str]) -> SubstitutionOutcome:
        """Best-effort in-place replacement of each old URL with its new URL."""
        ...

    async def submit(self) -> bool:
        """Publish the body; True when a success state change was observed."""
        ...


class AssetStore(Protocol):
    """Storage for uploaded binary assets."""

    async def upload(self, path: Path) -> str:
        """Upload a local file and return its new reference URL.

        Raises:
            QuotaExceededError: The store refused the file for capacity reasons
        """
        ...

    async def delete(self, keys: Sequence[str]) -> list[str]:
        """Delete assets by key, best effort. Returns the keys actually deleted."""
        ...

    def asset_key(self, url: str) -> str | None:
        """Deletable key for a URL hosted by this store, else None."""
        ...


class Downloader(Protocol):
    """Source image fetcher."""

    async def fetch(self, url: str, output_path: Path) -> "DownloadResult":
        """Save `url` to `output_path`.

        Raises:
            AccessDeniedError: The origin refused to serve the asset
            DownloadFailedError: Any other failure
        """
        ...


class PublishChecker(Protocol):
    """Reads the publicly visible rendering of a document."""

    async def check(self, new_urls: Sequence[str], old_urls: Sequence[str]) -> PublishCheck:
        """Report whether every new URL and none of the old ones are visible."""
        ...

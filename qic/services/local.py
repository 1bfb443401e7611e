"""File-backed collaborators.

`LocalFileEditingSession` edits a markdown file on disk and
`LocalDirectoryAssetStore` serves uploads from a directory under a base URL.
Together they run the whole pipeline without a browser.
"""

import asyncio
import re
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path
from urllib.parse import quote, unquote

from qic.exceptions import QuotaExceededError, UploadFailedError
from qic.image.optimizer import is_upload_supported_extension
from qic.services.protocols import PublishCheck, SubstitutionOutcome
from qic.utils.fs import atomic_write, ensure_directory, get_unique_path, safe_filename
from qic.utils.logging import get_logger

log = get_logger(__name__)


class LocalFileEditingSession:
    """Editing session over a markdown file.

    Edits go to ``path``. ``submit()`` copies it to ``published_path`` when one
    is given, which is what `LocalPublishChecker` reads.
    """

    def __init__(self, path: Path, published_path: Path | None = None) -> None:
        self.path = path
        self.published_path = published_path

    def _read(self) -> str:
        # newline="" keeps CRLF bodies byte-for-byte
        with open(self.path, encoding="utf-8", newline="") as f:
            return f.read()

    async def read_snapshot(self) -> str:
        return await asyncio.to_thread(self._read)

    async def read_live(self) -> str:
        return await self.read_snapshot()

    async def write(self, text: str) -> None:
        def _write() -> None:
            with atomic_write(self.path, newline="") as f:
                f.write(text)

        await asyncio.to_thread(_write)

    async def apply_substitutions(self, mapping: Mapping[str, str]) -> SubstitutionOutcome:
        body = await self.read_snapshot()
        replaced = 0
        for old, new in mapping.items():
            if not old:
                continue
            replaced += body.count(old)
            body = body.replace(old, new)
        await self.write(body)
        return SubstitutionOutcome(ok=True, replaced_count=replaced)

    async def submit(self) -> bool:
        if self.published_path is None:
            return True
        ensure_directory(self.published_path.parent)
        await asyncio.to_thread(shutil.copyfile, self.path, self.published_path)
        log.info("submit.copied", published=str(self.published_path))
        return True


class LocalDirectoryAssetStore:
    """Asset store backed by a directory served under ``base_url``."""

    def __init__(
        self,
        directory: Path,
        base_url: str,
        quota_bytes: int | None = None,
    ) -> None:
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        self.quota_bytes = quota_bytes
        self._key_re = re.compile(re.escape(self.base_url) + r"/([^/?#]+)$")

    def _used_bytes(self) -> int:
        if not self.directory.exists():
            return 0
        return sum(p.stat().st_size for p in self.directory.iterdir() if p.is_file())

    async def upload(self, path: Path) -> str:
        if not path.is_file():
            raise UploadFailedError(path, "file does not exist")
        if not is_upload_supported_extension(path):
            raise UploadFailedError(path, f"unsupported extension {path.suffix or '(none)'}")
        size = path.stat().st_size
        if self.quota_bytes is not None and self._used_bytes() + size > self.quota_bytes:
            raise QuotaExceededError(path, "Monthly limit exceeded")

        ensure_directory(self.directory)
        target = get_unique_path(self.directory / safe_filename(path.name))
        await asyncio.to_thread(shutil.copyfile, path, target)
        url = f"{self.base_url}/{quote(target.name)}"
        log.info("upload.done", path=str(path), url=url, bytes=size)
        return url

    def asset_key(self, url: str) -> str | None:
        match = self._key_re.match(url)
        if not match:
            return None
        key = unquote(match.group(1))
        if key in (".", "..") or "/" in key or "\\" in key:
            return None
        return key

    async def delete(self, keys: Sequence[str]) -> list[str]:
        deleted: list[str] = []
        root = self.directory.resolve()
        for key in keys:
            target = (self.directory / key).resolve()
            if target.parent != root:
                log.warning("delete_originals.outside_store", key=key)
                continue
            if not target.is_file():
                log.warning("delete_originals.not_found", key=key)
                continue
            try:
                await asyncio.to_thread(target.unlink)
            except OSError as e:
                log.warning("delete_originals.row_failed", key=key, error=str(e))
                continue
            deleted.append(key)
        log.info("delete_originals.done", requested=len(keys), deleted=len(deleted))
        return deleted


class LocalPublishChecker:
    """Reads the published copy written by `LocalFileEditingSession.submit`."""

    def __init__(self, published_path: Path) -> None:
        self.published_path = published_path

    async def check(self, new_urls: Sequence[str], old_urls: Sequence[str]) -> PublishCheck:
        if not self.published_path.exists():
            return PublishCheck(ok=False, has_all_new=False, has_any_old=True)
        text = await asyncio.to_thread(self.published_path.read_text, encoding="utf-8")
        has_all_new = all(u in text for u in new_urls)
        has_any_old = any(u in text for u in old_urls)
        return PublishCheck(
            ok=has_all_new and not has_any_old,
            has_all_new=has_all_new,
            has_any_old=has_any_old,
        )

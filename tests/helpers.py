"""Image factories and in-memory collaborators shared by the tests."""

import random
from collections.abc import Mapping, Sequence
from pathlib import Path

from PIL import Image

from qic.exceptions import AccessDeniedError, AssetStoreError, DownloadFailedError, QuotaExceededError
from qic.image.downloader import DownloadResult
from qic.services.protocols import PublishCheck, SubstitutionOutcome
from qic.utils.fs import ensure_directory


def make_noise_image(width: int, height: int, mode: str = "RGB", seed: int = 1) -> Image.Image:
    """Deterministic noise; it compresses badly, so byte sizes grow with size and quality."""
    rng = random.Random(seed)
    data = rng.randbytes(width * height * len(mode))
    return Image.frombytes(mode, (width, height), data)


class FakeSession:
    """In-memory editing session recording every call."""

    def __init__(
        self,
        body: str,
        in_place: bool = True,
        live_transform=None,
        submit_result: bool = True,
    ) -> None:
        self.body = body
        self.in_place = in_place
        self.live_transform = live_transform
        self.submit_result = submit_result
        self.writes: list[str] = []
        self.submitted = 0

    async def read_snapshot(self) -> str:
        return self.body

    async def read_live(self) -> str:
        if self.live_transform is not None:
            return self.live_transform(self.body)
        return self.body

    async def write(self, text: str) -> None:
        self.writes.append(text)
        self.body = text

    async def apply_substitutions(self, mapping: Mapping[str, str]) -> SubstitutionOutcome:
        if not self.in_place:
            return SubstitutionOutcome(ok=False, detail="no in-place replace")
        replaced = 0
        for old, new in mapping.items():
            replaced += self.body.count(old)
            self.body = self.body.replace(old, new)
        return SubstitutionOutcome(ok=True, replaced_count=replaced)

    async def submit(self) -> bool:
        self.submitted += 1
        return self.submit_result


class FakeStore:
    """Asset store handing out sequential URLs under https://cdn.test/."""

    def __init__(self, quota_exceeded: bool = False, fail_delete: bool = False) -> None:
        self.quota_exceeded = quota_exceeded
        self.fail_delete = fail_delete
        self.uploads: list[Path] = []
        self.deleted_keys: list[str] = []

    async def upload(self, path: Path) -> str:
        if self.quota_exceeded:
            raise QuotaExceededError(path, "Monthly limit exceeded")
        self.uploads.append(path)
        return f"https://cdn.test/new-{len(self.uploads)}{path.suffix}"

    async def delete(self, keys: Sequence[str]) -> list[str]:
        if self.fail_delete:
            raise AssetStoreError("list page unavailable")
        self.deleted_keys.extend(keys)
        return list(keys)

    def asset_key(self, url: str) -> str | None:
        prefix = "https://src.test/"
        return url[len(prefix) :] if url.startswith(prefix) else None


class FakeDownloader:
    """Downloader serving files from a dict of url -> source path (or error)."""

    def __init__(self, sources: Mapping[str, object]) -> None:
        self.sources = dict(sources)
        self.fetched: list[str] = []

    async def fetch(self, url: str, output_path: Path) -> DownloadResult:
        self.fetched.append(url)
        source = self.sources.get(url)
        if source == 403:
            raise AccessDeniedError(url, status=403)
        if source is None or isinstance(source, int):
            raise DownloadFailedError(url, status=source if isinstance(source, int) else None)
        ensure_directory(output_path.parent)
        data = Path(source).read_bytes()
        output_path.write_bytes(data)
        return DownloadResult(path=output_path, byte_size=len(data), content_type="image/png")


class FakePublishChecker:
    """Publish checker that reads the session body."""

    def __init__(self, session: FakeSession, ok_after: int = 0) -> None:
        self.session = session
        self.ok_after = ok_after
        self.calls = 0

    async def check(self, new_urls: Sequence[str], old_urls: Sequence[str]) -> PublishCheck:
        self.calls += 1
        body = self.session.body if self.calls > self.ok_after else ""
        has_all_new = all(u in body for u in new_urls)
        has_any_old = any(u in body for u in old_urls)
        return PublishCheck(
            ok=has_all_new and not has_any_old,
            has_all_new=has_all_new,
            has_any_old=has_any_old,
        )

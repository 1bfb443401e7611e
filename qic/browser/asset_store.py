"""Asset store backed by the platform's uploaded-files settings pages.

Uploads go through the settings upload page rather than the editor, so the
article body is never touched by an upload. Deletion has no public API and is
driven through the uploaded-files list, one row at a time.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from qic.config.constants import (
    ASSET_HOST_MARKER,
    UPLOAD_PAGE_URL,
    UPLOADED_IMAGES_URL,
)
from qic.config.settings import BrowserConfig, DeletionConfig
from qic.exceptions import (
    AssetStoreError,
    PollTimeoutError,
    QuotaExceededError,
    UploadFailedError,
)
from qic.image.optimizer import is_upload_supported_extension
from qic.utils.logging import get_logger
from qic.utils.polling import poll_until

if TYPE_CHECKING:
    from playwright.async_api import Page, Response

log = get_logger(__name__)

ASSET_URL_RE = re.compile(r"https://qiita-image-store\.s3\.[^\s\"'\\)]+")
VALID_ASSET_URL_RE = re.compile(
    r"^https://qiita-image-store\.s3\.[^/]+\.amazonaws\.com/0/\d+/"
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\.[a-z0-9]+$",
    re.IGNORECASE,
)
QUOTA_MESSAGE = "Monthly limit exceeded"
UPLOAD_POLICY_PATH = "/api/upload/policies"

LIST_ROOT = "[id^='UploadedImagesSettings-react-component']"
UPLOAD_ROOT = "[id^='UploadingImagesSettings-react-component']"
DELETE_LABELS = re.compile(r"削除|Delete", re.IGNORECASE)
CONFIRM_LABELS = re.compile(r"削除する|Delete|OK|はい", re.IGNORECASE)
EMPTY_LABELS = re.compile(r"ありません|存在しません")

_COLLECT_ASSET_URLS_JS = """
(root) => {
  const scope = root ? document.querySelector(root) : document;
  if (!scope) return [];
  const out = [];
  const push = (v) => { if (typeof v === "string" && v.startsWith("https://qiita-image-store.s3.")) out.push(v); };
  for (const el of scope.querySelectorAll("[href],[src],[data-src],[srcset]")) {
    push(el.getAttribute("href"));
    push(el.getAttribute("src"));
    push(el.getAttribute("data-src"));
    const srcset = el.getAttribute("srcset");
    if (typeof srcset === "string") for (const part of srcset.split(",")) push(part.trim().split(/\\s+/)[0]);
  }
  return [...new Set(out)];
}
"""

_REMAINING_QUOTA_JS = """
() => {
  const el = document.querySelector("script.js-react-on-rails-component[data-component-name='UploadingImagesSettings']");
  if (!el) return null;
  try {
    const v = JSON.parse(el.textContent || "").monthlyRemainingImageUploadableSize;
    return typeof v === "number" ? v : null;
  } catch (e) { return null; }
}
"""


def parse_asset_key(url: str) -> str | None:
    """Return the UUID basename of an image-store URL, or None.

    Example:
        >>> parse_asset_key("https://qiita-image-store.s3.ap-northeast-1.amazonaws.com/0/1/aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee.png")
        'aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee'
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if ASSET_HOST_MARKER not in (parsed.hostname or ""):
        return None
    key = parsed.path.rsplit("/", 1)[-1].split(".")[0]
    if len(key) < 10:
        return None
    return key


def extract_asset_urls(text: str) -> list[str]:
    """Find image-store URLs in arbitrary text, such as a JSON response body."""
    return ASSET_URL_RE.findall(text or "")


def is_valid_asset_url(url: str) -> bool:
    """True for a complete image-store object URL."""
    return bool(VALID_ASSET_URL_RE.match(url))


def is_quota_error(status: int, body: str) -> bool:
    """True when an upload policy response reports the monthly limit."""
    return status == 413 or QUOTA_MESSAGE.lower() in (body or "").lower()


def quota_shortfall(remaining: int | None, file_size: int) -> str | None:
    """Describe why the remaining monthly quota cannot take a file, or None."""
    if remaining is None:
        return None
    if remaining <= 0:
        return f"{QUOTA_MESSAGE} (remaining=0)"
    if file_size > remaining:
        return f"{QUOTA_MESSAGE} (remaining={remaining} bytes, file={file_size} bytes)"
    return None


async def run_deletion_passes(
    keys: Sequence[str],
    scan_pass: Callable[[int, set[str]], Awaitable[set[str]]],
    *,
    extra_passes: int = 1,
    retry_credits: int = 1,
) -> tuple[list[str], list[str]]:
    """Drive full list scans until every key is deleted or the retry budget is spent.

    Pass 0 targets every key. Each later pass targets only the remaining keys
    that still have retry credit, spending one credit per key.

    Args:
        keys: Asset keys to delete
        scan_pass: Scans the whole list once for the given target keys and
            returns the keys it deleted
        extra_passes: Maximum number of retry passes after pass 0
        retry_credits: Retry passes each key may take part in

    Returns:
        Tuple of (deleted keys, keys left undeleted), both in input order
    """
    ordered = list(dict.fromkeys(keys))
    remaining = set(ordered)
    credits = dict.fromkeys(ordered, retry_credits)

    pass_index = 0
    targets = set(remaining)
    while targets:
        log.info("delete_originals.pass_start", pass_index=pass_index, remaining=len(targets))
        deleted = await scan_pass(pass_index, set(targets))
        remaining -= deleted
        if not remaining or pass_index >= extra_passes:
            break
        targets = set()
        for key in remaining:
            if credits[key] > 0:
                credits[key] -= 1
                targets.add(key)
        pass_index += 1
        if targets:
            log.warning("delete_originals.retry_pass_start", pass_index=pass_index, retry_count=len(targets))

    for key in ordered:
        if key in remaining:
            log.warning("delete_originals.not_found_after_paging", key=key)
    return [k for k in ordered if k not in remaining], [k for k in ordered if k in remaining]


class PlaywrightAssetStore:
    """`AssetStore` driving the uploaded-files settings UI on its own page."""

    def __init__(
        self,
        page: Page,
        config: BrowserConfig | None = None,
        deletion: DeletionConfig | None = None,
    ) -> None:
        self.page = page
        self.config = config or BrowserConfig()
        self.deletion = deletion or DeletionConfig()

    def asset_key(self, url: str) -> str | None:
        return parse_asset_key(url)

    async def _assert_logged_in(self) -> None:
        url = self.page.url
        title = (await self.page.title()) or ""
        if "/login" in url or "oauth" in url or "log in" in title.lower():
            raise AssetStoreError(f"Not logged in to the platform ({url}); log in in the browser first")

    async def _wait_list_ready(self, timeout: float = 30.0) -> None:
        page = self.page
        await self._assert_logged_in()
        root = page.locator(LIST_ROOT).first
        await root.wait_for(state="attached", timeout=timeout * 1000)

        async def rendered() -> bool:
            await self._assert_logged_in()
            links = await root.locator("a[href^='https://qiita-image-store.s3.']").count()
            buttons = await root.get_by_role("button", name=DELETE_LABELS).count()
            empty = await root.get_by_text(EMPTY_LABELS).count()
            return links > 0 or buttons > 0 or empty > 0

        await poll_until(
            rendered,
            bool,
            interval=0.25,
            timeout=timeout,
            description="uploaded images list to render",
            heartbeat=5.0,
        )

    async def _collect_list_urls(self) -> list[str]:
        return await self.page.evaluate(_COLLECT_ASSET_URLS_JS, LIST_ROOT)

    async def _list_fingerprint(self) -> str | None:
        urls = await self._collect_list_urls()
        return "|".join(urls[:8]) or None

    async def _collect_list_keys(self) -> set[str]:
        return {key for url in await self._collect_list_urls() if (key := parse_asset_key(url))}

    async def upload(self, path: Path) -> str:
        """Upload through the settings page and return the new image-store URL.

        The new URL is taken from the upload network traffic when possible,
        otherwise from the difference between the list before and after.

        Raises:
            QuotaExceededError: The monthly upload quota cannot take the file
            UploadFailedError: No new URL could be identified
        """
        page = self.page
        if not path.is_file():
            raise UploadFailedError(path, "file does not exist")
        if not is_upload_supported_extension(path):
            raise UploadFailedError(path, f"unsupported extension {path.suffix or '(none)'}")
        size = path.stat().st_size

        await page.goto(UPLOADED_IMAGES_URL, wait_until="domcontentloaded")
        await self._wait_list_ready()
        before = set(await self._collect_list_urls())
        log.info("upload.existing_urls", count=len(before))

        await page.goto(UPLOAD_PAGE_URL, wait_until="domcontentloaded")
        await self._assert_logged_in()
        shortfall = quota_shortfall(await page.evaluate(_REMAINING_QUOTA_JS), size)
        if shortfall:
            raise QuotaExceededError(path, shortfall)

        seen: dict[str, Any] = {"quota": None, "urls": []}

        async def on_response(response: Response) -> None:
            url = response.url
            try:
                if UPLOAD_POLICY_PATH in url and response.status >= 400:
                    body = await response.text()
                    log.warning("upload.policy_failed", status=response.status, body=body)
                    if is_quota_error(response.status, body):
                        seen["quota"] = body or QUOTA_MESSAGE
                elif "qiita-image-store.s3." in url:
                    seen["urls"].append(url.split("?", 1)[0])
                elif "/upload" in url:
                    seen["urls"].extend(extract_asset_urls(await response.text()))
            except Exception as e:
                log.debug("upload.response_unreadable", url=url, error=str(e))

        def fresh_url() -> str | None:
            for url in seen["urls"]:
                if is_valid_asset_url(url) and url not in before:
                    return url
            return None

        page.on("response", on_response)
        try:
            await self._set_file(path)
            log.info("upload.started", path=str(path), bytes=size)

            async def network_state() -> str | None:
                if seen["quota"] is not None:
                    return "quota"
                return fresh_url()

            try:
                state = await poll_until(
                    network_state,
                    lambda s: s is not None,
                    interval=0.25,
                    timeout=min(8.0, self.config.upload_timeout),
                    description="upload response",
                )
            except PollTimeoutError:
                state = None
        finally:
            page.remove_listener("response", on_response)

        if state == "quota":
            raise QuotaExceededError(path, str(seen["quota"]))
        if state:
            log.info("upload.done", path=str(path), url=state, source="network")
            return state
        return await self._find_new_url_in_list(path, before)

    async def _set_file(self, path: Path) -> None:
        page = self.page
        choose = page.locator(UPLOAD_ROOT).first.get_by_role("button", name=re.compile("画像を選択")).first
        if await choose.count() > 0:
            try:
                async with page.expect_file_chooser(timeout=10_000) as chooser_info:
                    await choose.click(force=True)
                chooser = await chooser_info.value
                await chooser.set_files(str(path))
                return
            except Exception as e:
                log.warning("upload.file_chooser_failed", error=str(e))

        file_input = page.locator("input[type='file']").first
        if await file_input.count() == 0:
            raise UploadFailedError(path, "file input not found on upload page")
        await file_input.set_input_files(str(path))

    async def _find_new_url_in_list(self, path: Path, before: set[str]) -> str:
        await self.page.goto(UPLOADED_IMAGES_URL, wait_until="domcontentloaded")

        async def new_url() -> str | None:
            await self._wait_list_ready()
            for url in await self._collect_list_urls():
                if url not in before and is_valid_asset_url(url):
                    return url
            return None

        try:
            url = await poll_until(
                new_url,
                lambda u: u is not None,
                interval=0.5,
                timeout=self.config.upload_timeout,
                description="uploaded file to appear in the list",
            )
        except PollTimeoutError as e:
            raise UploadFailedError(path, str(e)) from e
        log.info("upload.done", path=str(path), url=url, source="list_diff")
        return url

    async def delete(self, keys: Sequence[str]) -> list[str]:
        """Delete uploaded files by key, best effort.

        Keys not found after the retry budget are logged and left in place.
        """
        if not keys:
            log.info("delete_originals.nothing_to_delete")
            return []
        try:
            deleted, missing = await run_deletion_passes(
                keys,
                self._scan_pass,
                extra_passes=self.deletion.extra_passes,
                retry_credits=self.deletion.retry_credits,
            )
        except AssetStoreError:
            raise
        except Exception as e:
            raise AssetStoreError(f"Deleting uploaded files failed: {e}") from e
        log.info("delete_originals.done", deleted=len(deleted), missing=len(missing))
        return deleted

    async def _scan_pass(self, pass_index: int, targets: set[str]) -> set[str]:
        """Scan list pages from page 1, deleting every target seen."""
        page = self.page
        deleted: set[str] = set()
        await page.goto(UPLOADED_IMAGES_URL, wait_until="domcontentloaded")

        for page_number in range(1, self.deletion.max_pages + 1):
            await self._wait_list_ready()
            on_page = await self._collect_list_keys()
            hits = [k for k in sorted(targets - deleted) if k in on_page]

            if not hits:
                # Rows render lazily; reload once before moving on
                fingerprint = await self._list_fingerprint()
                await page.reload(wait_until="domcontentloaded")
                await self._wait_list_ready()
                if await self._list_fingerprint() != fingerprint:
                    on_page = await self._collect_list_keys()
                    hits = [k for k in sorted(targets - deleted) if k in on_page]

            log.info(
                "delete_originals.page_hits",
                pass_index=pass_index,
                page=page_number,
                keys_on_page=len(on_page),
                hits=len(hits),
            )
            for key in hits:
                try:
                    removed = await self._delete_row(key)
                except Exception as e:
                    # Left for the retry pass
                    log.warning("delete_originals.row_failed", key=key, error=str(e))
                    removed = False
                if removed:
                    deleted.add(key)
                    await self._wait_list_ready()

            if deleted >= targets:
                return deleted
            if not await self._goto_list_page(page_number + 1):
                log.info("delete_originals.reached_end", pass_index=pass_index, page=page_number)
                return deleted

        log.info("delete_originals.max_pages_reached", pass_index=pass_index, max_pages=self.deletion.max_pages)
        return deleted

    async def _goto_list_page(self, page_number: int) -> bool:
        response = await self.page.goto(
            f"{UPLOADED_IMAGES_URL}?page={page_number}", wait_until="domcontentloaded"
        )
        if response is not None and response.status >= 400:
            return False
        if not self.page.url.startswith(UPLOADED_IMAGES_URL):
            return False
        return await self.page.locator(LIST_ROOT).count() > 0

    async def _delete_row(self, key: str) -> bool:
        """Click the delete button of the row showing `key` and confirm."""
        page = self.page
        selector = f"[href*='{key}'],[src*='{key}'],[data-src*='{key}'],[srcset*='{key}']"
        hit = page.locator(selector).first
        if await hit.count() == 0:
            return False

        await page.keyboard.press("Escape")
        await hit.scroll_into_view_if_needed(timeout=5000)
        row = hit.locator("xpath=ancestor-or-self::*[self::li or self::tr or self::div][1]")
        button = row.get_by_role("button", name=DELETE_LABELS).first
        if await button.count() == 0:
            button = hit.locator("xpath=ancestor::*[1]").get_by_role("button", name=DELETE_LABELS).first
        if await button.count() == 0:
            log.warning("delete_originals.button_not_found", key=key)
            return False

        async def accept_dialog(dialog: Any) -> None:
            log.info("delete_originals.native_dialog", key=key, message=dialog.message)
            await dialog.accept()

        page.once("dialog", accept_dialog)
        await button.click(force=True, timeout=5000)

        modal = page.locator("dialog[open], [role='dialog'], [aria-modal='true']").first
        try:
            await modal.wait_for(state="visible", timeout=2000)
            modal_visible = True
        except Exception:
            modal_visible = False
        if modal_visible:
            confirm = modal.get_by_role("button", name=CONFIRM_LABELS).first
            if await confirm.count() > 0:
                await confirm.click(force=True, timeout=5000)
            else:
                log.warning("delete_originals.confirm_not_found", key=key)

        async def still_listed() -> bool:
            return await page.locator(f"a[href*='{key}'], img[src*='{key}']").count() > 0

        try:
            await poll_until(
                still_listed,
                lambda listed: not listed,
                interval=0.5,
                timeout=15.0,
                description=f"uploaded file {key} to disappear",
                heartbeat=5.0,
            )
        except PollTimeoutError:
            await page.reload(wait_until="domcontentloaded")
            await self._wait_list_ready()
            if await still_listed():
                log.warning("delete_originals.still_present", key=key)
                return False
        log.info("delete_originals.deleted", key=key)
        return True

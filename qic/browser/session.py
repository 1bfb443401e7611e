"""Playwright browser lifecycle with persisted login state."""

from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

from qic.config.settings import BrowserConfig
from qic.utils.fs import ensure_directory
from qic.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

log = get_logger(__name__)


class BrowserSession:
    """Chromium with one context whose storage state survives across runs.

    The storage state is loaded when the file exists and written back on exit,
    including when the run failed, so a completed manual login is never lost.

    Example:
        >>> async with BrowserSession(config) as browser:
        ...     page = await browser.new_page()
    """

    def __init__(self, config: BrowserConfig, storage_state_path: str | None = None) -> None:
        self.config = config
        path = storage_state_path or config.storage_state_path
        self.storage_state_path = Path(path).resolve() if path else None
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close(failed=exc is not None)

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("BrowserSession is not started")
        return self._context

    async def start(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

        context_options: dict[str, Any] = {}
        if self.storage_state_path is not None:
            if self.storage_state_path.exists():
                context_options["storage_state"] = str(self.storage_state_path)
            else:
                log.warning(
                    "browser.storage_state_missing",
                    path=str(self.storage_state_path),
                    hint="log in in the opened browser; state is saved on exit",
                )
        self._context = await self._browser.new_context(**context_options)
        self._context.set_default_timeout(self.config.default_timeout * 1000)
        log.info("browser.started", headless=self.config.headless)

    async def new_page(self) -> Page:
        """Open a page in the shared context."""
        return await self.context.new_page()

    async def save_storage_state(self, when: str = "on_success") -> None:
        if self._context is None or self.storage_state_path is None:
            return
        try:
            ensure_directory(self.storage_state_path.parent)
            await self._context.storage_state(path=str(self.storage_state_path))
            log.info("browser.storage_state_saved", path=str(self.storage_state_path), when=when)
        except Exception as e:
            log.warning(
                "browser.storage_state_save_failed",
                path=str(self.storage_state_path),
                error=str(e),
            )

    async def close(self, failed: bool = False) -> None:
        await self.save_storage_state(when="on_error" if failed else "on_success")
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

"""Read the public article page to confirm an edit went live."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

from qic.services.protocols import PublishCheck
from qic.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page

log = get_logger(__name__)


def evaluate_published_html(html: str, new_urls: Sequence[str], old_urls: Sequence[str]) -> PublishCheck:
    """Check that every new URL and none of the old ones appear in the page."""
    has_all_new = all(url in html for url in new_urls)
    has_any_old = any(url in html for url in old_urls)
    return PublishCheck(ok=has_all_new and not has_any_old, has_all_new=has_all_new, has_any_old=has_any_old)


class PlaywrightPublishChecker:
    """`PublishChecker` that loads the public article URL in a page."""

    def __init__(self, page: Page, article_url: str, render_delay: float = 1.0) -> None:
        self.page = page
        self.article_url = article_url
        self.render_delay = render_delay

    async def check(self, new_urls: Sequence[str], old_urls: Sequence[str]) -> PublishCheck:
        await self.page.goto(self.article_url, wait_until="domcontentloaded")
        await asyncio.sleep(self.render_delay)
        result = evaluate_published_html(await self.page.content(), new_urls, old_urls)
        log.info("publish.check", has_all_new=result.has_all_new, has_any_old=result.has_any_old)
        return result

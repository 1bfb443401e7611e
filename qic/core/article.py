"""Article URL handling for the blogging platform."""

from urllib.parse import quote, urlparse

from qic.config.constants import PLATFORM_BASE_URL, PLATFORM_HOST
from qic.exceptions import InvalidArticleUrlError


def parse_item_id(article_url: str) -> str:
    """Extract the item id from ``https://qiita.com/<user>/items/<id>``.

    Raises:
        InvalidArticleUrlError: The URL is malformed, on another host or has
            no item id
    """
    try:
        parsed = urlparse(article_url)
    except ValueError as e:
        raise InvalidArticleUrlError(article_url, "Invalid URL") from e
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidArticleUrlError(article_url, "Invalid URL")

    if parsed.hostname != PLATFORM_HOST:
        raise InvalidArticleUrlError(article_url, f"Not a {PLATFORM_HOST} URL")

    parts = [p for p in parsed.path.split("/") if p]
    if "items" not in parts:
        raise InvalidArticleUrlError(article_url, "Cannot parse item_id from URL")
    idx = parts.index("items")
    if len(parts) < idx + 2:
        raise InvalidArticleUrlError(article_url, "Cannot parse item_id from URL")
    return parts[idx + 1]


def to_edit_url(item_id: str) -> str:
    """Editor URL for an item id."""
    return f"{PLATFORM_BASE_URL}/items/{quote(item_id, safe='')}/edit"

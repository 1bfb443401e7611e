"""Image reference extraction and exact literal URL substitution."""

import re
from collections.abc import Mapping
from urllib.parse import urlparse

# ![alt](url) / ![alt](<url>) / ![alt](url "title")
_MARKDOWN_IMAGE_RE = re.compile(r"!\[[^\]]*\]\((\S+?)(?:\s+[\"'][^\"']*[\"'])?\)")
# <img ... src="url" ...>
_HTML_IMAGE_RE = re.compile(
    r"<img\b[^>]*?\bsrc\s*=\s*[\"']([^\"']+)[\"'][^>]*?>",
    re.IGNORECASE,
)


def _strip_angle_brackets(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("<") and raw.endswith(">"):
        return raw[1:-1].strip()
    return raw


def is_http_url(value: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_image_urls(text: str) -> list[str]:
    """Extract absolute http(s) image URLs from markdown and HTML references.

    URLs are returned once each, in order of first occurrence. Markdown
    references are collected before HTML ``<img>`` tags.
    """
    candidates: list[str] = []
    for match in _MARKDOWN_IMAGE_RE.finditer(text):
        candidates.append(_strip_angle_brackets(match.group(1)))
    for match in _HTML_IMAGE_RE.finditer(text):
        candidates.append(match.group(1).strip())

    seen: set[str] = set()
    urls: list[str] = []
    for url in candidates:
        if url in seen or not is_http_url(url):
            continue
        seen.add(url)
        urls.append(url)
    return urls


def substitute(text: str, mapping: Mapping[str, str]) -> str:
    """Replace every occurrence of each old URL with its new URL.

    Plain substring replacement, applied entry by entry in mapping order.
    URLs contain regex metacharacters, so no pattern matching is involved.
    """
    result = text
    for old, new in mapping.items():
        if not old:
            continue
        result = result.replace(old, new)
    return result

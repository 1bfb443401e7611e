"""File system utilities for QIC.

Provides safe filenames, append-only artifact writes and atomic file writes.
"""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any
from urllib.parse import urlparse

from qic.utils.logging import get_logger

log = get_logger(__name__)


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(filename: str, max_length: int = 255) -> str:
    """Create a safe filename by removing/replacing problematic characters.

    Args:
        filename: Original filename
        max_length: Maximum filename length

    Returns:
        Safe filename
    """
    replacements = {
        "/": "_",
        "\\": "_",
        ":": "_",
        "*": "_",
        "?": "_",
        '"': "_",
        "<": "_",
        ">": "_",
        "|": "_",
        "\0": "",
    }

    result = filename
    for old, new in replacements.items():
        result = result.replace(old, new)

    result = result.strip(". ")

    if len(result) > max_length:
        stem = Path(result).stem
        suffix = Path(result).suffix
        max_stem = max_length - len(suffix)
        result = stem[:max_stem] + suffix

    return result


def get_unique_path(path: Path) -> Path:
    """Get a unique path by adding a counter suffix if path exists."""
    if not path.exists():
        return path

    stem = path.stem
    suffix = path.suffix
    parent = path.parent

    counter = 1
    while True:
        new_path = parent / f"{stem}_{counter}{suffix}"
        if not new_path.exists():
            return new_path
        counter += 1


def timestamp_slug(now: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2026-01-09T14-30-52-123Z``."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def guess_extension_from_url(url: str) -> str:
    """Guess a file extension from the URL path (``.img`` when unknown)."""
    try:
        name = Path(urlparse(url).path).name
    except ValueError:
        return ".img"
    ext = Path(name).suffix
    if not ext or len(ext) > 10:
        return ".img"
    return ext


def write_new_file(path: Path, content: str | bytes, encoding: str = "utf-8") -> Path:
    """Write content to a file that must not exist yet.

    Append-only stores (backups, audit artifacts) never overwrite: a name
    collision gets a counter suffix instead.

    Returns:
        The path actually written
    """
    ensure_directory(path.parent)
    target = get_unique_path(path)
    if isinstance(content, bytes):
        with open(target, "xb") as f:
            f.write(content)
    else:
        with open(target, "x", encoding=encoding) as f:
            f.write(content)
    return target


@contextmanager
def atomic_write(
    file_path: Path,
    mode: str = "w",
    encoding: str | None = "utf-8",
    newline: str | None = None,
) -> Iterator[IO[Any]]:
    """Context manager for atomic file writes.

    Writes to a temp file first, then atomically moves to target.
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_name = tempfile.mkstemp(
        dir=file_path.parent,
        prefix=f".{file_path.name}.",
    )
    temp_path = Path(temp_name)

    try:
        os.close(temp_fd)

        if "b" in mode:
            with open(temp_path, mode) as f:
                yield f
        else:
            with open(temp_path, mode, encoding=encoding, newline=newline) as f:
                yield f

        temp_path.replace(file_path)

    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def format_size(size: int | float) -> str:
    """Format byte size as human-readable string."""
    size_f = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_f < 1024:
            return f"{size_f:.1f} {unit}"
        size_f /= 1024
    return f"{size_f:.1f} PB"

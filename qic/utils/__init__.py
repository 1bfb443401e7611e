"""Utility module for QIC."""

from qic.utils.concurrency import ConcurrencyManager, TaskResult
from qic.utils.fs import (
    atomic_write,
    ensure_directory,
    format_size,
    get_unique_path,
    guess_extension_from_url,
    safe_filename,
    timestamp_slug,
    write_new_file,
)
from qic.utils.polling import poll_until

__all__ = [
    # Concurrency
    "ConcurrencyManager",
    "TaskResult",
    # File system
    "atomic_write",
    "ensure_directory",
    "format_size",
    "get_unique_path",
    "guess_extension_from_url",
    "safe_filename",
    "timestamp_slug",
    "write_new_file",
    # Polling
    "poll_until",
]

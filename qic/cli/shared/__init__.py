"""Shared CLI utilities for the run and rewrite commands."""

from qic.cli.shared.executor import (
    build_run_options,
    execute,
    print_run_summary,
    setup_command_logging,
)

__all__ = [
    "build_run_options",
    "execute",
    "print_run_summary",
    "setup_command_logging",
]

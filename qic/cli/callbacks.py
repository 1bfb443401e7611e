"""CLI callback functions."""

import re
from pathlib import Path

import typer

from qic.config.constants import SCOPES

_PAIR_SEPARATOR = re.compile(r"=(?=https?://)")


def validate_output_dir(value: Path | None) -> Path | None:
    """Validate the output directory path."""
    if value is None:
        return None

    if value.exists() and not value.is_dir():
        raise typer.BadParameter(f"Output path exists but is not a directory: {value}")

    return value


def validate_scope(value: str | None) -> str | None:
    """Validate the image selection scope."""
    if value is not None and value not in SCOPES:
        raise typer.BadParameter(f"Invalid scope '{value}'. Options: {', '.join(SCOPES)}")

    return value


def split_substitution_pair(value: str) -> tuple[str, str]:
    """Split ``OLD=NEW``.

    URLs may contain ``=`` in their query, so the separator is the first ``=``
    followed by an http(s) URL, falling back to the first ``=``.
    """
    match = _PAIR_SEPARATOR.search(value)
    if match:
        return value[: match.start()], value[match.end() :]
    old, _, new = value.partition("=")
    return old, new


def validate_substitution_pairs(values: list[str] | None) -> list[str]:
    """Validate ``OLD=NEW`` substitution pairs."""
    for value in values or []:
        old, new = split_substitution_pair(value)
        if not old or not new:
            raise typer.BadParameter(f"Expected OLD=NEW, got '{value}'")

    return values or []


def parse_substitution_pairs(values: list[str]) -> dict[str, str]:
    """Turn validated pairs into an ordered mapping."""
    return dict(split_substitution_pair(value) for value in values)

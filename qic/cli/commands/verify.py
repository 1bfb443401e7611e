"""Verify command: check that two documents differ only by URL substitutions."""

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from qic.cli.callbacks import parse_substitution_pairs, validate_substitution_pairs
from qic.markdown import verify_only_expected_changes

console = Console()


def _read(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def verify(
    original: Annotated[
        Path,
        typer.Argument(help="Document before the edit.", exists=True, dir_okay=False, readable=True),
    ],
    current: Annotated[
        Path,
        typer.Argument(help="Document after the edit.", exists=True, dir_okay=False, readable=True),
    ],
    mapping: Annotated[
        list[str] | None,
        typer.Option(
            "--map",
            "-m",
            help="Expected substitution OLD=NEW (repeatable, applied in order).",
            callback=validate_substitution_pairs,
        ),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
) -> None:
    """Exit 0 when CURRENT equals ORIGINAL with only the given URL substitutions.

    Examples:
        qic verify before.md after.md --map https://a/x.png=https://b/y.png
    """
    result = verify_only_expected_changes(
        _read(original), _read(current), parse_substitution_pairs(mapping or [])
    )

    if as_json:
        console.print_json(json.dumps(result.to_dict(), ensure_ascii=False))
    elif result.ok:
        console.print("[bold green]OK[/bold green] only the expected URL changes")
    else:
        console.print(
            f"[bold red]Mismatch[/bold red] {result.reason} at index {result.first_diff_index}"
        )
        console.print("[bold]expected:[/bold]")
        console.print(result.expected_context, markup=False, highlight=False)
        console.print("[bold]current:[/bold]")
        console.print(result.current_context, markup=False, highlight=False)

    if not result.ok:
        raise typer.Exit(1)

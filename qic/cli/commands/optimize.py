"""Optimize command: fit one image under a byte budget."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from qic.config import get_settings
from qic.exceptions import QicError
from qic.image import ImageOptimizer
from qic.utils.fs import format_size
from qic.utils.logging import get_logger, setup_logging

console = Console()
log = get_logger(__name__)


def optimize(
    input_file: Annotated[
        Path,
        typer.Argument(
            help="Source image.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    output_file: Annotated[
        Path,
        typer.Argument(help="Output path; .jpg/.jpeg or .png selects the encoding.", dir_okay=False),
    ],
    target_kb: Annotated[
        float | None,
        typer.Option("--target-kb", help="Byte budget in KB.", min=1),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
) -> None:
    """Re-encode an image to the largest size and quality under the budget.

    Examples:
        qic optimize shot.png small.png --target-kb 300
        qic optimize photo.webp photo.jpg
    """
    settings = get_settings()
    setup_logging(level="DEBUG" if verbose else "WARNING")
    target_bytes = round((target_kb if target_kb is not None else settings.run.target_kb) * 1024)

    optimizer = ImageOptimizer(settings.optimizer)
    try:
        asset = optimizer.optimize_to_file(input_file, output_file, target_bytes)
    except QicError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[bold green]Optimized[/bold green] {input_file.name} -> {output_file}")
    console.print(
        f"  {asset.format} {asset.width}x{asset.height} scale={asset.scale} "
        f"quality={asset.quality} size={format_size(asset.byte_size)}"
    )
    if asset.fallback:
        console.print(
            f"[yellow]Warning:[/yellow] nothing fit {format_size(target_bytes)}; "
            "kept the minimum-scale fallback"
        )

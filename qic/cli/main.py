"""Main CLI application using Typer."""

from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console

from qic import __version__
from qic.cli.commands.optimize import optimize
from qic.cli.commands.rewrite import rewrite
from qic.cli.commands.run import run
from qic.cli.commands.verify import verify

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="qic",
    help="Shrink oversized article images and safely swap in the re-uploaded URLs.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

app.command(name="run", help="Optimize and re-upload the images of a published article.")(run)
app.command(name="rewrite", help="Run the same workflow on a local markdown file.")(rewrite)
app.command(name="optimize", help="Fit a single image under a byte budget.")(optimize)
app.command(name="verify", help="Check that a document changed only by URL substitutions.")(verify)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]qic[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """qic - byte-budget image optimizer and safe URL rewriter for blog articles.

    Downloads the images an article references, re-encodes the oversized ones
    under a size budget, uploads them and replaces only their URLs, verifying
    nothing else in the body changed before publishing.
    """
    pass


if __name__ == "__main__":
    app()

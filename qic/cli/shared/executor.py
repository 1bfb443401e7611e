"""Run execution shared by the `run` and `rewrite` commands."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime as dt
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from qic.config.settings import QicSettings
from qic.core.pipeline import RunOptions, RunResult, RunState
from qic.exceptions import QicError, VerificationError
from qic.utils.logging import get_logger, setup_task_logging

log = get_logger(__name__)

T = TypeVar("T")


def setup_command_logging(
    settings: QicSettings,
    prefix: str,
    verbose: bool,
    log_file: Path | None = None,
) -> Path:
    """Start task logging and record the effective configuration."""
    task_id, log_path = setup_task_logging(
        log_dir=settings.get_log_dir(),
        prefix=prefix,
        verbose=verbose,
        log_file=log_file,
    )
    if verbose:
        log.info("Logs will be saved to", log_file=str(log_path))
    log.info("Task Configuration", task_id=task_id, config=settings.model_dump())
    return log_path


def build_run_options(
    settings: QicSettings,
    document_id: str,
    scope: str | None = None,
    target_kb: float | None = None,
    out: Path | None = None,
    concurrency: int | None = None,
    dry_run: bool = False,
    delete_original: bool = False,
) -> RunOptions:
    """Merge CLI flags over loaded settings for one run."""
    run_update: dict[str, object] = {}
    if scope is not None:
        run_update["scope"] = scope
    if target_kb is not None:
        run_update["target_kb"] = target_kb
    if concurrency is not None:
        run_update["concurrency"] = concurrency
    if dry_run:
        run_update["dry_run"] = True
    if delete_original:
        run_update["delete_original"] = True

    update: dict[str, object] = {"run": settings.run.model_copy(update=run_update)}
    if out is not None:
        update["output"] = settings.output.model_copy(update={"out_dir": str(out)})
    return RunOptions.from_settings(settings.model_copy(update=update), document_id)


def execute(
    action: Callable[[], Awaitable[T]],
    console: Console,
    description: str,
) -> T:
    """Run an async command body, mapping failures to exit codes.

    Interrupts exit with 130; any error exits with 1 after being logged.
    """
    try:
        return asyncio.run(action())
    except KeyboardInterrupt:
        log.warning("Task Interrupted by KeyboardInterrupt", interrupted_at=dt.now().isoformat())
        console.print("\n[yellow]Interrupted. Exiting...[/yellow]")
        raise typer.Exit(130) from None
    except VerificationError as e:
        log.error(f"{description} aborted", error=str(e), result=e.result.to_dict())
        console.print(f"[red]Error:[/red] {e}")
        for name, path in e.artifacts.items():
            console.print(f"  {name}: {path}")
        raise typer.Exit(1) from e
    except QicError as e:
        log.error(f"{description} failed", error=str(e))
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        log.error(f"{description} failed", error=str(e), exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


_STATE_STYLES = {
    RunState.COMMITTED: "green",
    RunState.ORIGINALS_DELETED: "green",
    RunState.DRY_RUN_RESTORED: "cyan",
    RunState.NO_OP: "yellow",
}


def print_run_summary(console: Console, result: RunResult, log_path: Path | None = None) -> None:
    """Display the outcome of a run as a table."""
    style = _STATE_STYLES.get(result.state, "white")
    table = Table(title="Run Summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    table.add_row("State", f"[{style}]{result.state.value}[/{style}]")
    if result.backup_path is not None:
        table.add_row("Backup", str(result.backup_path))
    table.add_row("Selected", str(len(result.selected)))
    table.add_row("Replaced", f"[green]{len(result.substitutions)}[/green]")
    if result.skipped:
        table.add_row("Skipped (403)", f"[yellow]{len(result.skipped)}[/yellow]")
    if result.published_ok is not None:
        verified = "[green]yes[/green]" if result.published_ok else "[red]no[/red]"
        table.add_row("Published", verified)
    if result.deleted:
        table.add_row("Originals Deleted", str(len(result.deleted)))
    if log_path is not None:
        table.add_row("Log", str(log_path))
    console.print(table)

    for old, new in result.substitutions.items():
        console.print(f"  [dim]{old}[/dim] -> {new}")
    for url in result.skipped:
        console.print(f"  [yellow]skipped[/yellow] {url}")

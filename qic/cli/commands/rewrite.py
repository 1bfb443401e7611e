"""Rewrite command: run the pipeline on a local markdown file."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from qic.cli.callbacks import validate_output_dir, validate_scope
from qic.cli.shared import build_run_options, execute, print_run_summary, setup_command_logging
from qic.config import get_settings
from qic.config.constants import SCOPES
from qic.core.pipeline import RunResult, run_pipeline
from qic.image import HttpDownloader, ImageOptimizer
from qic.services import LocalDirectoryAssetStore, LocalFileEditingSession, LocalPublishChecker
from qic.utils.logging import get_logger, run_context

console = Console()
log = get_logger(__name__)


def rewrite(
    markdown_file: Annotated[
        Path,
        typer.Argument(
            help="Markdown file to rewrite in place.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    assets_dir: Annotated[
        Path,
        typer.Option(
            "--assets-dir",
            help="Directory that receives the re-encoded images.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ],
    base_url: Annotated[
        str,
        typer.Option("--base-url", help="Public URL under which --assets-dir is served."),
    ],
    published: Annotated[
        Path | None,
        typer.Option(
            "--published",
            help="Copy the file here on submit and verify it before deleting originals.",
            dir_okay=False,
            resolve_path=True,
        ),
    ] = None,
    quota_kb: Annotated[
        float | None,
        typer.Option("--quota-kb", help="Refuse uploads once the assets directory holds this much."),
    ] = None,
    scope: Annotated[
        str | None,
        typer.Option(
            "--scope",
            help=f"Which images to process. Options: {', '.join(SCOPES)}",
            callback=validate_scope,
        ),
    ] = None,
    target_kb: Annotated[
        float | None,
        typer.Option("--target-kb", help="Target size per image in KB.", min=1),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option(
            "--out",
            "-o",
            help="Output directory for originals, optimized images, backups and logs.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            callback=validate_output_dir,
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Write the run log to this file.", dir_okay=False),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-c", help="Parallel download/optimize workers.", min=1),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Upload and verify, then restore the original file."),
    ] = False,
    delete_original: Annotated[
        bool,
        typer.Option(
            "--delete-original",
            help="Delete replaced assets that live under --base-url once verified.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
) -> None:
    """Shrink the images referenced by a local markdown file.

    Examples:
        qic rewrite post.md --assets-dir ./public/img --base-url https://example.com/img
        qic rewrite post.md --assets-dir ./img --base-url https://cdn.example.com --dry-run
    """
    settings = get_settings()
    options = build_run_options(
        settings,
        document_id=markdown_file.stem,
        scope=scope,
        target_kb=target_kb,
        out=out,
        concurrency=concurrency,
        dry_run=dry_run,
        delete_original=delete_original,
    )
    log_path = setup_command_logging(settings, "rewrite", verbose, log_file)

    session = LocalFileEditingSession(markdown_file, published_path=published)
    store = LocalDirectoryAssetStore(
        assets_dir,
        base_url,
        quota_bytes=round(quota_kb * 1024) if quota_kb is not None else None,
    )
    checker = LocalPublishChecker(published) if published is not None else None

    async def action() -> RunResult:
        with run_context(article=str(markdown_file)):
            async with HttpDownloader(settings.download) as downloader:
                return await run_pipeline(
                    options,
                    session,
                    store,
                    downloader,
                    publish_checker=checker,
                    optimizer=ImageOptimizer(settings.optimizer),
                )

    result = execute(action, console, "Rewrite")
    print_run_summary(console, result, log_path)

"""Run command: shrink and re-upload the images of a published article."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from qic.cli.callbacks import validate_output_dir, validate_scope
from qic.cli.shared import build_run_options, execute, print_run_summary, setup_command_logging
from qic.config import QicSettings, get_settings
from qic.config.constants import SCOPES
from qic.core.article import parse_item_id, to_edit_url
from qic.core.pipeline import RunOptions, RunResult, run_pipeline
from qic.exceptions import InvalidArticleUrlError
from qic.utils.logging import get_logger, run_context

console = Console()
log = get_logger(__name__)


def run(
    article_url: Annotated[
        str,
        typer.Argument(help="Article URL, e.g. https://qiita.com/<user>/items/<id>."),
    ],
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
    storage_state: Annotated[
        Path | None,
        typer.Option(
            "--storage-state",
            help="Browser login state file (loaded if present, saved on exit).",
            dir_okay=False,
        ),
    ] = None,
    headless: Annotated[
        bool | None,
        typer.Option("--headless/--headed", help="Run the browser without a window."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Upload and verify, then restore the original body."),
    ] = False,
    delete_original: Annotated[
        bool,
        typer.Option(
            "--delete-original",
            help="Delete replaced uploads once the published article is verified.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
) -> None:
    """Resize oversized images of an article and swap in the re-uploaded URLs.

    Examples:
        qic run https://qiita.com/user/items/abc123
        qic run https://qiita.com/user/items/abc123 --scope single --target-kb 300
        qic run https://qiita.com/user/items/abc123 --dry-run --headed
    """
    try:
        item_id = parse_item_id(article_url)
    except InvalidArticleUrlError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    settings = get_settings()
    options = build_run_options(
        settings,
        document_id=item_id,
        scope=scope,
        target_kb=target_kb,
        out=out,
        concurrency=concurrency,
        dry_run=dry_run,
        delete_original=delete_original,
    )
    log_path = setup_command_logging(settings, "run", verbose, log_file)
    state_path = str(storage_state) if storage_state else settings.get_storage_state_path()
    effective_headless = settings.browser.headless if headless is None else headless

    async def action() -> RunResult:
        with run_context(article=article_url):
            return await _run_article(
                settings, options, article_url, item_id, state_path, effective_headless
            )

    result = execute(action, console, "Run")
    print_run_summary(console, result, log_path)


async def _run_article(
    settings: QicSettings,
    options: RunOptions,
    article_url: str,
    item_id: str,
    storage_state_path: str | None,
    headless: bool,
) -> RunResult:
    """Drive the pipeline with browser-backed collaborators."""
    from qic.browser import (
        BrowserSession,
        PlaywrightAssetStore,
        PlaywrightEditingSession,
        PlaywrightPublishChecker,
    )
    from qic.image import HttpDownloader, ImageOptimizer

    browser_config = settings.browser.model_copy(update={"headless": headless})
    async with BrowserSession(browser_config, storage_state_path) as browser:
        session = PlaywrightEditingSession(
            await browser.new_page(), to_edit_url(item_id), browser_config
        )
        await session.open()
        store = PlaywrightAssetStore(await browser.new_page(), browser_config, settings.deletion)
        checker = PlaywrightPublishChecker(await browser.new_page(), article_url)

        async with HttpDownloader(settings.download) as downloader:
            return await run_pipeline(
                options,
                session,
                store,
                downloader,
                publish_checker=checker,
                optimizer=ImageOptimizer(settings.optimizer),
            )

"""Run orchestration: read, collect, select, upload, substitute, verify, commit.

Every stage takes the same `RunContext`. Only the per-image download and
optimize work runs concurrently; everything that touches the editing session
or the asset store runs on this single sequential path.
"""

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from qic.config.constants import DEFAULT_CONCURRENCY, DEFAULT_TOLERANCE_RATIO
from qic.config.settings import OutputConfig, QicSettings
from qic.core.artifacts import write_backup, write_verification_artifacts
from qic.exceptions import AccessDeniedError, AssetStoreError, PollTimeoutError, VerificationError
from qic.image.downloader import DownloadResult
from qic.image.optimizer import ImageOptimizer, OptimizedAsset, choose_output_extension
from qic.markdown.diff_check import verify_only_expected_changes
from qic.markdown.urls import extract_image_urls, substitute
from qic.services.editing import apply_url_substitutions
from qic.services.protocols import AssetStore, Downloader, EditingSession, PublishChecker
from qic.utils.concurrency import ConcurrencyManager
from qic.utils.fs import ensure_directory, guess_extension_from_url
from qic.utils.logging import get_logger, run_context
from qic.utils.polling import poll_until

log = get_logger(__name__)


class RunState(str, Enum):
    """States a run passes through."""

    IDLE = "idle"
    BODY_READ = "body_read"
    IMAGES_COLLECTED = "images_collected"
    IMAGES_SELECTED = "images_selected"
    UPLOADED = "uploaded"
    URLS_SUBSTITUTED = "urls_substituted"
    VERIFIED = "verified"
    DRY_RUN_RESTORED = "dry_run_restored"
    COMMITTED = "committed"
    ORIGINALS_DELETED = "originals_deleted"
    NO_OP = "no_op"


@dataclass
class RunOptions:
    """Policy for one run."""

    document_id: str
    target_bytes: int
    scope: str = "all"
    tolerance_ratio: float = DEFAULT_TOLERANCE_RATIO
    concurrency: int = DEFAULT_CONCURRENCY
    dry_run: bool = False
    delete_original: bool = False
    output: OutputConfig = field(default_factory=OutputConfig)
    settle_timeout: float = 15.0
    settle_interval: float = 0.25
    publish_verify_timeout: float = 90.0
    publish_verify_interval: float = 5.0

    @property
    def max_bytes(self) -> int:
        """Acceptance threshold: target plus tolerance."""
        return math.floor(self.target_bytes * (1 + self.tolerance_ratio) + 0.5)

    @classmethod
    def from_settings(cls, settings: QicSettings, document_id: str) -> "RunOptions":
        """Build options from loaded settings."""
        return cls(
            document_id=document_id,
            target_bytes=settings.run.target_bytes,
            scope=settings.run.scope,
            tolerance_ratio=settings.run.tolerance_ratio,
            concurrency=settings.run.concurrency,
            dry_run=settings.run.dry_run,
            delete_original=settings.run.delete_original,
            output=settings.output,
            settle_timeout=settings.browser.settle_timeout,
            settle_interval=settings.browser.settle_interval,
            publish_verify_timeout=settings.browser.publish_verify_timeout,
            publish_verify_interval=settings.browser.publish_verify_interval,
        )


@dataclass
class ImageWork:
    """One extracted image and what happened to it."""

    index: int
    url: str
    original_path: Path
    optimized_path: Path
    download: DownloadResult | None = None
    asset: OptimizedAsset | None = None
    access_denied: bool = False

    @property
    def upload_path(self) -> Path:
        return self.optimized_path if self.asset is not None else self.original_path


@dataclass
class RunResult:
    """Summary of a finished run."""

    state: RunState
    backup_path: Path | None = None
    substitutions: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    selected: list[str] = field(default_factory=list)
    published_ok: bool | None = None
    deleted: list[str] = field(default_factory=list)


@dataclass
class RunContext:
    """Mutable state of one run, owned by the pipeline."""

    options: RunOptions
    session: EditingSession
    store: AssetStore
    downloader: Downloader
    publish_checker: PublishChecker | None = None
    optimizer: ImageOptimizer = field(default_factory=ImageOptimizer)
    state: RunState = RunState.IDLE
    original_body: str = ""
    backup_path: Path | None = None
    urls: list[str] = field(default_factory=list)
    selected: list[ImageWork] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    substitutions: dict[str, str] = field(default_factory=dict)
    current_body: str = ""
    published_ok: bool | None = None
    deleted: list[str] = field(default_factory=list)

    def enter(self, state: RunState, **fields: object) -> None:
        self.state = state
        log.info("phase", state=state.value, **fields)

    def result(self) -> RunResult:
        return RunResult(
            state=self.state,
            backup_path=self.backup_path,
            substitutions=dict(self.substitutions),
            skipped=list(self.skipped),
            selected=[w.url for w in self.selected],
            published_ok=self.published_ok,
            deleted=list(self.deleted),
        )


def _plan_image(ctx: RunContext, index: int, url: str) -> ImageWork:
    out = ctx.options.output
    base = f"img-{index + 1}"
    original_path = out.originals_dir / f"{base}{guess_extension_from_url(url)}"
    optimized_path = out.optimized_dir / f"{base}{choose_output_extension(original_path)}"
    return ImageWork(index=index, url=url, original_path=original_path, optimized_path=optimized_path)


async def read_body(ctx: RunContext) -> None:
    """Snapshot the body and back it up before anything is mutated."""
    try:
        live = await ctx.session.read_live()
    except Exception as e:
        log.warning("read_body.live_failed", error=str(e))
        live = ""
    snapshot = await ctx.session.read_snapshot()
    ctx.original_body = live if len(live) >= len(snapshot) else snapshot
    ctx.backup_path = write_backup(
        ctx.options.output.backups_dir, ctx.options.document_id, ctx.original_body
    )
    ctx.enter(RunState.BODY_READ, length=len(ctx.original_body), backup=str(ctx.backup_path))


async def collect_images(ctx: RunContext) -> None:
    ctx.urls = extract_image_urls(ctx.original_body)
    ctx.enter(RunState.IMAGES_COLLECTED, found=len(ctx.urls))


async def _download_and_optimize(ctx: RunContext, work: ImageWork) -> ImageWork | None:
    """Download one image and optimize it when it is over the threshold.

    Returns None when the image is skipped (access denied or small enough).
    """
    max_bytes = ctx.options.max_bytes
    with run_context(image_url=work.url):
        try:
            work.download = await ctx.downloader.fetch(work.url, work.original_path)
        except AccessDeniedError as e:
            log.warning("download.access_denied_skip", error=str(e))
            work.access_denied = True
            return None

        size = work.download.byte_size
        if size <= max_bytes:
            log.info("select.within_tolerance", bytes=size, max_bytes=max_bytes)
            return None

        log.info(
            "optimize.start",
            input=str(work.original_path),
            output=str(work.optimized_path),
            bytes=size,
            max_bytes=max_bytes,
        )
        work.asset = await asyncio.to_thread(
            ctx.optimizer.optimize_to_file,
            work.original_path,
            work.optimized_path,
            max_bytes,
        )
        return work


async def select_images(ctx: RunContext) -> None:
    """Download and optimize the images this run will replace."""
    out = ctx.options.output
    ensure_directory(out.originals_dir)
    ensure_directory(out.optimized_dir)
    plans = [_plan_image(ctx, i, url) for i, url in enumerate(ctx.urls)]

    if ctx.options.scope == "single":
        # Document order; the first image over the threshold is the only one
        for work in plans:
            picked = await _download_and_optimize(ctx, work)
            if work.access_denied:
                ctx.skipped.append(work.url)
            if picked is not None:
                ctx.selected.append(picked)
                break
    else:
        # Access-denied images come back as None; anything raised is fatal
        manager = ConcurrencyManager(image_workers=ctx.options.concurrency)
        results = await manager.map_image_tasks(
            plans, lambda work: _download_and_optimize(ctx, work), fail_fast=True
        )
        for task in results:
            picked = task.result
            if task.item.access_denied:
                ctx.skipped.append(task.item.url)
            if picked is not None:
                ctx.selected.append(picked)

    ctx.enter(
        RunState.IMAGES_SELECTED,
        scope=ctx.options.scope,
        selected=len(ctx.selected),
        skipped_access_denied=len(ctx.skipped),
        candidates=len(plans),
    )


async def upload_images(ctx: RunContext) -> None:
    """Upload selected images one at a time and build the substitution map."""
    for work in ctx.selected:
        with run_context(image_url=work.url):
            new_url = await ctx.store.upload(work.upload_path)
            if new_url == work.url:
                log.warning("upload.same_url", url=new_url)
                continue
            log.info("upload.done", path=str(work.upload_path), new_url=new_url)
            ctx.substitutions[work.url] = new_url
    ctx.enter(RunState.UPLOADED, rules=len(ctx.substitutions))


async def substitute_urls(ctx: RunContext) -> None:
    """Apply the substitution map, then let the live body settle."""
    await apply_url_substitutions(
        ctx.session,
        ctx.substitutions,
        settle_timeout=ctx.options.settle_timeout,
        settle_interval=ctx.options.settle_interval,
    )
    expected = substitute(ctx.original_body, ctx.substitutions)
    try:
        ctx.current_body = await poll_until(
            ctx.session.read_live,
            lambda body: body == expected,
            interval=ctx.options.settle_interval,
            timeout=ctx.options.settle_timeout,
            description="editor body to settle",
            tolerate_errors=True,
        )
    except PollTimeoutError as e:
        # Verify whatever was read last
        ctx.current_body = e.last_value if isinstance(e.last_value, str) else ""
    ctx.enter(RunState.URLS_SUBSTITUTED, rules=len(ctx.substitutions))


async def verify_edit(ctx: RunContext) -> None:
    """Gate before commit: only the substituted URLs may differ.

    Raises:
        VerificationError: Any other change was found. Artifacts are on disk
            and the live document is left as it is.
    """
    result = verify_only_expected_changes(ctx.original_body, ctx.current_body, ctx.substitutions)
    if not result.ok:
        artifacts = write_verification_artifacts(
            ctx.options.output.artifacts_dir,
            substitute(ctx.original_body, ctx.substitutions),
            ctx.current_body,
            result,
        )
        log.error(
            "verify.failed",
            first_diff_index=result.first_diff_index,
            expected_context=result.expected_context,
            current_context=result.current_context,
            report=str(artifacts.report),
        )
        raise VerificationError(result, artifacts.as_dict())
    ctx.enter(RunState.VERIFIED)


async def restore_original(ctx: RunContext) -> None:
    """Dry run: put the original body back instead of publishing."""
    await ctx.session.write(ctx.original_body)
    ctx.enter(RunState.DRY_RUN_RESTORED)


async def commit(ctx: RunContext) -> None:
    """Submit, then confirm the public rendering picked up the new URLs."""
    submitted = await ctx.session.submit()
    if not submitted:
        log.warning("submit.no_success_signal")
    ctx.enter(RunState.COMMITTED, submitted=submitted)

    checker = ctx.publish_checker
    if checker is None:
        ctx.published_ok = None
        log.warning("verify_published.skipped", reason="no publish checker")
        return

    new_urls = list(ctx.substitutions.values())
    old_urls = list(ctx.substitutions.keys())
    try:
        await poll_until(
            lambda: checker.check(new_urls, old_urls),
            lambda check: check.ok,
            interval=ctx.options.publish_verify_interval,
            timeout=ctx.options.publish_verify_timeout,
            description="published article to reference the new URLs",
            tolerate_errors=True,
        )
    except PollTimeoutError as e:
        ctx.published_ok = False
        log.warning("verify_published.failed", submitted=submitted, error=str(e))
        return
    ctx.published_ok = True
    log.info("verify_published.ok")


async def delete_originals(ctx: RunContext) -> None:
    """Delete replaced originals hosted by the asset store."""
    keys: list[str] = []
    for url in ctx.substitutions:
        key = ctx.store.asset_key(url)
        if key is None:
            log.info("delete_originals.not_deletable", url=url)
            continue
        keys.append(key)
    if not keys:
        log.info("delete_originals.nothing_to_delete")
        return

    try:
        ctx.deleted = await ctx.store.delete(keys)
    except AssetStoreError as e:
        log.error("delete_originals.failed", error=str(e), keys=keys)
        return
    missing = [k for k in keys if k not in ctx.deleted]
    if missing:
        log.warning("delete_originals.incomplete", missing=missing)
    ctx.enter(RunState.ORIGINALS_DELETED, deleted=len(ctx.deleted))


async def run_pipeline(
    options: RunOptions,
    session: EditingSession,
    store: AssetStore,
    downloader: Downloader,
    publish_checker: PublishChecker | None = None,
    optimizer: ImageOptimizer | None = None,
) -> RunResult:
    """Run the whole resize/re-upload workflow for one document.

    Returns:
        RunResult describing the final state

    Raises:
        DownloadFailedError: A source image failed for a reason other than 403
        QuotaExceededError: The asset store refused an upload
        SubstitutionNotAppliedError: The editor never reflected the rewrite
        VerificationError: Anything besides the image URLs changed
    """
    ctx = RunContext(
        options=options,
        session=session,
        store=store,
        downloader=downloader,
        publish_checker=publish_checker,
        optimizer=optimizer or ImageOptimizer(),
    )
    log.info(
        "run.start",
        document=options.document_id,
        scope=options.scope,
        target_bytes=options.target_bytes,
        max_bytes=options.max_bytes,
        concurrency=options.concurrency,
        dry_run=options.dry_run,
        delete_original=options.delete_original,
    )

    await read_body(ctx)

    await collect_images(ctx)
    if not ctx.urls:
        return _no_op(ctx, "no images found")

    await select_images(ctx)
    if not ctx.selected:
        return _no_op(ctx, "no images over threshold")

    await upload_images(ctx)
    if not ctx.substitutions or substitute(ctx.original_body, ctx.substitutions) == ctx.original_body:
        return _no_op(ctx, "no URL changes")

    await substitute_urls(ctx)
    await verify_edit(ctx)

    if options.dry_run:
        await restore_original(ctx)
        return ctx.result()

    await commit(ctx)

    if ctx.published_ok and options.delete_original:
        await delete_originals(ctx)
    elif options.delete_original:
        log.warning("delete_originals.skipped", reason="published article not verified")
    else:
        log.info("delete_originals.skipped", reason="not requested")

    log.info("run.done", state=ctx.state.value)
    return ctx.result()


def _no_op(ctx: RunContext, reason: str) -> RunResult:
    ctx.enter(RunState.NO_OP, reason=reason)
    return ctx.result()


"""Logging configuration using structlog."""

import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import EventDict, WrappedLogger

# Re-export BoundLogger for type hints in other modules
BoundLogger = structlog.stdlib.BoundLogger


# =============================================================================
# Run Context Infrastructure
# =============================================================================

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_article_var: ContextVar[str | None] = ContextVar("article", default=None)
_image_var: ContextVar[str | None] = ContextVar("image", default=None)


def generate_run_id() -> str:
    """Generate a unique 8-character run ID for tracing.

    Returns:
        A short UUID string (8 characters) for log correlation.
    """
    return str(uuid.uuid4())[:8]


def set_run_context(
    run_id: str | None = None,
    article: str | None = None,
    image_url: str | None = None,
) -> None:
    """Set run context variables for logging.

    These context variables are automatically injected into all log messages
    via the _inject_run_context processor.
    """
    if run_id is not None:
        _run_id_var.set(run_id)
    if article is not None:
        _article_var.set(article)
    if image_url is not None:
        _image_var.set(image_url)


@contextmanager
def run_context(
    run_id: str | None = None,
    article: str | None = None,
    image_url: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for run tracing.

    Sets the context for the duration of the block and restores the previous
    values afterwards. A run ID is generated when none is given and none is
    active yet, so nested image scopes keep the outer run ID.

    Example:
        >>> with run_context(article="https://qiita.com/u/items/abc") as run_id:
        ...     log.info("Run started")  # includes run_id and article
    """
    old_run_id = _run_id_var.get()
    old_article = _article_var.get()
    old_image = _image_var.get()

    new_run_id = run_id or old_run_id or generate_run_id()
    set_run_context(run_id=new_run_id, article=article, image_url=image_url)

    try:
        yield new_run_id
    finally:
        _run_id_var.set(old_run_id)
        _article_var.set(old_article)
        _image_var.set(old_image)


def _inject_run_context(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Inject run_id, article and image into log events when set."""
    run_id = _run_id_var.get()
    if run_id and "run_id" not in event_dict:
        event_dict["run_id"] = run_id

    article = _article_var.get()
    if article and "article" not in event_dict:
        event_dict["article"] = article

    image = _image_var.get()
    if image and "image" not in event_dict:
        event_dict["image"] = image

    return event_dict


# =============================================================================
# Logging Configuration
# =============================================================================


class SafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that handles encoding errors gracefully.

    Article bodies routinely contain CJK text, which a CP1252 console
    cannot display.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record, handling encoding errors gracefully."""
        try:
            msg = self.format(record)
            stream = self.stream
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                safe_msg = msg.encode(stream.encoding or "utf-8", errors="replace").decode(
                    stream.encoding or "utf-8", errors="replace"
                )
                stream.write(safe_msg + self.terminator)
            self.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


# Noisy third-party loggers to suppress at DEBUG level
_NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "PIL",
    "asyncio",
]

_MAX_VALUE_LENGTH = 500


def _filter_event_dict(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Truncate long strings and summarize binary values."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str) and len(value) > _MAX_VALUE_LENGTH:
            event_dict[key] = value[:_MAX_VALUE_LENGTH] + f"... [{len(value)} chars total]"
        elif isinstance(value, (bytes, bytearray)):
            event_dict[key] = f"[BINARY DATA: {len(value)} bytes]"
    return event_dict


def _console_renderer(colors: bool) -> structlog.dev.ConsoleRenderer:
    return structlog.dev.ConsoleRenderer(
        colors=colors,
        exception_formatter=structlog.dev.plain_traceback,
        pad_event_to=0,
        pad_level=False,
        sort_keys=False,
    )


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
    console_level: str | None = None,
    file_level: str | None = None,
) -> None:
    """Configure structlog for the application.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; logs go to both console and file
        json_format: If True, render JSON lines instead of console format
        console_level: Optional override for console handler level
        file_level: Optional override for file handler level
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _inject_run_context,
        _filter_event_dict,
    ]

    if json_format:
        final_processor: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = _console_renderer(colors=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_processor,
        ],
    )

    console_handler = SafeStreamHandler(sys.stderr)
    c_level = getattr(logging, console_level.upper(), log_level) if console_level else log_level
    console_handler.setLevel(c_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_renderer: structlog.types.Processor = (
            structlog.processors.JSONRenderer() if json_format else _console_renderer(colors=False)
        )
        file_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                file_renderer,
            ],
        )

        # One file per run, appended to; never rotated mid-run
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        f_level = getattr(logging, file_level.upper(), log_level) if file_level else log_level
        file_handler.setLevel(f_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)


def create_task_log_path(log_dir: str | Path, prefix: str = "qic") -> tuple[str, Path]:
    """Create a unique log file path with timestamp and short UUID.

    Example:
        >>> task_id, log_path = create_task_log_path("out/logs", "run")
        >>> print(log_path)  # out/logs/run_20260109_143052_a1b2c3d4.log
    """
    log_dir_path = Path(log_dir)
    log_dir_path.mkdir(parents=True, exist_ok=True)

    task_id = generate_run_id()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir_path / f"{prefix}_{timestamp}_{task_id}.log"

    return task_id, log_file


def setup_task_logging(
    log_dir: str | Path,
    prefix: str = "qic",
    verbose: bool = False,
    log_file: str | Path | None = None,
) -> tuple[str, Path]:
    """Setup logging for a CLI task.

    The file always captures DEBUG so a failed run can be replayed from its
    log. The console shows INFO, or DEBUG with verbose.

    Args:
        log_dir: Directory to store log files
        prefix: Prefix for the log file name
        verbose: Enable verbose console output
        log_file: Explicit log file path (overrides log_dir/prefix naming)

    Returns:
        Tuple of (task_id, log_file_path)
    """
    if log_file is not None:
        task_id, log_path = generate_run_id(), Path(log_file)
    else:
        task_id, log_path = create_task_log_path(log_dir, prefix)

    setup_logging(
        level="DEBUG",
        log_file=str(log_path),
        console_level="DEBUG" if verbose else "INFO",
        file_level="DEBUG",
    )

    return task_id, log_path

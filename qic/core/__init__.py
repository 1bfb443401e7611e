"""Core orchestration for QIC."""

from qic.core.article import parse_item_id, to_edit_url
from qic.core.pipeline import RunOptions, RunResult, RunState, run_pipeline

__all__ = [
    "RunOptions",
    "RunResult",
    "RunState",
    "parse_item_id",
    "run_pipeline",
    "to_edit_url",
]

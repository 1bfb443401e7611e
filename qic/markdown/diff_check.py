"""Post-edit verification that only image URLs changed in a document."""

import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from qic.config.constants import DIFF_CONTEXT_CHARS
from qic.markdown.urls import substitute

REASON_ONLY_URL_CHANGES = "only_url_changes"
REASON_NON_URL_CHANGE = "non_url_change_detected"

_TRAILING_WS_RE = re.compile(r"[ \t]+$")
_TRAILING_NEWLINES_RE = re.compile(r"\n+$")


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of comparing an edited document against the expected one."""

    ok: bool
    reason: str
    first_diff_index: int | None = None
    expected_context: str | None = None
    current_context: str | None = None
    expected_length: int | None = None
    current_length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form (camelCase keys, unset fields omitted)."""
        keys = {
            "ok": "ok",
            "reason": "reason",
            "first_diff_index": "firstDiffIndex",
            "expected_context": "expectedContext",
            "current_context": "currentContext",
            "expected_length": "expectedLength",
            "current_length": "currentLength",
        }
        return {keys[k]: v for k, v in asdict(self).items() if v is not None}


def normalize_document(text: str) -> str:
    """Normalize editor-induced formatting noise.

    CRLF becomes LF, trailing spaces and tabs are removed from each line and
    trailing newlines at the end of the document are dropped. Nothing else
    is tolerated.
    """
    lf = text.replace("\r\n", "\n")
    lines = [_TRAILING_WS_RE.sub("", line) for line in lf.split("\n")]
    return _TRAILING_NEWLINES_RE.sub("", "\n".join(lines))


def _first_diff_index(a: str, b: str) -> int:
    limit = min(len(a), len(b))
    for i in range(limit):
        if a[i] != b[i]:
            return i
    return limit


def verify_only_expected_changes(
    original: str,
    current: str,
    mapping: Mapping[str, str],
    context_chars: int = DIFF_CONTEXT_CHARS,
) -> VerificationResult:
    """Check that `current` equals `original` with only `mapping` applied.

    Args:
        original: Document before the edit
        current: Document read back after the edit
        mapping: Old URL -> new URL substitutions that were applied
        context_chars: Window size on each side of the first difference

    Returns:
        VerificationResult; on mismatch it carries the first differing index
        of the normalized texts and a clipped context window from each side.
    """
    expected = normalize_document(substitute(original, mapping))
    actual = normalize_document(current)

    if expected == actual:
        return VerificationResult(ok=True, reason=REASON_ONLY_URL_CHANGES)

    index = _first_diff_index(expected, actual)
    start = max(0, index - context_chars)
    return VerificationResult(
        ok=False,
        reason=REASON_NON_URL_CHANGE,
        first_diff_index=index,
        expected_context=expected[start : min(len(expected), index + context_chars)],
        current_context=actual[start : min(len(actual), index + context_chars)],
        expected_length=len(expected),
        current_length=len(actual),
    )

"""Backups and verification-failure artifacts.

Both are append-only: every write gets a fresh timestamped name and nothing
is ever overwritten.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from qic.markdown.diff_check import VerificationResult
from qic.utils.fs import safe_filename, timestamp_slug, write_new_file
from qic.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class VerificationArtifacts:
    """Files written for a failed verification."""

    expected: Path
    current: Path
    report: Path

    def as_dict(self) -> dict[str, Path]:
        return {"expected": self.expected, "current": self.current, "report": self.report}


def write_backup(backups_dir: Path, document_id: str, body: str) -> Path:
    """Persist the original body to ``<backups_dir>/<id>-<timestamp>.md``."""
    name = safe_filename(f"{document_id}-{timestamp_slug()}.md")
    path = write_new_file(backups_dir / name, body)
    log.info("backup.written", path=str(path), length=len(body))
    return path


_ARTIFACT_SUFFIXES = ("-expected.md", "-current.md", "-diff-check.json")


def _free_prefix(artifacts_dir: Path, ts: str) -> str:
    """First of ``ts``, ``ts_1``, ``ts_2``... under which no artifact exists yet."""
    prefix = ts
    counter = 0
    while any((artifacts_dir / f"{prefix}{suffix}").exists() for suffix in _ARTIFACT_SUFFIXES):
        counter += 1
        prefix = f"{ts}_{counter}"
    return prefix


def write_verification_artifacts(
    artifacts_dir: Path,
    expected: str,
    current: str,
    result: VerificationResult,
) -> VerificationArtifacts:
    """Write expected/current bodies and the JSON report under one timestamp prefix."""
    prefix = _free_prefix(artifacts_dir, timestamp_slug())
    report = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    return VerificationArtifacts(
        expected=write_new_file(artifacts_dir / f"{prefix}-expected.md", expected),
        current=write_new_file(artifacts_dir / f"{prefix}-current.md", current),
        report=write_new_file(artifacts_dir / f"{prefix}-diff-check.json", report + "\n"),
    )

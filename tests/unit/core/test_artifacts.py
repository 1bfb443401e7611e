"""Tests for backups and verification artifacts."""

import json

from qic.core import artifacts as artifacts_module
from qic.core.artifacts import write_backup, write_verification_artifacts
from qic.markdown.diff_check import verify_only_expected_changes


class TestWriteBackup:
    """Tests for write_backup."""

    def test_writes_body(self, tmp_path):
        """Test the body is stored under <id>-<timestamp>.md."""
        path = write_backup(tmp_path / "backups", "abc", "# body\n")

        assert path.parent == tmp_path / "backups"
        assert path.name.startswith("abc-")
        assert path.suffix == ".md"
        assert path.read_text(encoding="utf-8") == "# body\n"

    def test_never_overwrites(self, tmp_path):
        """Test repeated backups all survive."""
        paths = {write_backup(tmp_path, "abc", f"v{i}") for i in range(3)}

        assert len(paths) == 3
        assert sorted(p.read_text(encoding="utf-8") for p in paths) == ["v0", "v1", "v2"]


class TestWriteVerificationArtifacts:
    """Tests for write_verification_artifacts."""

    def test_three_files(self, tmp_path):
        """Test expected, current and the JSON report share one prefix."""
        result = verify_only_expected_changes("abc", "abd", {})

        artifacts = write_verification_artifacts(tmp_path, "abc", "abd", result)

        assert artifacts.expected.read_text(encoding="utf-8") == "abc"
        assert artifacts.current.read_text(encoding="utf-8") == "abd"
        report = json.loads(artifacts.report.read_text(encoding="utf-8"))
        assert report["firstDiffIndex"] == 2
        assert artifacts.expected.name.endswith("-expected.md")
        assert artifacts.current.name.endswith("-current.md")
        assert artifacts.report.name.endswith("-diff-check.json")
        prefix = artifacts.expected.name.removesuffix("-expected.md")
        assert artifacts.report.name == f"{prefix}-diff-check.json"
        assert set(artifacts.as_dict()) == {"expected", "current", "report"}

    def test_collision_moves_all_three_files(self, tmp_path, monkeypatch):
        """Test a clash on any one name gives every file the same new prefix."""
        monkeypatch.setattr(artifacts_module, "timestamp_slug", lambda: "2026-01-09T14-30-52-123Z")
        (tmp_path / "2026-01-09T14-30-52-123Z-current.md").write_text("older", encoding="utf-8")
        result = verify_only_expected_changes("abc", "abd", {})

        artifacts = write_verification_artifacts(tmp_path, "abc", "abd", result)

        assert artifacts.expected.name == "2026-01-09T14-30-52-123Z_1-expected.md"
        assert artifacts.current.name == "2026-01-09T14-30-52-123Z_1-current.md"
        assert artifacts.report.name == "2026-01-09T14-30-52-123Z_1-diff-check.json"
        assert (tmp_path / "2026-01-09T14-30-52-123Z-current.md").read_text(encoding="utf-8") == "older"

    def test_repeated_writes_keep_sets_apart(self, tmp_path, monkeypatch):
        """Test two failures in the same millisecond produce two complete sets."""
        monkeypatch.setattr(artifacts_module, "timestamp_slug", lambda: "ts")
        result = verify_only_expected_changes("a", "b", {})

        first = write_verification_artifacts(tmp_path, "a", "b", result)
        second = write_verification_artifacts(tmp_path, "a", "b", result)

        assert {p.name for p in first.as_dict().values()} == {"ts-expected.md", "ts-current.md", "ts-diff-check.json"}
        assert {p.name for p in second.as_dict().values()} == {
            "ts_1-expected.md",
            "ts_1-current.md",
            "ts_1-diff-check.json",
        }

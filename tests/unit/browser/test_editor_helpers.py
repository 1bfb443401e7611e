"""Tests for editor detection helpers and the publish check."""

import pytest

from qic.browser.editor import EditorKind, editor_kind_from_probe, is_edit_url
from qic.browser.publish import evaluate_published_html
from qic.exceptions import EditorNotFoundError


class TestEditorKindFromProbe:
    """Tests for editor_kind_from_probe."""

    def test_engine_wins(self):
        """Test a detected script engine beats a textarea."""
        assert editor_kind_from_probe("codemirror6", 100, True) == EditorKind.CODEMIRROR6
        assert editor_kind_from_probe("monaco", 0, False) == EditorKind.MONACO

    def test_textarea(self):
        """Test a non-empty textarea is used when no engine is present."""
        assert editor_kind_from_probe(None, 12, True) == EditorKind.TEXTAREA

    def test_contenteditable(self):
        """Test contenteditable is the last resort."""
        assert editor_kind_from_probe(None, 0, True) == EditorKind.CONTENTEDITABLE

    def test_nothing_found(self):
        """Test a page without an editor raises EditorNotFoundError."""
        with pytest.raises(EditorNotFoundError):
            editor_kind_from_probe(None, 0, False)


class TestIsEditUrl:
    """Tests for is_edit_url."""

    def test_edit_urls(self):
        """Test item and draft editor URLs are recognized."""
        assert is_edit_url("https://qiita.com/items/abc/edit")
        assert is_edit_url("https://qiita.com/drafts/abc/edit?x=1")

    def test_non_edit_urls(self):
        """Test published or unrelated pages are not editor URLs."""
        assert not is_edit_url("https://qiita.com/user/items/abc")
        assert not is_edit_url("https://qiita.com/settings/edit")


class TestEvaluatePublishedHtml:
    """Tests for evaluate_published_html."""

    def test_all_new_no_old(self):
        """Test the page is published when it has every new URL and no old one."""
        html = '<img src="https://new/1.png"><img src="https://new/2.png">'
        check = evaluate_published_html(html, ["https://new/1.png", "https://new/2.png"], ["https://old/1.png"])
        assert check.ok
        assert check.has_all_new and not check.has_any_old

    def test_old_still_present(self):
        """Test a lingering old URL fails the check."""
        html = '<img src="https://new/1.png"><img src="https://old/2.png">'
        check = evaluate_published_html(html, ["https://new/1.png"], ["https://old/2.png"])
        assert not check.ok
        assert check.has_any_old

    def test_new_missing(self):
        """Test a missing new URL fails the check."""
        check = evaluate_published_html("<p>stale</p>", ["https://new/1.png"], [])
        assert not check.ok
        assert not check.has_all_new

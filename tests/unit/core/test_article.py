"""Tests for article URL parsing."""

import pytest

from qic.core.article import parse_item_id, to_edit_url
from qic.exceptions import InvalidArticleUrlError


class TestParseItemId:
    """Tests for parse_item_id."""

    def test_item_url(self):
        """Test the id after /items/ is returned."""
        assert parse_item_id("https://qiita.com/alice/items/0123abcd4567ef") == "0123abcd4567ef"

    def test_trailing_slash_and_query(self):
        """Test trailing slashes, queries and fragments are ignored."""
        assert parse_item_id("https://qiita.com/alice/items/abc/?utm=x#top") == "abc"

    def test_other_host(self):
        """Test URLs on other hosts are rejected."""
        with pytest.raises(InvalidArticleUrlError, match="Not a qiita.com URL"):
            parse_item_id("https://example.com/alice/items/abc")

    def test_missing_item_id(self):
        """Test URLs without an item id are rejected."""
        with pytest.raises(InvalidArticleUrlError, match="Cannot parse item_id"):
            parse_item_id("https://qiita.com/alice/items/")
        with pytest.raises(InvalidArticleUrlError, match="Cannot parse item_id"):
            parse_item_id("https://qiita.com/alice")

    def test_not_a_url(self):
        """Test free text is rejected."""
        with pytest.raises(InvalidArticleUrlError, match="Invalid URL"):
            parse_item_id("not a url")

    def test_error_keeps_url(self):
        """Test the offending URL is kept on the error."""
        with pytest.raises(InvalidArticleUrlError) as exc_info:
            parse_item_id("ftp://qiita.com/items/abc")
        assert exc_info.value.url == "ftp://qiita.com/items/abc"


class TestToEditUrl:
    """Tests for to_edit_url."""

    def test_edit_url(self):
        """Test the editor URL is built from the item id."""
        assert to_edit_url("abc123") == "https://qiita.com/items/abc123/edit"

    def test_escapes_id(self):
        """Test unsafe characters in the id are percent-encoded."""
        assert to_edit_url("a/b") == "https://qiita.com/items/a%2Fb/edit"

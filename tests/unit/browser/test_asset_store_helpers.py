"""Tests for the pure helpers behind the browser-backed asset store."""

import pytest

from qic.browser.asset_store import (
    extract_asset_urls,
    is_quota_error,
    is_valid_asset_url,
    parse_asset_key,
    quota_shortfall,
    run_deletion_passes,
)

UUID = "aaaaaaaa-bbbb-4ccc-8ddd-eeeeeeeeeeee"
ASSET_URL = f"https://qiita-image-store.s3.ap-northeast-1.amazonaws.com/0/12345/{UUID}.png"


class TestParseAssetKey:
    """Tests for parse_asset_key."""

    def test_store_url(self):
        """Test the key is the basename without extension."""
        assert parse_asset_key(ASSET_URL) == UUID

    def test_other_host(self):
        """Test URLs on other hosts are not deletable."""
        assert parse_asset_key(f"https://example.com/0/1/{UUID}.png") is None

    def test_short_basename(self):
        """Test implausibly short keys are rejected."""
        assert parse_asset_key("https://qiita-image-store.s3.amazonaws.com/0/1/abc.png") is None

    def test_unparseable(self):
        """Test malformed URLs return None."""
        assert parse_asset_key("http://[::1") is None


class TestAssetUrls:
    """Tests for asset URL discovery and validation."""

    def test_extract_from_json(self):
        """Test URLs are found inside a JSON body."""
        body = f'{{"url":"{ASSET_URL}","other":"https://example.com/x.png"}}'
        assert extract_asset_urls(body) == [ASSET_URL]

    def test_extract_from_empty(self):
        """Test empty input yields nothing."""
        assert extract_asset_urls("") == []

    def test_valid_url(self):
        """Test a complete object URL is valid, in any case."""
        assert is_valid_asset_url(ASSET_URL)
        assert is_valid_asset_url(ASSET_URL.upper().replace("HTTPS://", "https://"))

    def test_invalid_urls(self):
        """Test truncated or foreign URLs are invalid."""
        assert not is_valid_asset_url(ASSET_URL.rsplit(".", 1)[0])
        assert not is_valid_asset_url("https://qiita-image-store.s3.amazonaws.com/0/1/not-a-uuid.png")
        assert not is_valid_asset_url(f"https://example.com/0/1/{UUID}.png")


class TestQuota:
    """Tests for quota detection."""

    def test_413(self):
        """Test HTTP 413 is a quota error."""
        assert is_quota_error(413, "")

    def test_message(self):
        """Test the limit message is detected case-insensitively."""
        assert is_quota_error(422, '{"message":"monthly LIMIT exceeded"}')

    def test_other_errors(self):
        """Test ordinary failures are not quota errors."""
        assert not is_quota_error(500, "internal error")
        assert not is_quota_error(200, None)

    def test_shortfall(self):
        """Test the remaining-quota comparison."""
        assert quota_shortfall(None, 100) is None
        assert quota_shortfall(1000, 100) is None
        assert "remaining=0" in quota_shortfall(0, 100)
        message = quota_shortfall(50, 100)
        assert message.startswith("Monthly limit exceeded")
        assert "file=100 bytes" in message


class TestRunDeletionPasses:
    """Tests for the deletion retry budget."""

    @pytest.mark.asyncio
    async def test_all_deleted_in_first_pass(self):
        """Test a single pass suffices when every key is found."""
        calls = []

        async def scan(pass_index, targets):
            calls.append((pass_index, targets))
            return set(targets)

        deleted, missing = await run_deletion_passes(["a", "b"], scan)

        assert deleted == ["a", "b"]
        assert missing == []
        assert calls == [(0, {"a", "b"})]

    @pytest.mark.asyncio
    async def test_retry_pass_targets_only_remaining(self):
        """Test the retry pass scans only what pass 0 missed."""
        calls = []

        async def scan(pass_index, targets):
            calls.append((pass_index, targets))
            return {"a"} if pass_index == 0 else set(targets)

        deleted, missing = await run_deletion_passes(["a", "b", "c"], scan)

        assert calls == [(0, {"a", "b", "c"}), (1, {"b", "c"})]
        assert deleted == ["a", "b", "c"]
        assert missing == []

    @pytest.mark.asyncio
    async def test_budget_exhausted(self):
        """Test keys never found are reported after the extra pass."""
        calls = []

        async def scan(pass_index, targets):
            calls.append(pass_index)
            return set()

        deleted, missing = await run_deletion_passes(["b", "a"], scan, extra_passes=3, retry_credits=1)

        assert calls == [0, 1]
        assert deleted == []
        assert missing == ["b", "a"]

    @pytest.mark.asyncio
    async def test_no_retries(self):
        """Test extra_passes=0 runs only pass 0."""
        calls = []

        async def scan(pass_index, targets):
            calls.append(pass_index)
            return set()

        _, missing = await run_deletion_passes(["a"], scan, extra_passes=0)

        assert calls == [0]
        assert missing == ["a"]

    @pytest.mark.asyncio
    async def test_duplicates_collapsed(self):
        """Test repeated keys are scanned and reported once."""

        async def scan(pass_index, targets):
            return set(targets)

        deleted, _ = await run_deletion_passes(["a", "a", "b"], scan)

        assert deleted == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty(self):
        """Test no keys means no scan."""

        async def scan(pass_index, targets):
            raise AssertionError("scan should not run")

        assert await run_deletion_passes([], scan) == ([], [])

"""Tests for ConcurrencyManager."""

import asyncio

import pytest

from qic.utils.concurrency import ConcurrencyManager


class TestConcurrencyManager:
    """Tests for ConcurrencyManager."""

    def test_rejects_zero_workers(self):
        """Test at least one worker is required."""
        with pytest.raises(ValueError):
            ConcurrencyManager(image_workers=0)

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        """Test results come back in input order regardless of completion."""

        async def work(n):
            await asyncio.sleep(0.01 * (3 - n))
            return n * 10

        results = await ConcurrencyManager(image_workers=3).map_image_tasks([0, 1, 2], work)

        assert [r.item for r in results] == [0, 1, 2]
        assert [r.unwrap() for r in results] == [0, 10, 20]

    @pytest.mark.asyncio
    async def test_bounds_concurrency(self):
        """Test no more than image_workers tasks run at once."""
        running = 0
        peak = 0

        async def work(n):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return n

        await ConcurrencyManager(image_workers=2).map_image_tasks(list(range(6)), work)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_are_captured(self):
        """Test a failing task does not cancel the others and unwrap re-raises."""

        async def work(n):
            if n == 1:
                raise RuntimeError("bad item")
            return n

        results = await ConcurrencyManager().map_image_tasks([0, 1, 2], work)

        assert [r.success for r in results] == [True, False, True]
        assert results[1].error == "bad item"
        with pytest.raises(RuntimeError, match="bad item"):
            results[1].unwrap()

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_pending(self):
        """Test the first failure is raised and the remaining tasks never finish."""
        finished = []

        async def work(n):
            if n == 0:
                raise RuntimeError("fatal download")
            await asyncio.sleep(0.5)
            finished.append(n)
            return n

        with pytest.raises(RuntimeError, match="fatal download"):
            await ConcurrencyManager(image_workers=2).map_image_tasks(list(range(6)), work, fail_fast=True)

        await asyncio.sleep(0)
        assert finished == []

    @pytest.mark.asyncio
    async def test_fail_fast_without_failures(self):
        """Test fail_fast returns ordered results when nothing fails."""

        async def work(n):
            await asyncio.sleep(0.01 * (3 - n))
            return n

        results = await ConcurrencyManager(image_workers=3).map_image_tasks([0, 1, 2], work, fail_fast=True)

        assert [r.unwrap() for r in results] == [0, 1, 2]

"""Concurrency management for the per-image worker pool."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from qic.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskResult(Generic[T]):
    """Result of a concurrent task."""

    item: T
    success: bool
    result: Any | None = None
    error: str | None = None
    exception: Exception | None = None

    def unwrap(self) -> Any:
        """Return the result, re-raising the task's exception on failure."""
        if self.exception is not None:
            raise self.exception
        return self.result


class ConcurrencyManager:
    """Bounds concurrent image work (download + encode).

    Only the per-image stages run through here. Editing-session and
    asset-store calls stay on the caller's sequential path.
    """

    def __init__(self, image_workers: int = 4) -> None:
        """Initialize the concurrency manager.

        Args:
            image_workers: Maximum concurrent per-image pipelines
        """
        if image_workers < 1:
            raise ValueError("image_workers must be >= 1")
        self.image_workers = image_workers
        self._image_semaphore: asyncio.Semaphore | None = None

    def _get_image_semaphore(self) -> asyncio.Semaphore:
        """Get or create image semaphore."""
        if self._image_semaphore is None:
            self._image_semaphore = asyncio.Semaphore(self.image_workers)
        return self._image_semaphore

    async def map_image_tasks(
        self,
        items: list[T],
        func: Callable[[T], Awaitable[R]],
        fail_fast: bool = False,
    ) -> list[TaskResult[T]]:
        """Process items concurrently with image concurrency limits.

        Results come back in input order regardless of completion order.

        Args:
            items: Items to process
            func: Async function to apply to each item
            fail_fast: If True, the first failure cancels every pending task
                and its exception is raised

        Returns:
            List of TaskResult objects
        """
        return await self._map_with_semaphore(
            items=items,
            func=func,
            semaphore=self._get_image_semaphore(),
            fail_fast=fail_fast,
        )

    async def _map_with_semaphore(
        self,
        items: list[T],
        func: Callable[[T], Awaitable[R]],
        semaphore: asyncio.Semaphore,
        fail_fast: bool = False,
    ) -> list[TaskResult[T]]:
        async def process_item(item: T) -> TaskResult[T]:
            async with semaphore:
                try:
                    result = await func(item)
                except Exception as e:
                    log.debug("task.failed", item=str(item), error=str(e))
                    return TaskResult(
                        item=item,
                        success=False,
                        error=str(e),
                        exception=e,
                    )
                return TaskResult(item=item, success=True, result=result)

        tasks = [asyncio.create_task(process_item(item)) for item in items]
        if not fail_fast:
            return list(await asyncio.gather(*tasks))

        try:
            for finished in asyncio.as_completed(tasks):
                task_result = await finished
                if not task_result.success:
                    pending = sum(1 for t in tasks if not t.done())
                    log.warning("task.fail_fast", item=str(task_result.item), cancelled=pending)
                    task_result.unwrap()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return [task.result() for task in tasks]

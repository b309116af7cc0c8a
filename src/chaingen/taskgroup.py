"""Fail-fast task groups.

A FailFastGroup runs coroutines concurrently. The first task to raise
cancels every sibling; once all tasks have unwound, wait() raises that first
exception unchanged. Later failures, and the cancellations the group caused,
are discarded.

Cancelling the task that awaits wait() cancels every task of the group, so
nested groups tear down as one unit.

Examples:
    Two-level fan-out::

        outer = FailFastGroup()
        for root in roots:
            outer.spawn(scan_and_generate(root))
        await outer.wait()
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any


class FailFastGroup:
    """Run tasks to completion or until the first failure."""

    def __init__(self, name: str = "group"):
        self.name = name
        self._tasks: list[asyncio.Task] = []
        self._error: BaseException | None = None

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Start a coroutine as a task of the group.

        A group that already failed does not start new work.
        """
        if self._error is not None:
            coro.close()
            raise RuntimeError(f"{self.name}: cannot spawn into a failed group")
        task = asyncio.ensure_future(coro)
        task.add_done_callback(self._on_done)
        self._tasks.append(task)
        return task

    @property
    def failed(self) -> bool:
        return self._error is not None

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        # Retrieve every exception, even ones that are discarded
        error = task.exception()
        if error is None or self._error is not None:
            return
        self._error = error
        self.cancel()

    def cancel(self) -> None:
        """Cancel every task that is still running."""
        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def wait(self) -> None:
        """Wait for every task to finish.

        Raises:
            The first exception raised by any task of the group
        """
        try:
            while True:
                pending = [task for task in self._tasks if not task.done()]
                if not pending:
                    break
                await asyncio.wait(pending)
        except asyncio.CancelledError:
            self.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            raise

        if self._error is not None:
            raise self._error

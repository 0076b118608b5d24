"""Registry for detached background work.

Tasks spawned here outlive the request that created them. The registry keeps
a strong reference until each task finishes and lets the app wait for
stragglers at shutdown.
"""

import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger("paraphraser")


class BackgroundTaskRegistry:
    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, *, name: str = "analytics") -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task {task.get_name()} failed: {exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, timeout: float = 10.0) -> bool:
        """Wait for every pending task; True if all finished within ``timeout``."""
        deadline = asyncio.get_running_loop().time() + timeout
        while self._tasks:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
            # done callbacks run on the next loop iteration
            await asyncio.sleep(0)
        return True

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()


background_tasks = BackgroundTaskRegistry()

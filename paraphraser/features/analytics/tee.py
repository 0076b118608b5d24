"""Split one async byte stream into two independently consumed branches.

A single pump task reads the source and pushes every chunk onto one
unbounded queue per branch. Each branch only ever waits on its own queue,
so a slow (or abandoned) reader on one side never holds back the other.
The pump stops early only when both branches have been released or the
tee is aborted. A branch is released when it finishes, is closed, or is
garbage-collected without ever being read (a response that was never sent).
"""

import asyncio
import logging
import weakref
from typing import AsyncIterable, AsyncIterator, List, Optional, Tuple, TypeVar

logger = logging.getLogger("paraphraser")

T = TypeVar("T")

_END = object()


class StreamAborted(Exception):
    """The tee was aborted before its source finished."""


class _SourceFailed:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


class StreamTee:
    def __init__(self, source: AsyncIterable[T]):
        self._source = source
        self._queues: List[asyncio.Queue] = [asyncio.Queue(), asyncio.Queue()]
        self._released = [False, False]
        self._pump_task: Optional[asyncio.Task] = None
        self._aborted = False
        self._split = False

    def split(self) -> Tuple[AsyncIterator[T], AsyncIterator[T]]:
        """Hand out (client, analytics). Callable once.

        The tee keeps no reference to the branches it hands out, so dropping
        one releases it even if it was never iterated.
        """
        if self._split:
            raise RuntimeError("StreamTee.split() may only be called once")
        self._split = True
        branches = (self._branch(0), self._branch(1))
        for index, branch in enumerate(branches):
            weakref.finalize(branch, self._release, index).atexit = False
        return branches

    @property
    def released(self) -> Tuple[bool, bool]:
        return self._released[0], self._released[1]

    @property
    def finished(self) -> bool:
        return self._pump_task is not None and self._pump_task.done()

    def _ensure_pump(self) -> None:
        if self._pump_task is None and not self._aborted:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def _publish(self, item) -> None:
        for index, queue in enumerate(self._queues):
            if not self._released[index]:
                queue.put_nowait(item)

    async def _pump(self) -> None:
        iterator = self._source.__aiter__()
        try:
            async for chunk in iterator:
                self._publish(chunk)
                if all(self._released):
                    break
        except asyncio.CancelledError:
            self._publish(_SourceFailed(StreamAborted("stream aborted")))
            raise
        except Exception as exc:
            self._publish(_SourceFailed(exc))
        else:
            self._publish(_END)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as exc:
                    logger.debug(f"Closing tee source failed: {exc!r}")

    async def _branch(self, index: int) -> AsyncIterator[T]:
        queue = self._queues[index]
        try:
            while True:
                self._ensure_pump()
                item = await queue.get()
                if item is _END:
                    return
                if isinstance(item, _SourceFailed):
                    raise item.error
                yield item
        finally:
            self._release(index)

    def _release(self, index: int) -> None:
        if self._released[index]:
            return
        self._released[index] = True
        queue = self._queues[index]
        while not queue.empty():
            queue.get_nowait()
        if all(self._released) and self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()

    def abort(self) -> None:
        """Stop the producer now; both branches end with an error."""
        if self._pump_task is None:
            self._aborted = True
            self._publish(_SourceFailed(StreamAborted("stream aborted")))
            return
        if not self._pump_task.done():
            self._pump_task.cancel()


def tee(source: AsyncIterable[T]) -> Tuple[AsyncIterator[T], AsyncIterator[T]]:
    """Return (client_branch, analytics_branch) for ``source``."""
    return StreamTee(source).split()

"""
Transcode queue and single-flight scheduler.

Paths wait in a FIFO queue. A periodic tick starts at most one job at a
time; when that job ends (either way) the trees are cleaned up and the next
tick may start another. Failed jobs go back to the tail of the queue.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable, Deque, Dict, Iterator, Optional

from watchcode.runner import EncodeJobRunner, JobState

logger = logging.getLogger(__name__)


class TranscodeQueue:
    """Unbounded FIFO of video paths waiting for a transcode."""

    def __init__(self) -> None:
        self._items: Deque[Path] = deque()

    def enqueue(self, path: Path) -> None:
        self._items.append(path)

    def dequeue(self) -> Optional[Path]:
        """Pop the oldest path, or None when empty."""
        return self._items.popleft() if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Path]:
        return iter(list(self._items))


class Scheduler:
    """
    Drain a TranscodeQueue one job at a time.

    Args:
        runner: Executes a job for one path.
        cleanup: Coroutine run after every job, before the gate opens again.
        interval: Seconds between ticks.
        max_retries: Requeue limit for a failing path, 0 for no limit.
    """

    def __init__(
        self,
        runner: EncodeJobRunner,
        cleanup: Optional[Callable[[], Awaitable[None]]] = None,
        interval: float = 5.0,
        max_retries: int = 0,
    ):
        self.runner = runner
        self.cleanup = cleanup
        self.interval = interval
        self.max_retries = max_retries
        self.queue = TranscodeQueue()
        self.failures: Dict[Path, int] = {}
        self._busy = False
        self._current: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._busy

    def enqueue(self, path: Path) -> None:
        self.queue.enqueue(path)

    def tick(self) -> Optional[asyncio.Task]:
        """Start the next job unless one is running. Returns its task."""
        if self._busy:
            return None
        path = self.queue.dequeue()
        if path is None:
            return None
        self._busy = True
        self._current = asyncio.create_task(self._execute(path), name=f"encode:{path.name}")
        return self._current

    async def _execute(self, path: Path) -> None:
        try:
            try:
                job = await self.runner.run(path)
                failed = job.state is not JobState.SUCCEEDED
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error while processing '%s'", path)
                failed = True

            if failed:
                self._requeue(path)
            else:
                self.failures.pop(path, None)

            if self.cleanup is not None:
                try:
                    await self.cleanup()
                except Exception:
                    logger.exception("Cleanup after '%s' failed", path)
        finally:
            self._busy = False
            self._current = None

    def _requeue(self, path: Path) -> None:
        count = self.failures.get(path, 0) + 1
        if self.max_retries > 0 and count > self.max_retries:
            self.failures.pop(path, None)
            logger.error("Giving up on '%s' after %d failed attempts", path, count)
            return
        self.failures[path] = count
        self.queue.enqueue(path)
        logger.info("Requeued '%s' (attempt %d failed)", path, count)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``interval`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            self.tick()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Cancel the running job, if any, and wait for it to unwind."""
        task = self._current
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

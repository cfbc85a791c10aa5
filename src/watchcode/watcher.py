"""
Watch mode for watchcode.

Monitors the watch root recursively with watchdog and reports each new file
once it has stopped growing. Existing files are reported at startup so a
restart picks up where the previous run left off.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from watchdog.events import FileCreatedEvent, FileMovedEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchEvent:
    path: Path


def _fs_path(value) -> Path:
    return Path(os.fsdecode(value))


class WatchdogHandler(FileSystemEventHandler):
    """Forward watchdog events from the observer thread into the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, notify: Callable[[WatchEvent], None]):
        super().__init__()
        self.loop = loop
        self.notify = notify

    def _post(self, path: Path) -> None:
        try:
            self.loop.call_soon_threadsafe(self.notify, WatchEvent(path))
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._post(_fs_path(event.src_path))

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        # Files renamed into place (download clients finishing a .part file)
        if not event.is_directory:
            self._post(_fs_path(event.dest_path))


def _stat(path: Path) -> Optional[Tuple[int, int]]:
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_size, st.st_mtime_ns


class DirectoryWatcher:
    """
    Watch a directory tree for new, fully written files.

    Args:
        watch_path: Directory to watch.
        on_file: Coroutine called once per stable file.
        stable_wait: Seconds a file's size and mtime must stay unchanged.
        poll_interval: Seconds between stability checks.
        recursive: Watch subdirectories.
    """

    def __init__(
        self,
        watch_path: Path,
        on_file: Callable[[Path], Awaitable[object]],
        stable_wait: float = 2.0,
        poll_interval: float = 0.5,
        recursive: bool = True,
    ):
        self.watch_path = watch_path
        self.on_file = on_file
        self.stable_wait = stable_wait
        self.poll_interval = poll_interval
        self.recursive = recursive
        self.settling: Dict[Path, asyncio.Task] = {}
        self._observer: Optional[Observer] = None

    async def start(self) -> None:
        """Start the observer, then report files that already exist."""
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(WatchdogHandler(loop, self.notify), str(self.watch_path), recursive=self.recursive)
        observer.start()
        self._observer = observer
        logger.info("Watching %s (%s)", self.watch_path, "recursive" if self.recursive else "non-recursive")

        for path in await asyncio.to_thread(self.scan):
            self.notify(WatchEvent(path))

    def scan(self) -> List[Path]:
        """List existing files, skipping hidden directories."""
        found: List[Path] = []
        for root, dirs, files in os.walk(self.watch_path):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            if not self.recursive:
                dirs.clear()
            found.extend(Path(root) / f for f in sorted(files) if not f.startswith("."))
        return found

    def notify(self, event: WatchEvent) -> None:
        """Start settling a reported path unless it is hidden or already settling."""
        path = event.path
        if path in self.settling:
            return
        if self._hidden(path):
            logger.debug("Ignoring hidden path %s", path)
            return
        self.settling[path] = asyncio.create_task(self._settle(path))

    def _hidden(self, path: Path) -> bool:
        try:
            parts = path.relative_to(self.watch_path).parts
        except ValueError:
            return False
        return any(p.startswith(".") for p in parts)

    async def _settle(self, path: Path) -> None:
        try:
            if not await self.wait_stable(path):
                logger.debug("%s disappeared before it settled", path)
                return
            await self.on_file(path)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error handling '%s'", path)
        finally:
            self.settling.pop(path, None)

    async def wait_stable(self, path: Path) -> bool:
        """Wait until ``path`` stops changing. False if it vanished."""
        last = _stat(path)
        if last is None:
            return False
        unchanged = 0.0
        while unchanged < self.stable_wait:
            await asyncio.sleep(self.poll_interval)
            current = _stat(path)
            if current is None:
                return False
            if current == last:
                unchanged += self.poll_interval
            else:
                last = current
                unchanged = 0.0
        return True

    async def stop(self) -> None:
        """Stop the observer and abandon files that are still settling."""
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5)
            self._observer = None
        tasks = list(self.settling.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.settling.clear()

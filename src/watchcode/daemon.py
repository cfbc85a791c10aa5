"""
Daemon wiring for watchcode.

Builds the watcher, router, scheduler and runner around one Config and runs
them on a single asyncio event loop until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import List, Optional

from watchcode.config import Config
from watchcode.encoder import FFmpegEncoder, pick_backend
from watchcode.fileops import ensure_dir
from watchcode.probe import FFprobe, MetadataProbe
from watchcode.reconcile import DirectoryReconciler
from watchcode.router import IngestRouter
from watchcode.runner import EncodeJobRunner, Encoder
from watchcode.scheduler import Scheduler
from watchcode.watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


class Daemon:
    """The long-running watch / route / transcode loop."""

    def __init__(
        self,
        cfg: Config,
        probe: Optional[MetadataProbe] = None,
        encoder: Optional[Encoder] = None,
    ):
        self.cfg = cfg
        self.probe = probe if probe is not None else FFprobe()
        self.encoder = encoder if encoder is not None else FFmpegEncoder(cfg)
        self.reconciler = DirectoryReconciler(cfg.clean_depth)
        self.runner = EncodeJobRunner(cfg, self.encoder, self.probe)
        self.scheduler = Scheduler(
            self.runner,
            cleanup=self.cleanup,
            interval=cfg.queue_interval,
            max_retries=cfg.max_retries,
        )
        self.router = IngestRouter(cfg, self.probe, self.scheduler.enqueue)
        self.watcher = DirectoryWatcher(cfg.watch_dir, self.router.on_file_added, stable_wait=cfg.stable_wait)

    async def cleanup(self) -> List[Path]:
        """Remove empty directories from the watch and scratch trees, keeping both roots."""
        removed: List[Path] = []
        if not self.cfg.cleanup_enabled:
            return removed
        for root in (self.cfg.watch_dir, self.cfg.temp_dir):
            removed += await asyncio.to_thread(self.reconciler.reconcile, root, True)
        return removed

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run until ``stop_event`` is set (or a termination signal arrives)."""
        if stop_event is None:
            stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop, stop_event)

        logger.info(
            "watchcode starting: %s -> %s (backend=%s codec=%s)",
            self.cfg.watch_dir,
            self.cfg.complete_dir,
            pick_backend(self.cfg.accel).value,
            self.cfg.codec,
        )
        for d in (self.cfg.watch_dir, self.cfg.temp_dir, self.cfg.complete_dir):
            await ensure_dir(d)

        await self.cleanup()
        await self.watcher.start()
        try:
            await self.scheduler.run(stop_event)
        finally:
            logger.info("Stopping watcher...")
            await self.watcher.stop()
            await self.scheduler.stop()
            for sig in installed:
                loop.remove_signal_handler(sig)
            if len(self.scheduler.queue):
                logger.info("%d queued file(s) will be picked up again on restart", len(self.scheduler.queue))

    @staticmethod
    def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> List[int]:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                continue
            installed.append(sig)
        return installed

"""
Ingest routing for watchcode.

Every stable file reported by the watcher passes through IngestRouter,
which either acts on it right away (move a subtitle, delete junk, skip a
sample) or hands it to the transcode queue.
"""

import logging
from pathlib import Path
from typing import Callable

from watchcode.classify import Disposition, classify
from watchcode.config import Config
from watchcode.encoder import codec_family
from watchcode.fileops import delete_file, ensure_dir, move_file, rebase
from watchcode.probe import MetadataProbe, ProbeError

logger = logging.getLogger(__name__)


class IngestRouter:
    """Decides what happens to each newly arrived file."""

    def __init__(self, cfg: Config, probe: MetadataProbe, enqueue: Callable[[Path], None]):
        self.cfg = cfg
        self.probe = probe
        self.enqueue = enqueue

    async def on_file_added(self, path: Path) -> Disposition:
        """Route one file and return its classification."""
        disposition = classify(path, self.cfg.watch_dir)
        if disposition is Disposition.WORK_FILE:
            logger.info("Ignoring '%s' because it is a work file", path)
            return disposition

        try:
            final_path = rebase(path, self.cfg.watch_dir, self.cfg.complete_dir)
        except ValueError:
            logger.warning("Ignoring '%s': not inside %s", path, self.cfg.watch_dir)
            return disposition

        try:
            await ensure_dir(final_path.parent)
        except OSError as e:
            logger.error("Error creating '%s': %s", final_path.parent, e)
            return disposition

        if disposition is Disposition.VIDEO:
            await self._route_video(path, final_path)
        elif disposition is Disposition.SUBTITLE:
            await self._move(path, final_path)
        elif self.cfg.delete_misc:
            try:
                await delete_file(path)
                logger.info("Removed '%s' because it was of unknown type and delete_misc is set", path)
            except OSError as e:
                logger.error("Error handling file '%s': %s", path, e)
        return disposition

    async def _route_video(self, path: Path, final_path: Path) -> None:
        try:
            info = await self.probe.probe(path)
        except ProbeError as e:
            logger.error("Cannot read '%s', leaving it in place: %s", path, e)
            return

        codec = info.video_codec
        if codec is None:
            logger.error("No video stream in '%s', leaving it in place", path)
            return

        if self.cfg.sample_duration > 0 and info.duration is not None and info.duration < self.cfg.sample_duration:
            logger.info("Skipping '%s': looks like a sample (%.0fs)", path, info.duration)
            return

        if self.cfg.codec_skip and codec == codec_family(self.cfg.codec):
            logger.info("'%s' is already %s, no transcode needed", path, codec)
            await self._move(path, final_path)
            return

        self.enqueue(path)
        logger.info("Queued '%s' (%s)", path, codec)

    async def _move(self, src: Path, dst: Path) -> None:
        try:
            await move_file(src, dst)
            logger.info("Moved '%s' to '%s'", src, dst)
        except OSError as e:
            logger.error("Error handling file '%s': %s", src, e)

"""
Execution of a single transcode job.

The runner encodes into the scratch tree, then moves the result into the
completed tree. It reports the outcome; requeueing a failed job is up to
the scheduler that owns the queue.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from watchcode.config import Config
from watchcode.encoder import AccelBackend, EncodeError, EncodeProgress, ProgressCallback, pick_backend
from watchcode.fileops import copy_file, delete_file, ensure_dir, rebase
from watchcode.probe import MetadataProbe, ProbeError

logger = logging.getLogger(__name__)


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Job:
    """One transcode of ``source``, created when it leaves the queue."""

    source: Path
    temp_output: Path
    final_output: Path
    backend: AccelBackend
    codec: str
    bitrate: str
    state: JobState = JobState.PENDING
    error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED)


class Encoder(Protocol):
    async def encode(
        self,
        src: Path,
        dst: Path,
        duration: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None: ...


class EncodeJobRunner:
    """Runs one queued path through the encoder and relocates the output."""

    def __init__(self, cfg: Config, encoder: Encoder, probe: Optional[MetadataProbe] = None):
        self.cfg = cfg
        self.encoder = encoder
        self.probe = probe

    def make_job(self, path: Path) -> Job:
        return Job(
            source=path,
            temp_output=rebase(path, self.cfg.watch_dir, self.cfg.temp_dir),
            final_output=rebase(path, self.cfg.watch_dir, self.cfg.complete_dir),
            backend=pick_backend(self.cfg.accel),
            codec=self.cfg.codec,
            bitrate=self.cfg.bitrate,
        )

    async def run(self, path: Path) -> Job:
        """Encode ``path``; the returned job is SUCCEEDED or FAILED."""
        try:
            job = self.make_job(path)
        except ValueError as e:
            logger.error("Cannot process '%s': %s", path, e)
            return Job(path, path, path, pick_backend(self.cfg.accel), self.cfg.codec, self.cfg.bitrate,
                       state=JobState.FAILED, error=str(e))

        logger.info("Converting '%s'", path)
        job.state = JobState.RUNNING
        try:
            await ensure_dir(job.temp_output.parent)
            duration = await self._duration(path)
            await self.encoder.encode(job.source, job.temp_output, duration, self._on_progress)
        except (EncodeError, OSError) as e:
            job.state = JobState.FAILED
            job.error = str(e)
            logger.error("Error during processing of '%s': %s", path, e)
            await self._discard_temp(job)
            return job

        job.state = JobState.SUCCEEDED
        logger.info("Processing finished for '%s'", path)
        await self._relocate(job)
        return job

    async def _duration(self, path: Path) -> Optional[float]:
        # Only needed to turn ffmpeg timestamps into percentages
        if not self.cfg.show_progress or self.probe is None:
            return None
        try:
            return (await self.probe.probe(path)).duration
        except ProbeError as e:
            logger.debug("No duration for '%s': %s", path, e)
            return None

    def _on_progress(self, progress: EncodeProgress) -> None:
        if self.cfg.show_progress:
            logger.info("Processing: %.1f%% done at %.1f fps", progress.percent, progress.fps)

    async def _relocate(self, job: Job) -> None:
        """Copy output to the completed tree, drop temp and source. No rollback."""
        try:
            await ensure_dir(job.final_output.parent)
            await copy_file(job.temp_output, job.final_output)
            await delete_file(job.temp_output)
            logger.info("Moved file '%s' to file '%s'", job.temp_output, job.final_output)
        except OSError as e:
            logger.error("Error moving '%s' to '%s': %s", job.temp_output, job.final_output, e)
            return

        if not self.cfg.delete_source:
            return
        try:
            await delete_file(job.source)
            logger.info("Deleted source file '%s'", job.source)
        except OSError as e:
            logger.error("Error deleting source file '%s': %s", job.source, e)

    async def _discard_temp(self, job: Job) -> None:
        try:
            await delete_file(job.temp_output)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove partial output '%s': %s", job.temp_output, e)

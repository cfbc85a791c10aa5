"""
watchcode - Watch folder transcoding daemon with hardware acceleration.

Watches a directory for newly arrived videos, transcodes them with ffmpeg
(CPU, VAAPI, QSV, NVENC or Vulkan) and moves videos and subtitles into a
completed-content tree, removing empty directories along the way.

Example usage:
    # As a command-line tool
    $ watchcode --watch-dir /downloads --complete-dir /media --accel va

    # As a Python module
    import asyncio
    from pathlib import Path
    from watchcode import Config, Daemon

    cfg = Config(watch_dir=Path("/downloads"), complete_dir=Path("/media"))
    asyncio.run(Daemon(cfg).run())
"""

__version__ = "1.0.0"
__license__ = "GPL-3.0"
__url__ = "https://github.com/watchcode/watchcode"
__description__ = "Watch folder transcoding daemon with hardware acceleration"

# Public API exports
from watchcode.classify import Disposition, classify
from watchcode.config import Config, ConfigError, load_config
from watchcode.daemon import Daemon
from watchcode.encoder import AccelBackend, EncodeError, FFmpegEncoder, build_encode_cmd, pick_backend
from watchcode.probe import FFprobe, MediaInfo, ProbeError
from watchcode.reconcile import DirectoryReconciler
from watchcode.router import IngestRouter
from watchcode.runner import EncodeJobRunner, Job, JobState
from watchcode.scheduler import Scheduler, TranscodeQueue

__all__ = [
    # Version info
    "__version__",
    "__license__",
    "__url__",
    # Config
    "Config",
    "ConfigError",
    "load_config",
    # Pipeline
    "Disposition",
    "classify",
    "IngestRouter",
    "TranscodeQueue",
    "Scheduler",
    "EncodeJobRunner",
    "Job",
    "JobState",
    "DirectoryReconciler",
    "Daemon",
    # ffmpeg / ffprobe
    "AccelBackend",
    "pick_backend",
    "build_encode_cmd",
    "FFmpegEncoder",
    "EncodeError",
    "FFprobe",
    "MediaInfo",
    "ProbeError",
]

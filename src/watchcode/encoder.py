"""
ffmpeg invocation for watchcode.

Contains:
- Acceleration backend selection and per-backend flag tables
- ffmpeg command building
- Progress parsing from ffmpeg stats output
- Async execution of one encode with progress callbacks
"""

import asyncio
import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from watchcode.config import Config

logger = logging.getLogger(__name__)


class EncodeError(Exception):
    """ffmpeg could not be started or exited with an error."""


# -------------------- BACKEND SELECTION --------------------


class AccelBackend(str, Enum):
    CPU = "cpu"
    VAAPI = "va"
    QSV = "qsv"
    NVENC = "nvenc"
    VULKAN = "vulkan"


_BACKEND_ALIASES = {
    "": AccelBackend.CPU,
    "none": AccelBackend.CPU,
    "software": AccelBackend.CPU,
    "vaapi": AccelBackend.VAAPI,
}


def pick_backend(name: str) -> AccelBackend:
    """
    Resolve a configured backend name.

    Unknown names fall back to CPU encoding.
    """
    key = (name or "").strip().lower()
    if key in _BACKEND_ALIASES:
        return _BACKEND_ALIASES[key]
    try:
        return AccelBackend(key)
    except ValueError:
        logger.warning("Unknown acceleration api %r, using cpu", name)
        return AccelBackend.CPU


def encoder_name(backend: AccelBackend, codec: str) -> str:
    """ffmpeg encoder name for ``codec`` on ``backend`` (e.g. av1_vaapi)."""
    if backend is AccelBackend.VAAPI:
        return f"{codec}_vaapi"
    if backend is AccelBackend.QSV:
        return f"{codec}_qsv"
    if backend is AccelBackend.NVENC:
        return f"{codec}_nvenc"
    return codec


def input_args_for(backend: AccelBackend, cfg: Config) -> List[str]:
    """Decoder-side acceleration flags, placed before ``-i``."""
    if backend is AccelBackend.VAAPI:
        return ["-hwaccel", "vaapi", "-hwaccel_device", cfg.device, "-hwaccel_output_format", "vaapi"]
    if backend is AccelBackend.QSV:
        return ["-hwaccel", "qsv", "-hwaccel_device", cfg.device]
    if backend is AccelBackend.NVENC:
        return ["-hwaccel", "cuda"]
    if backend is AccelBackend.VULKAN:
        return ["-init_hw_device", cfg.device, "-hwaccel", "vulkan", "-hwaccel_output_format", "vulkan"]
    return []


def video_args_for(backend: AccelBackend, cfg: Config) -> List[str]:
    """Get ffmpeg video encoding arguments for the specified backend."""
    enc = encoder_name(backend, cfg.codec)
    if backend is AccelBackend.VAAPI:
        return ["-vf", "format=nv12|vaapi,hwupload", "-c:v", enc, "-b:v", cfg.bitrate]
    if backend is AccelBackend.QSV:
        # QSV takes a quality index rather than a bitrate
        return ["-c:v", enc, "-global_quality", cfg.bitrate]
    if backend is AccelBackend.NVENC:
        return ["-c:v", enc, "-b:v", cfg.bitrate]
    if backend is AccelBackend.VULKAN:
        return ["-vf", "format=nv12,hwupload", "-c:v", enc, "-b:v", cfg.bitrate]
    return ["-c:v", enc, "-b:v", cfg.bitrate]


# ffprobe codec name for common software encoder libraries
_CODEC_FAMILIES = {
    "libx264": "h264",
    "x264": "h264",
    "avc": "h264",
    "libx265": "hevc",
    "x265": "hevc",
    "h265": "hevc",
    "libsvtav1": "av1",
    "libaom-av1": "av1",
    "librav1e": "av1",
    "libvpx-vp9": "vp9",
    "libvpx": "vp8",
}


def codec_family(name: str) -> str:
    """Normalize an encoder or codec name to the codec name ffprobe reports."""
    key = (name or "").strip().lower()
    for suffix in ("_vaapi", "_qsv", "_nvenc", "_vulkan", "_amf"):
        if key.endswith(suffix):
            key = key[: -len(suffix)]
            break
    return _CODEC_FAMILIES.get(key, key)


def have_encoder(name: str, ffmpeg: str = "ffmpeg") -> bool:
    """Check if ffmpeg has the specified encoder."""
    try:
        result = subprocess.run([ffmpeg, "-hide_banner", "-encoders"], capture_output=True, text=True, timeout=4.0)
    except (OSError, subprocess.SubprocessError):
        return False
    # Format is like: " V....D libx264    description..."
    for line in result.stdout.split("\n"):
        parts = line.split()
        if len(parts) >= 2 and parts[1] == name:
            return True
    return False


# -------------------- FFMPEG COMMAND BUILDING --------------------


def build_encode_cmd(src: Path, dst: Path, cfg: Config, ffmpeg: str = "ffmpeg") -> List[str]:
    """
    Build the ffmpeg command that transcodes ``src`` into ``dst``.

    Video is re-encoded with the configured backend and codec; audio and
    subtitle streams are copied as-is.
    """
    backend = pick_backend(cfg.accel)
    args = [ffmpeg, "-hide_banner", "-nostdin", "-y"]
    args += input_args_for(backend, cfg)
    args += ["-i", str(src)]
    args += video_args_for(backend, cfg)
    args += ["-c:a", "copy", "-c:s", "copy"]
    args += [str(dst)]
    return args


# -------------------- PROGRESS PARSING --------------------


@dataclass
class EncodeProgress:
    percent: float = 0.0
    fps: float = 0.0
    current_ms: int = 0
    speed: str = ""


ProgressCallback = Callable[[EncodeProgress], None]


def parse_ffmpeg_progress(line: str, dur_ms: int) -> Optional[EncodeProgress]:
    """
    Parse an ffmpeg stats line.

    Returns None if the line carries no progress information.
    """
    m = re.search(r"time=\s*(\d+):(\d+):(\d+)[\.,](\d+)", line)
    if not m:
        return None

    # Accept both dot and comma as decimal separator (locale dependent)
    h, mi, s, cs = int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4))
    progress = EncodeProgress(current_ms=(h * 3600 + mi * 60 + s) * 1000 + cs * 10)
    if dur_ms > 0:
        progress.percent = min(100.0, (progress.current_ms / dur_ms) * 100)

    m = re.search(r"fps=\s*([0-9.]+)", line)
    if m:
        try:
            progress.fps = float(m.group(1))
        except ValueError:
            pass

    m = re.search(r"speed=\s*([0-9.]+)x", line)
    if m:
        progress.speed = f"{float(m.group(1)):.1f}x"

    return progress


_LINE_SPLIT = re.compile(rb"[\r\n]")


# -------------------- EXECUTION --------------------


class FFmpegEncoder:
    """Runs one ffmpeg encode at a time as an asyncio subprocess."""

    def __init__(self, cfg: Config, ffmpeg: str = "ffmpeg", tail_lines: int = 20):
        self.cfg = cfg
        self.ffmpeg = ffmpeg
        self.tail_lines = tail_lines

    async def encode(
        self,
        src: Path,
        dst: Path,
        duration: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Transcode ``src`` into ``dst``.

        Args:
            src: Source video.
            dst: Output file, overwritten if present.
            duration: Source duration in seconds, used for percentages.
            on_progress: Called with each parsed progress update.

        Raises:
            EncodeError: ffmpeg failed to start or exited non-zero.
        """
        cmd = build_encode_cmd(src, dst, self.cfg, ffmpeg=self.ffmpeg)
        logger.debug("CMD: %s", shlex.join(cmd))
        dur_ms = int(duration * 1000) if duration else 0

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodeError(f"cannot start {self.ffmpeg}: {e}") from e

        tail: List[str] = []
        try:
            await self._read_stderr(proc, dur_ms, on_progress, tail)
            rc = await proc.wait()
        except asyncio.CancelledError:
            # Daemon shutdown: do not leave an orphaned encoder behind
            if proc.returncode is None:
                proc.terminate()
                await proc.wait()
            raise

        if rc != 0:
            detail = tail[-1] if tail else ""
            raise EncodeError(f"ffmpeg error (rc={rc}) {detail}".strip())

    async def _read_stderr(
        self,
        proc: asyncio.subprocess.Process,
        dur_ms: int,
        on_progress: Optional[ProgressCallback],
        tail: List[str],
    ) -> None:
        # ffmpeg terminates stats lines with \r, so split on both
        assert proc.stderr is not None
        buf = b""
        while True:
            chunk = await proc.stderr.read(4096)
            if not chunk:
                break
            buf += chunk
            *lines, buf = _LINE_SPLIT.split(buf)
            for raw in lines:
                self._handle_line(raw, dur_ms, on_progress, tail)
        if buf:
            self._handle_line(buf, dur_ms, on_progress, tail)

    def _handle_line(
        self,
        raw: bytes,
        dur_ms: int,
        on_progress: Optional[ProgressCallback],
        tail: List[str],
    ) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        progress = parse_ffmpeg_progress(line, dur_ms)
        if progress is None:
            tail.append(line)
            del tail[: -self.tail_lines]
            return
        if on_progress is not None:
            on_progress(progress)

"""
Media inspection for watchcode using ffprobe.

Returns the stream list and container duration of a file, or raises
ProbeError when the file cannot be read or parsed.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """ffprobe failed or returned unusable output."""


@dataclass
class StreamInfo:
    index: int
    codec_type: str
    codec_name: str


@dataclass
class MediaInfo:
    """Streams and duration (seconds) of a media file."""

    streams: List[StreamInfo] = field(default_factory=list)
    duration: Optional[float] = None

    @property
    def video_codec(self) -> Optional[str]:
        """Codec name of the first video stream, ignoring cover art."""
        for s in self.streams:
            if s.codec_type == "video" and s.codec_name not in ("mjpeg", "png"):
                return s.codec_name
        return None


class MetadataProbe(Protocol):
    async def probe(self, path: Path) -> MediaInfo: ...


def _to_float(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if f > 0 else None


def parse_probe_output(data: Dict[str, Any]) -> MediaInfo:
    """Build MediaInfo from ``ffprobe -print_format json`` output."""
    streams = []
    for i, s in enumerate(data.get("streams") or []):
        streams.append(
            StreamInfo(
                index=int(s.get("index", i)),
                codec_type=str(s.get("codec_type") or ""),
                codec_name=str(s.get("codec_name") or "").lower(),
            )
        )

    # Container duration first, then fall back to the video stream
    duration = _to_float((data.get("format") or {}).get("duration"))
    if duration is None:
        for s in data.get("streams") or []:
            if s.get("codec_type") == "video":
                duration = _to_float(s.get("duration"))
                if duration is not None:
                    break

    return MediaInfo(streams=streams, duration=duration)


class FFprobe:
    """MetadataProbe implementation that shells out to ffprobe."""

    def __init__(self, binary: str = "ffprobe", timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    def command(self, path: Path) -> List[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            "-show_format",
            str(path),
        ]

    async def probe(self, path: Path) -> MediaInfo:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeError(f"cannot run {self.binary}: {e}") from e

        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ProbeError(f"{self.binary} timed out after {self.timeout:.0f}s") from e

        if proc.returncode != 0:
            msg = err.decode("utf-8", errors="replace").strip().splitlines()
            raise ProbeError(msg[-1] if msg else f"{self.binary} rc={proc.returncode}")

        try:
            data = json.loads(out)
        except ValueError as e:
            raise ProbeError(f"invalid ffprobe output: {e}") from e
        if not isinstance(data, dict):
            raise ProbeError("invalid ffprobe output")

        info = parse_probe_output(data)
        logger.debug("Probed %s: codec=%s duration=%s", path, info.video_codec, info.duration)
        return info

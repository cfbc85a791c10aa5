"""
Path classification for watchcode.

Decides what kind of file a discovered path is, using only its name:
in-progress work files, videos, subtitles, or anything else.
"""

from enum import Enum
from pathlib import PurePath
from typing import Optional, Union

VIDEO_EXTENSIONS = frozenset({".mp4", ".mkv", ".m4v"})
SUBTITLE_EXTENSIONS = frozenset({".srt", ".ass", ".sub", ".ssa", ".smi", ".vtt"})

# Substrings left behind by download clients and unpackers
WORK_MARKERS = (".queued", "_UNPACK_")


class Disposition(Enum):
    """What the router should do with a path."""

    WORK_FILE = "work"
    VIDEO = "video"
    SUBTITLE = "subtitle"
    MISC = "misc"


def _relative_parts(path: PurePath, root: Optional[PurePath]):
    if root is not None:
        try:
            return path.relative_to(root).parts
        except ValueError:
            pass
    return tuple(p for p in path.parts if p != path.anchor)


def is_work_file(path: Union[str, PurePath], root: Union[str, PurePath, None] = None) -> bool:
    """
    Return True for in-progress downloads, archives and hidden files.

    A path is a work file when any of its segments starts with "." or it
    contains one of WORK_MARKERS. With ``root`` only the part below it is
    inspected, so a hidden directory above the watch root does not count.
    """
    p = PurePath(path)
    r = PurePath(root) if root is not None else None
    parts = _relative_parts(p, r)
    if any(part.startswith(".") for part in parts):
        return True
    rel = "/".join(parts)
    return any(marker in rel for marker in WORK_MARKERS)


def classify(path: Union[str, PurePath], root: Union[str, PurePath, None] = None) -> Disposition:
    """Classify ``path`` by work-file markers and (case-insensitive) extension."""
    if is_work_file(path, root):
        return Disposition.WORK_FILE

    ext = PurePath(path).suffix.lower()
    if ext in VIDEO_EXTENSIONS:
        return Disposition.VIDEO
    if ext in SUBTITLE_EXTENSIONS:
        return Disposition.SUBTITLE
    return Disposition.MISC

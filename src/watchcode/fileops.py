"""
Filesystem operations used by the router and the job runner.

Blocking calls run in a worker thread so the event loop keeps serving
watcher events and queue ticks while large files are copied.
"""

import asyncio
import os
import shutil
from pathlib import Path


def rebase(path: Path, src_root: Path, dst_root: Path) -> Path:
    """
    Map ``path`` under ``src_root`` to the same relative location under ``dst_root``.

    Raises ValueError if ``path`` is not below ``src_root``.
    """
    return dst_root / path.relative_to(src_root)


def _move(src: Path, dst: Path) -> None:
    # Copy then delete: the trees may live on different filesystems
    shutil.copyfile(src, dst)
    try:
        shutil.copystat(src, dst)
    except OSError:
        pass
    os.unlink(src)


async def move_file(src: Path, dst: Path) -> None:
    """Copy ``src`` to ``dst`` then delete ``src``. No rollback on failure."""
    await asyncio.to_thread(_move, src, dst)


async def copy_file(src: Path, dst: Path) -> None:
    await asyncio.to_thread(shutil.copyfile, src, dst)


async def delete_file(path: Path) -> None:
    await asyncio.to_thread(os.unlink, path)


async def ensure_dir(path: Path) -> None:
    """Create ``path`` and its parents if missing."""
    await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)

"""
Empty directory cleanup for the watch and scratch trees.
"""

import logging
import os
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


class DirectoryReconciler:
    """
    Remove directories left empty after their files were moved away.

    Subdirectories are visited depth-first and checked after their children,
    so a chain of directories that only contained each other collapses in one
    pass. A directory at depth ``d`` below the root (root children are depth
    1) is only removed when ``d >= clean_depth``; the root itself only when
    ``clean_depth`` is 0. A negative ``clean_depth`` disables cleanup.
    """

    def __init__(self, clean_depth: int = 1):
        self.clean_depth = clean_depth

    @property
    def enabled(self) -> bool:
        return self.clean_depth >= 0

    def reconcile(self, root: Path, keep_root: bool = False) -> List[Path]:
        """
        Clean ``root`` and return the directories that were removed.

        With ``keep_root`` the root survives even when ``clean_depth`` is 0.
        """
        removed: List[Path] = []
        if not self.enabled:
            return removed
        self._walk(root, 0, removed)
        if self.clean_depth == 0 and not keep_root and self._remove_if_empty(root):
            removed.append(root)
        return removed

    def _walk(self, directory: Path, depth: int, removed: List[Path]) -> None:
        try:
            with os.scandir(directory) as it:
                subdirs = [Path(e.path) for e in it if e.is_dir(follow_symlinks=False)]
        except OSError as e:
            logger.error("Error processing directory %s: %s", directory, e)
            return

        for sub in sorted(subdirs):
            self._walk(sub, depth + 1, removed)
            if depth + 1 >= self.clean_depth and self._remove_if_empty(sub):
                removed.append(sub)

    def _remove_if_empty(self, directory: Path) -> bool:
        try:
            if any(directory.iterdir()):
                return False
            directory.rmdir()
        except FileNotFoundError:
            return False
        except OSError as e:
            # Someone wrote into it between the listing and the rmdir
            logger.error("Could not remove %s: %s", directory, e)
            return False
        logger.debug("Removed empty directory %s", directory)
        return True

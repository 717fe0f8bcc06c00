"""Tree walker — enumerate regular files beneath a scan root.

Returns a fresh list on every call.  Excluded directory names (version
control metadata, dependency caches) are pruned wherever they appear.
Directory symlinks are never followed; a symlink is reported only when its
target is a regular file.
"""
from __future__ import annotations

import os
import stat
from collections.abc import Iterable
from pathlib import Path
from typing import Union

import structlog

from shieldops.config import DEFAULT_EXCLUDED_DIRS
from shieldops.shared.exceptions import FileAccessError

logger = structlog.get_logger(__name__)


def _is_regular_file(entry: os.DirEntry[str]) -> bool:
    if entry.is_symlink():
        try:
            return stat.S_ISREG(os.stat(entry.path).st_mode)
        except OSError:
            return False
    return entry.is_file(follow_symlinks=False)


def walk_files(
    root: Union[str, Path],
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
) -> list[Path]:
    """Return absolute paths of every regular file under *root*.

    Unlistable directories and entries that cannot be stat'ed are skipped;
    partial results are expected on trees with permission quirks.

    Raises:
        FileAccessError: *root* does not exist or is not a directory.
    """
    root_path = Path(root).resolve()
    if not root_path.is_dir():
        raise FileAccessError(
            f"Scan root is not a directory: {root_path}",
            context={"root": str(root_path)},
        )

    excluded = frozenset(exclude_dirs)
    files: list[Path] = []
    pending: list[Path] = [root_path]
    skipped_dirs = 0

    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as exc:
            skipped_dirs += 1
            logger.debug("walk_dir_unreadable", directory=str(directory), error=str(exc))
            continue

        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name not in excluded:
                        pending.append(Path(entry.path))
                elif _is_regular_file(entry):
                    files.append(Path(entry.path))
            except OSError as exc:
                logger.debug("walk_entry_unreadable", path=entry.path, error=str(exc))

    logger.debug(
        "walk_complete",
        root=str(root_path),
        files=len(files),
        skipped_dirs=skipped_dirs,
    )
    return files

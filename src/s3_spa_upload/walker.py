# src/s3_spa_upload/walker.py
"""
Enumerates the files of the directory tree to upload.

The walk is all-or-nothing: any unreadable directory aborts it with a
`FilesystemError` instead of returning a partial file list, since a partial
list would make the later deletion pass remove objects that still exist
locally.
"""

import logging
import os
from pathlib import Path
from typing import FrozenSet, List, Tuple, Union

from s3_spa_upload.exceptions import FilesystemError

logger: logging.Logger = logging.getLogger(__name__)


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def walk_directory(root: Union[str, Path]) -> List[Path]:
    """
    Lists every regular file below `root`, at any depth.

    Symlinks, to files or directories, are only followed when they resolve
    to a location inside `root`. A directory reachable through several paths
    (e.g. `latest -> v2`) is listed under each of them. A symlink back to one
    of its own ancestors is a cycle and is not entered. The order of the
    result is unspecified.

    Args:
        root (Union[str, Path]): The directory to walk.

    Returns:
        List[Path]: Absolute paths of all files, rooted at `root`.

    Raises:
        FilesystemError: If `root` is not a readable directory, or any
            directory below it cannot be listed.
    """
    root_path: Path = Path(os.path.abspath(root))
    if not root_path.exists():
        raise FilesystemError(f"Directory not found: '{root_path}'")
    if not root_path.is_dir():
        raise FilesystemError(f"Not a directory: '{root_path}'")

    real_root: str = os.path.realpath(root_path)
    # Each entry carries the real paths of the directories above it.
    stack: List[Tuple[Path, FrozenSet[str]]] = [(root_path, frozenset())]
    files: List[Path] = []

    while stack:
        directory, ancestors = stack.pop()
        real_directory: str = os.path.realpath(directory)
        if real_directory in ancestors:
            logger.debug(f"Skipping symlink cycle: '{directory}'")
            continue
        lineage: FrozenSet[str] = ancestors | {real_directory}

        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.is_symlink() and not _is_within(
                        os.path.realpath(entry.path), real_root
                    ):
                        if os.path.exists(entry.path):
                            logger.warning(
                                f"Skipping symlink to a location outside the "
                                f"upload root: '{entry.path}'"
                            )
                        else:
                            logger.debug(f"Skipping broken symlink: '{entry.path}'")
                        continue
                    if entry.is_dir():
                        stack.append((Path(entry.path), lineage))
                    elif entry.is_file():
                        files.append(Path(entry.path))
                    elif entry.is_symlink():
                        logger.debug(f"Skipping broken symlink: '{entry.path}'")
        except OSError as e:
            raise FilesystemError(
                f"Cannot read directory '{directory}': {e.strerror or e}"
            ) from e

    logger.debug(f"Found {len(files)} files under '{root_path}'.")
    return files

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from repo_to_text.config import FilterPolicy, TreeEntry
from repo_to_text.exceptions import ReadError
from repo_to_text.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterator


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def iter_directory(root: Path, policy: FilterPolicy, current: Path | None = None) -> Iterator[Path]:
    """Walk `root` depth-first, yielding regular files.

    Entries of a directory are visited in name order. Sub-directories whose name is
    excluded by `policy` are never entered, and symlinked directories are not followed.

    Args:
        root (Path): the root directory of the walk
        policy (FilterPolicy): the policy whose excluded directory names prune the walk
        current (Path | None): the directory being visited; defaults to `root`

    Yields:
        Path: absolute path of each regular file reached
    """
    directory = current or root
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise ReadError(path=directory, message=f"Failed to list directory: {e}") from e

    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if policy.is_excluded_dir(entry.name):
                logger.debug("pruned_directory", path=relpath(Path(entry.path), root))
                continue
            yield from iter_directory(root, policy, Path(entry.path))
        elif is_regular_file(Path(entry.path)):
            yield Path(entry.path)


def walk_files(root: Path, policy: FilterPolicy) -> list[TreeEntry]:
    """Collect file entries by walking the filesystem under `root`.

    Args:
        root (Path): the root directory to walk
        policy (FilterPolicy): the policy pruning excluded directories

    Returns:
        list[TreeEntry]: a file entry per file found, with root-relative paths and
            the absolute path as locator
    """
    return [
        TreeEntry(path=relpath(p, root), locator=str(p))
        for p in iter_directory(root, policy)
    ]


def read_text(path: Path) -> str:
    """Read a text file as-is, replacing undecodable bytes.

    Line endings are kept untouched.

    Args:
        path (Path): the file path to read

    Raises:
        ReadError: if the file cannot be read

    Returns:
        str: the file contents
    """
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except OSError as e:
        raise ReadError(path=path, message=f"Failed to read file {path.name}: {e}") from e


async def read_text_async(path: Path) -> str:
    """Read a text file without blocking the event loop."""
    return await asyncio.to_thread(read_text, path)

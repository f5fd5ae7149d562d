"""
Repository discovery for gitstatus.

Walks a directory tree and returns the roots of the git working copies
in it. The walk stops at the first repository root on each branch of the
tree, so repositories nested inside another working copy are not reported.
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Union

logger = logging.getLogger(__name__)


class NoRepositoryFoundError(Exception):
    """No repository root is reachable from the requested path."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"No git repos found at {path}")


class FileSystem:
    """The two filesystem questions the walk needs answered."""

    def list_dir(self, path: Path) -> Iterable[Path]:
        raise NotImplementedError

    def is_dir(self, path: Path) -> bool:
        raise NotImplementedError


class LocalFileSystem(FileSystem):
    """The real filesystem. Directory symlinks are not followed."""

    def list_dir(self, path: Path) -> Iterable[Path]:
        return list(path.iterdir())

    def is_dir(self, path: Path) -> bool:
        return path.is_dir() and not path.is_symlink()


def _walk(
    path: Path, is_repository_root: Callable[[Path], bool], fs: FileSystem
) -> List[Path]:
    try:
        if is_repository_root(path):
            return [path]
        if not fs.is_dir(path):
            return []
        entries = fs.list_dir(path)
    except OSError as e:
        logger.warning("Skipping unreadable directory %s: %s", path, e)
        return []

    roots: List[Path] = []
    for entry in entries:
        try:
            descend = fs.is_dir(entry)
        except OSError as e:
            logger.warning("Skipping unreadable directory %s: %s", entry, e)
            continue
        if descend:
            roots.extend(_walk(entry, is_repository_root, fs))
    return roots


def discover_repositories(
    path: Union[str, Path],
    is_repository_root: Callable[[Path], bool],
    fs: FileSystem = LocalFileSystem(),
) -> List[Path]:
    """Find the repository roots reachable from *path*.

    Args:
        path: Directory (or repository root) to start from.
        is_repository_root: Classifier for repository roots, normally
            ``GitCollaborator.is_repository_root``.
        fs: Filesystem capability; swap in a fake for tests.

    Returns:
        Repository roots in filesystem order.

    Raises:
        NoRepositoryFoundError: If the walk finds nothing.
    """
    start = Path(path)
    logger.debug("Checking path: %s", start)

    roots = _walk(start, is_repository_root, fs)
    if not roots:
        raise NoRepositoryFoundError(start)
    return roots

"""File-set helpers: glob resolution with exclusions and recursive copy."""
import logging
import os
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Version-control metadata is never part of a package's content
DEFAULT_EXCLUDES = (".git",)

_MAGIC = set("*?[")


def has_magic(pattern: str) -> bool:
    """Whether `pattern` contains glob wildcards."""
    return any(c in _MAGIC for c in pattern)


def is_excluded(parts: Iterable[str], exclude: Sequence[str]) -> bool:
    return any(fnmatch(part, pattern) for part in parts for pattern in exclude)


def resolve_glob(root: Path, pattern: str, exclude: Optional[Sequence[str]] = None) -> List[Path]:
    """Resolve a glob pattern inside `root`.

    Args:
        root: Directory the pattern is relative to
        pattern: Relative glob, e.g. "*" or "roles/*"
        exclude: fnmatch patterns; a match is dropped when any of its path
            components (relative to root) matches. Defaults to DEFAULT_EXCLUDES.

    Returns:
        Sorted list of matching paths (under `root`, not resolved)
    """
    root = Path(root)
    if exclude is None:
        exclude = DEFAULT_EXCLUDES

    if not root.is_dir():
        raise ValueError(f"root must be a directory: {root}")
    if os.path.isabs(pattern):
        raise ValueError(f"pattern must be relative: {pattern}")

    matches = [
        path for path in root.glob(pattern)
        if not is_excluded(path.relative_to(root).parts, exclude)
    ]
    matches.sort()

    logger.debug(f"Resolved {pattern} to {len(matches)} paths in {root}")
    return matches


def copy_tree(src: Path, dest: Path, exclude: Optional[Sequence[str]] = None) -> None:
    """Recursively copy `src` into a new directory `dest`, skipping excluded names.

    Symlinks are copied as links. `dest` must not exist.
    """
    if exclude is None:
        exclude = DEFAULT_EXCLUDES

    def ignore(_directory: str, names: List[str]) -> List[str]:
        return [name for name in names if is_excluded((name,), exclude)]

    shutil.copytree(str(src), str(dest), symlinks=True, ignore=ignore)

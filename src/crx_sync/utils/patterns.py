"""Wildcard matching of file paths."""

from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable


def matches_wildcard(path: Path, patterns: Iterable[str]) -> bool:
    """Check if a path matches any of Ant-like wildcards (e.g. ``**/*-SNAPSHOT*.zip``).

    A leading ``**/`` also matches files given without any directory.
    """
    candidate = path.as_posix()
    for pattern in patterns:
        if fnmatch(candidate, pattern):
            return True
        if pattern.startswith("**/") and fnmatch(path.name, pattern[3:]):
            return True
    return False

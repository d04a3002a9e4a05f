"""
Source path selection for backup operations.

Resolves which root directories go into an archive and which exclusion
patterns apply to them.
"""

import os
import logging
from typing import Iterable, List, Optional


logger = logging.getLogger(__name__)


def _normalize(path: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


def _is_covered(path: str, roots: List[str]) -> bool:
    """Check whether path equals or lies under one of the selected roots."""
    for root in roots:
        if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
            return True
    return False


def select_roots(
    state_dir: str,
    include: Iterable[str] = None,
    user_data_dir: Optional[str] = None,
    include_data: bool = False
) -> List[str]:
    """
    Build the ordered list of roots to archive.

    The primary state directory always comes first. Extra include paths follow
    unless an already selected root covers them. The user data directory is
    appended only when requested and present on disk.

    Args:
        state_dir: Node's primary state directory
        include: Extra paths from the backup policy
        user_data_dir: Optional user data directory
        include_data: Whether the caller opted in to user data

    Returns:
        List of absolute root paths
    """
    roots = [_normalize(state_dir)]

    for path in include or []:
        if not path:
            continue
        candidate = _normalize(path)
        if _is_covered(candidate, roots):
            logger.debug(f"Include path already covered: {path}")
            continue
        roots.append(candidate)

    if include_data and user_data_dir:
        data_dir = _normalize(user_data_dir)
        if not os.path.isdir(data_dir):
            logger.info(f"User data directory not present, skipping: {data_dir}")
        elif not _is_covered(data_dir, roots):
            roots.append(data_dir)

    return roots


def select_exclusions(
    defaults: Iterable[str] = None,
    extra: Iterable[str] = None,
    backup_dir: Optional[str] = None
) -> List[str]:
    """
    Merge default and policy exclusion patterns, keeping first occurrence order.

    The backup directory, when given, is always the first pattern so an
    archive never captures earlier archives or itself.

    Args:
        defaults: Patterns that always apply
        extra: Patterns from the backup policy
        backup_dir: Local backup directory

    Returns:
        De-duplicated list of patterns
    """
    candidates = [_normalize(backup_dir)] if backup_dir else []
    candidates += list(defaults or []) + list(extra or [])

    patterns = []
    for pattern in candidates:
        if pattern and pattern not in patterns:
            patterns.append(pattern)
    return patterns

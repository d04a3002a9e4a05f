"""
Exclusion matching for archive entries.

The pattern language is intentionally small:
- substring: matches if the pattern occurs anywhere in the full path
- suffix glob ``*X``: matches if the entry's base name ends with ``X``
- bare name: matches if the base name equals the pattern

There is no negation, no directory scoping and no ``**`` support.
"""

import os
from typing import Iterable, List, Optional


def matches_pattern(pattern: str, name: str, path: str) -> bool:
    """
    Check a single exclusion pattern against an entry.

    Args:
        pattern: Exclusion pattern
        name: Base name of the entry
        path: Full path of the entry

    Returns:
        True if the pattern matches the entry
    """
    if not pattern:
        return False

    if pattern in path:
        return True

    if pattern.startswith('*'):
        return name.endswith(pattern[1:])

    return name == pattern


class ExclusionMatcher:
    """
    Decides whether a filesystem entry is omitted from an archive.

    An entry is excluded if any configured pattern matches it.
    """

    def __init__(self, patterns: Iterable[str] = None):
        self.patterns: List[str] = [p for p in (patterns or []) if p]

    def match(self, path: str, name: Optional[str] = None) -> Optional[str]:
        """
        Find the first pattern that excludes an entry.

        Args:
            path: Full path of the entry
            name: Base name (derived from path if omitted)

        Returns:
            The matching pattern, or None if the entry is included
        """
        if name is None:
            name = os.path.basename(path.rstrip(os.sep)) or path

        for pattern in self.patterns:
            if matches_pattern(pattern, name, path):
                return pattern
        return None

    def is_excluded(self, path: str, name: Optional[str] = None) -> bool:
        return self.match(path, name) is not None

    def __repr__(self):
        return f'<ExclusionMatcher patterns={self.patterns!r}>'

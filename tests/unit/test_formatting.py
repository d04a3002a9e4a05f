"""
Unit tests for display helpers (stateguard/utils/formatting.py).
"""

import pytest

from stateguard.utils.formatting import format_size


@pytest.mark.parametrize("size,expected", [
    (0, '0 B'),
    (1023, '1023 B'),
    (1024, '1.0 KB'),
    (1536, '1.5 KB'),
    (10 * 1024 * 1024, '10.0 MB'),
    (3 * 1024 ** 3, '3.0 GB'),
])
def test_format_size(size, expected):
    assert format_size(size) == expected

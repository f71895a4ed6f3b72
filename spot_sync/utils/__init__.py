"""
Utility functions for spot-sync.

This module provides small helpers used across the application:
    - chunk: split a sequence into fixed-size slices
    - filter_missing: drop None entries from a sequence
    - ensure_directory: create a directory if needed

Usage:
    from spot_sync.utils import chunk, filter_missing, ensure_directory
"""

from pathlib import Path
from typing import Iterable, Sequence, TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], chunk_size: int) -> list[list[T]]:
    """
    Split a sequence into consecutive lists of at most chunk_size elements.

    Args:
        items: The sequence to split.
        chunk_size: Maximum length of each chunk. Must be positive.

    Returns:
        List of chunks in order. Empty input gives an empty list.

    Examples:
        chunk([1, 2, 3, 4, 5], 2)  # [[1, 2], [3, 4], [5]]
        chunk([], 100)             # []
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]


def filter_missing(items: Iterable[T | None]) -> list[T]:
    """Return the items that are not None, in order."""
    return [item for item in items if item is not None]


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.

    Returns:
        The same path, for chaining.

    Raises:
        OSError: If the directory cannot be created.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path

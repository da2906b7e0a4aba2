"""Compact path rendering for progress output."""

from __future__ import annotations

import os
from pathlib import PurePosixPath


def shorten_path(path: str) -> str:
    """Replace the home directory prefix with `~`."""
    home = os.path.expanduser("~")
    return "~" + path[len(home):] if path.startswith(home) else path


def _duplicates(names: list[str], indices: set[int]) -> set[int]:
    dupes: set[int] = set()
    ordered = sorted(indices)
    for pos, i in enumerate(ordered):
        for j in ordered[pos + 1:]:
            if names[i] == names[j]:
                dupes.update((i, j))
    return dupes


def minimal_paths(paths: list[str]) -> list[str]:
    """Shortest unique suffix for each path.

    Starts from the basename and adds parent directories (up to three) only
    for entries that still collide.
    """
    if not paths:
        return []
    results = [PurePosixPath(p).name for p in paths]
    if len(paths) == 1:
        return results

    pending = _duplicates(results, set(range(len(paths))))
    for level in range(1, 4):
        if not pending:
            break
        for i in pending:
            parts = [p for p in paths[i].split("/") if p]
            if len(parts) > level:
                results[i] = "/".join(parts[-level - 1:])
        pending = _duplicates(results, pending)
    return results

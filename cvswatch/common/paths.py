"""Path helpers for repository roots.

Repository roots are compared in canonical form: absolute, normalized and
with symlinks resolved. Use :func:`canonical_path` before storing or looking
up a root so that ``/ws/proj``, ``/ws/proj/`` and ``/ws/./proj`` all refer to
the same repository.
"""

from __future__ import annotations

import os
from pathlib import Path


def canonical_path(path: str | os.PathLike[str]) -> Path:
    """Return the canonical absolute form of ``path``.

    Examples
    --------
    >>> canonical_path("/ws/./proj/").as_posix()  # doctest: +SKIP
    '/ws/proj'

    """
    return Path(os.path.realpath(os.fspath(path)))


def is_descendant(
    parent: str | os.PathLike[str], descendant: str | os.PathLike[str]
) -> bool:
    """Return whether ``descendant`` equals ``parent`` or lies beneath it.

    Windows paths are compared case-insensitively.

    Examples
    --------
    >>> is_descendant("/ws/proj", "/ws/proj/src/main.c")
    True
    >>> is_descendant("/ws/proj", "/ws/project")
    False

    """
    parent_str = os.fspath(parent)
    descendant_str = os.fspath(descendant)
    if parent_str == descendant_str:
        return True

    if not parent_str.endswith(os.sep):
        parent_str += os.sep

    if os.name == "nt":
        parent_str = parent_str.lower()
        descendant_str = descendant_str.lower()

    return descendant_str.startswith(parent_str)


__all__ = ["canonical_path", "is_descendant"]

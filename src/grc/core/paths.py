"""Workspace root resolution.

Settings anchor the database, catalogues and exports on a workspace root:
the nearest directory (walking up from the current one) that holds a
``pyproject.toml``.  Running ``grc`` from ``catalogs/`` or ``src/`` thus
resolves the same ``data/grc.db`` as running it from the root.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from grc.core.errors import RepoRootNotFound

_MARKERS: tuple[str, ...] = ("pyproject.toml",)


def find_repo_root(start: Path | None = None, *, markers: Sequence[str] = _MARKERS) -> Path:
    """Return the first directory at or above *start* containing a marker file.

    Raises
    ------
    RepoRootNotFound
        If no marker is found in *start* or any of its parents.
    """
    origin = (start or Path.cwd()).resolve()
    for candidate in (origin, *origin.parents):
        if any((candidate / marker).is_file() for marker in markers):
            return candidate
    raise RepoRootNotFound(start_path=str(origin))

"""Path normalization for the filesystem backend."""

from __future__ import annotations

import os


def normalize_path(path: str, root: str) -> str:
    """Resolve ``./`` and ``~/`` prefixes against ``root`` and the user home.

    Rules, first match wins:

    1. ``path`` equal to ``root`` resolves to the canonical absolute root.
    2. ``./rest`` becomes ``<normalized root>/rest``.
    3. ``~/rest`` becomes ``<home>/rest``.
    4. Anything else is returned unchanged.

    The result never starts with ``./`` or ``~/`` so normalizing twice
    returns the same value.
    """
    if path is None:
        raise TypeError("path must not be None")

    if path == root:
        return os.path.realpath(root)

    if path.startswith("./"):
        return normalize_path(root, root) + path[1:]

    if path.startswith("~/"):
        return os.path.expanduser("~").rstrip("/") + path[1:]

    return path


def normalize_root(root: str) -> str:
    """Return the canonical absolute form of a configured root directory."""
    return normalize_path(os.path.expanduser(root), os.path.expanduser(root))

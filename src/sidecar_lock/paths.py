"""Canonical path helpers."""

from __future__ import annotations

import os
from pathlib import Path

LOCK_SUFFIX = ".lock"
RECLAIM_SUFFIX = ".rmlock"


def canonical_path(path: str | os.PathLike[str]) -> str | None:
    """Return the symlink-free absolute path of an existing file, or ``None``."""
    try:
        if not os.fspath(path):
            return None
        resolved = Path(path).resolve(strict=True)
    except (OSError, RuntimeError, ValueError, TypeError):
        return None
    return str(resolved)


def lock_path_for(canonical: str) -> Path:
    return Path(canonical + LOCK_SUFFIX)


def reclaim_path_for(lock_path: Path) -> Path:
    return lock_path.with_name(lock_path.name + RECLAIM_SUFFIX)

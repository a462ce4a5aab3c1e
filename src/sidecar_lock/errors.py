"""Custom exception types for sidecar_lock."""

from __future__ import annotations

from typing import Any


class SidecarLockError(Exception):
    """Base exception for the package."""


class LockFileFormatError(SidecarLockError, ValueError):
    """Raised when lock file content cannot be decoded."""


class LockHeldError(SidecarLockError):
    """Raised when a scoped hold cannot acquire the lock."""

    def __init__(self, path: str, holder: Any = None):
        self.path = path
        self.holder = holder
        if holder is None:
            message = f"Lock for {path} could not be acquired"
        else:
            message = (
                f"Lock for {path} is held by pid {holder.pid} "
                f"({holder.appname}) on {holder.hostname}"
            )
        super().__init__(message)

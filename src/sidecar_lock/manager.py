"""Public API: per-process registry of held sidecar locks."""

from __future__ import annotations

import logging
import os
import socket
import sys
import threading
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from .errors import LockHeldError
from .liveness import LivenessChecker, ProcessLivenessChecker, StalenessPolicy
from .lockfile import LockFile
from .metadata import LockInfo, get_lock_info
from .paths import canonical_path, lock_path_for

logger = logging.getLogger(__name__)

APPNAME_ENV = "SIDECAR_LOCK_APPNAME"
STALE_AFTER_ENV = "SIDECAR_LOCK_STALE_AFTER"


def _default_application_name() -> str:
    from_env = os.environ.get(APPNAME_ENV)
    if from_env:
        return from_env
    argv0 = sys.argv[0] if sys.argv else ""
    return Path(argv0).name or "python"


def _default_stale_after() -> Optional[float]:
    raw = os.environ.get(STALE_AFTER_ENV)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{STALE_AFTER_ENV} must be a number of seconds, got {raw!r}") from exc


@dataclass
class LockManager:
    application_name: str = field(default_factory=_default_application_name)
    hostname: str = field(default_factory=socket.gethostname)
    liveness: LivenessChecker = field(default_factory=ProcessLivenessChecker)
    stale_after: Optional[float] = field(default_factory=_default_stale_after)
    _locks: dict[str, LockFile] = field(default_factory=dict, init=False, repr=False)
    _mutex: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        name = self.application_name
        if not name or "\n" in name or "\r" in name:
            raise ValueError("application_name must be a non-empty single line")
        if "\n" in self.hostname or "\r" in self.hostname:
            raise ValueError("hostname must be a single line")
        if self.stale_after is not None and self.stale_after < 0:
            raise ValueError("stale_after must be >= 0 seconds")

    @property
    def policy(self) -> StalenessPolicy:
        return StalenessPolicy(hostname=self.hostname, liveness=self.liveness, stale_after=self.stale_after)

    def _holder_info(self) -> LockInfo:
        return LockInfo(pid=os.getpid(), hostname=self.hostname, appname=self.application_name)

    def try_acquire(self, path: str | os.PathLike[str]) -> bool:
        """Try to take the lock for ``path`` without waiting.

        Returns ``True`` if this manager holds the lock afterwards, including
        when it already held it. Stale locks left by dead processes are
        reclaimed. Unresolvable paths, live holders and I/O errors all
        return ``False``.
        """
        canonical = canonical_path(path)
        if canonical is None:
            logger.debug("Cannot lock unresolvable path %s", path)
            return False
        with self._mutex:
            if canonical in self._locks:
                return True
            handle = LockFile(lock_path_for(canonical), self._holder_info(), self.policy)
            try:
                acquired = handle.try_lock()
            except (OSError, ValueError) as exc:
                with suppress(OSError):
                    handle.unlock()
                logger.warning("Could not lock %s: %s", canonical, exc)
                return False
            if not acquired:
                logger.debug("Lock for %s is held by another process", canonical)
                return False
            self._locks[canonical] = handle
        logger.debug("Acquired lock for %s", canonical)
        return True

    def release(self, path: str | os.PathLike[str]) -> None:
        canonical = canonical_path(path)
        if canonical is None:
            return
        self._release_canonical(canonical)

    def _release_canonical(self, canonical: str) -> None:
        # Registry keys are released as-is; the resource may no longer resolve.
        with self._mutex:
            handle = self._locks.pop(canonical, None)
            if handle is None:
                return
            try:
                handle.unlock()
            except OSError as exc:
                logger.warning("Could not remove lock file for %s: %s", canonical, exc)
        logger.debug("Released lock for %s", canonical)

    def is_locked_by_this_process(self, path: str | os.PathLike[str]) -> bool:
        canonical = canonical_path(path)
        if canonical is None:
            return False
        with self._mutex:
            return canonical in self._locks

    def inspect(self, path: str | os.PathLike[str]) -> Optional[LockInfo]:
        """Return the identity recorded in the lock file for ``path``, if any."""
        canonical = canonical_path(path)
        if canonical is None:
            return None
        return get_lock_info(lock_path_for(canonical))

    def held_paths(self) -> list[str]:
        with self._mutex:
            return sorted(self._locks)

    def release_all(self) -> None:
        for canonical in self.held_paths():
            self._release_canonical(canonical)

    @contextmanager
    def hold(self, path: str | os.PathLike[str]) -> Iterator[str]:
        """Hold the lock for the duration of the ``with`` block.

        Raises :class:`LockHeldError` if the lock cannot be taken. A lock that
        was already held before entering stays held on exit.
        """
        canonical = canonical_path(path)
        if canonical is None:
            raise LockHeldError(str(path))
        already_held = self.is_locked_by_this_process(canonical)
        if not self.try_acquire(canonical):
            raise LockHeldError(canonical, self.inspect(canonical))
        try:
            yield canonical
        finally:
            if not already_held:
                self._release_canonical(canonical)


def lock_manager(
    *,
    application_name: Optional[str] = None,
    hostname: Optional[str] = None,
    liveness: Optional[LivenessChecker] = None,
    stale_after: Optional[float] = None,
) -> LockManager:
    return LockManager(
        application_name=_default_application_name() if application_name is None else application_name,
        hostname=socket.gethostname() if hostname is None else hostname,
        liveness=ProcessLivenessChecker() if liveness is None else liveness,
        stale_after=_default_stale_after() if stale_after is None else stale_after,
    )


_default: Optional[LockManager] = None
_default_mutex = threading.Lock()


def default_manager() -> LockManager:
    global _default
    with _default_mutex:
        if _default is None:
            _default = lock_manager()
        return _default


def try_acquire(path: str | os.PathLike[str]) -> bool:
    return default_manager().try_acquire(path)


def release(path: str | os.PathLike[str]) -> None:
    default_manager().release(path)


def is_locked_by_this_process(path: str | os.PathLike[str]) -> bool:
    return default_manager().is_locked_by_this_process(path)


def inspect(path: str | os.PathLike[str]) -> Optional[LockInfo]:
    return default_manager().inspect(path)

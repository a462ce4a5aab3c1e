"""Sidecar lock file handle."""

from __future__ import annotations

import errno
import logging
import os
import secrets
import time
from pathlib import Path
from typing import Optional

from .liveness import StalenessPolicy
from .locking import AdvisoryLock
from .metadata import LockInfo, encode_lock_info, read_lock_file
from .paths import reclaim_path_for

logger = logging.getLogger(__name__)

MAX_RECLAIM_ATTEMPTS = 3
ORPHAN_TMP_AGE = 60.0

_LINK_UNSUPPORTED = {
    errno.EPERM,
    errno.EXDEV,
    errno.EMLINK,
    getattr(errno, "ENOTSUP", errno.EPERM),
    getattr(errno, "EOPNOTSUPP", errno.EPERM),
}


class LockFile:
    """Exclusive ownership of a single ``<resource>.lock`` file.

    The file is published with its complete content in one step: the
    metadata is written to a private temporary file which is then hard-linked
    to the lock path, an operation that fails if the lock path exists.
    Filesystems without hard links fall back to ``O_CREAT | O_EXCL``.

    Two kinds of sibling files may appear next to the lock. The temporary
    ``<lock>.<pid>.<hex>.tmp`` files normally exist only for the duration of
    ``try_lock``; ones orphaned by a crash are deleted during the next stale
    reclaim once older than ``ORPHAN_TMP_AGE``. The ``<lock>.rmlock`` guard
    is kept permanently.
    """

    def __init__(self, path: Path, info: LockInfo, policy: StalenessPolicy):
        self.path = path
        self.info = info
        self.policy = policy
        self._identity: Optional[tuple[int, int]] = None

    @property
    def is_locked(self) -> bool:
        return self._identity is not None

    def try_lock(self) -> bool:
        if self._identity is not None:
            return True
        payload = encode_lock_info(self.info)
        for _ in range(MAX_RECLAIM_ATTEMPTS):
            if self._create(payload):
                logger.debug("Created lock file %s", self.path)
                return True
            if not self._reclaim_stale():
                return False
        logger.debug("Gave up on %s after %d reclaim attempts", self.path, MAX_RECLAIM_ATTEMPTS)
        return False

    def unlock(self) -> None:
        identity = self._identity
        if identity is None:
            return
        self._identity = None
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            logger.warning("Lock file %s disappeared while held", self.path)
            return
        if (st.st_dev, st.st_ino) != identity:
            logger.warning("Lock file %s was replaced by another process; leaving it", self.path)
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.debug("Removed lock file %s", self.path)

    def read_info(self) -> Optional[LockInfo]:
        info, _, _ = read_lock_file(self.path)
        return info

    def _create(self, payload: bytes) -> bool:
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.{secrets.token_hex(4)}.tmp")
        fd = os.open(tmp, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            try:
                os.link(tmp, self.path)
            except FileExistsError:
                return False
            except OSError as exc:
                if exc.errno not in _LINK_UNSUPPORTED:
                    raise
                return self._create_exclusive(payload)
            st = os.stat(self.path)
            self._identity = (st.st_dev, st.st_ino)
            return True
        finally:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass

    def _create_exclusive(self, payload: bytes) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                st = os.fstat(f.fileno())
        except OSError:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            raise
        self._identity = (st.st_dev, st.st_ino)
        return True

    def _reclaim_stale(self) -> bool:
        """Remove the existing lock file if it is stale; ``True`` means retry."""
        info, mtime, raw = read_lock_file(self.path)
        if raw is None:
            return not os.path.lexists(self.path)
        if not self.policy.is_stale(info, mtime):
            return False

        guard = AdvisoryLock(reclaim_path_for(self.path))
        if not guard.acquire():
            return False
        try:
            # Another process may have reclaimed and re-created it meanwhile.
            info, mtime, raw = read_lock_file(self.path)
            if raw is None:
                return not os.path.lexists(self.path)
            if not self.policy.is_stale(info, mtime):
                return False
            if info is None:
                logger.warning("Removing unreadable lock file %s", self.path)
            else:
                logger.warning(
                    "Removing stale lock file %s (pid %d, %s on %s)",
                    self.path,
                    info.pid,
                    info.appname,
                    info.hostname,
                )
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            self._remove_orphaned_tmp_files()
            return True
        finally:
            guard.release()

    def _remove_orphaned_tmp_files(self) -> None:
        prefix = self.path.name + "."
        cutoff = time.time() - ORPHAN_TMP_AGE
        try:
            siblings = list(self.path.parent.iterdir())
        except OSError:
            return
        for sibling in siblings:
            name = sibling.name
            if not (name.startswith(prefix) and name.endswith(".tmp")):
                continue
            try:
                if sibling.stat().st_mtime >= cutoff:
                    continue
                sibling.unlink()
            except OSError:
                continue
            logger.debug("Removed orphaned temporary file %s", sibling)

"""Cross-platform advisory lock for the stale-reclaim critical section."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import IO, Optional

RECLAIM_TIMEOUT = 2.0
_POLL_INTERVAL = 0.01


class AdvisoryLock:
    """OS-level exclusive lock on ``path``.

    The operating system drops the lock when the holding process exits, so a
    crash inside the guarded section never leaves it behind. The file itself
    is kept on disk; unlinking it would let a waiter lock a dead inode.
    """

    def __init__(self, path: Path, timeout: float = RECLAIM_TIMEOUT):
        self.path = path
        self.timeout = timeout
        self._fh: Optional[IO[bytes]] = None

    def acquire(self) -> bool:
        fh = open(self.path, "a+b")
        if os.name != "nt":
            try:
                os.chmod(self.path, 0o600)
            except OSError:
                pass
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                _lock_nonblocking(fh)
            except OSError:
                if time.monotonic() >= deadline:
                    fh.close()
                    return False
                time.sleep(_POLL_INTERVAL)
                continue
            self._fh = fh
            return True

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            _unlock(self._fh)
        finally:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def _lock_nonblocking(fh: IO[bytes]) -> None:
    if os.name == "nt":
        import msvcrt

        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        import fcntl

        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock(fh: IO[bytes]) -> None:
    if os.name == "nt":
        import msvcrt

        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

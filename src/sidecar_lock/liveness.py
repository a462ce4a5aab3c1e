"""Process liveness checks and the stale-lock policy."""

from __future__ import annotations

import errno
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .metadata import LockInfo

logger = logging.getLogger(__name__)

_STILL_ACTIVE = 259
_PROCESS_QUERY_LIMITED_INFORMATION = 0x1000

UNPARSABLE_GRACE = 2.0


class LivenessChecker(Protocol):
    def is_alive(self, pid: int) -> bool: ...


class ProcessLivenessChecker:
    """Probe the local process table for ``pid``."""

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        if pid == os.getpid():
            return True
        if os.name == "nt":
            return _windows_pid_alive(pid)
        try:
            os.kill(pid, 0)
        except OSError as exc:
            # EPERM: the process exists but belongs to someone else.
            return exc.errno != errno.ESRCH
        return True


def _windows_pid_alive(pid: int) -> bool:
    import ctypes
    from ctypes import wintypes

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    kernel32.OpenProcess.restype = wintypes.HANDLE
    kernel32.OpenProcess.argtypes = (wintypes.DWORD, wintypes.BOOL, wintypes.DWORD)
    handle = kernel32.OpenProcess(_PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
    if not handle:
        # ERROR_ACCESS_DENIED means the process exists.
        return ctypes.get_last_error() == 5
    try:
        code = wintypes.DWORD()
        if not kernel32.GetExitCodeProcess(handle, ctypes.byref(code)):
            return True
        return code.value == _STILL_ACTIVE
    finally:
        kernel32.CloseHandle(handle)


@dataclass
class StalenessPolicy:
    """Decide whether an existing lock file may be reclaimed.

    Unparsable content is stale once the file is more than
    ``unparsable_grace`` seconds old; a younger one may still be mid-write
    by an ``O_EXCL`` creator and counts as held. A lock written on this
    host is stale once its PID is no longer running. A lock from another
    host is only stale when ``stale_after`` is set and the file is older
    than that many seconds; with ``stale_after=None`` it is never
    reclaimed automatically.
    """

    hostname: str
    liveness: LivenessChecker = field(default_factory=ProcessLivenessChecker)
    stale_after: Optional[float] = None
    unparsable_grace: float = UNPARSABLE_GRACE

    def is_stale(self, info: Optional[LockInfo], mtime: Optional[float]) -> bool:
        if info is None:
            return mtime is None or abs(time.time() - mtime) >= self.unparsable_grace
        if info.hostname == self.hostname:
            return not self.liveness.is_alive(info.pid)
        if self.stale_after is None or mtime is None:
            return False
        age = time.time() - mtime
        if age > self.stale_after:
            logger.debug("Lock from %s is %.0fs old, past stale_after=%s", info.hostname, age, self.stale_after)
            return True
        return False

from .errors import LockFileFormatError, LockHeldError, SidecarLockError
from .liveness import LivenessChecker, ProcessLivenessChecker, StalenessPolicy
from .manager import (
    LockManager,
    default_manager,
    inspect,
    is_locked_by_this_process,
    lock_manager,
    release,
    try_acquire,
)
from .metadata import LockInfo
from .version import __version__

__all__ = [
    "LockManager",
    "lock_manager",
    "default_manager",
    "try_acquire",
    "release",
    "is_locked_by_this_process",
    "inspect",
    "LockInfo",
    "LivenessChecker",
    "ProcessLivenessChecker",
    "StalenessPolicy",
    "SidecarLockError",
    "LockHeldError",
    "LockFileFormatError",
    "__version__",
]

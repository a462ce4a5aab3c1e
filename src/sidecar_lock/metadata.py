"""Lock file metadata encoding.

Lock files hold one field per line in the order Qt's ``QLockFile`` writes
them (pid, application name, hostname), so either side can read the other's
locks. Lines after the third are ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import LockFileFormatError

MAX_LOCK_FILE_BYTES = 4096


@dataclass(frozen=True)
class LockInfo:
    pid: int
    hostname: str
    appname: str


def encode_lock_info(info: LockInfo) -> bytes:
    for value in (info.hostname, info.appname):
        if "\n" in value or "\r" in value:
            raise ValueError("Lock metadata fields must not contain line breaks")
    return f"{info.pid}\n{info.appname}\n{info.hostname}\n".encode("utf-8")


def decode_lock_info(data: bytes) -> LockInfo:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise LockFileFormatError("Lock file is not valid UTF-8") from exc
    lines = text.split("\n")
    if len(lines) < 3:
        raise LockFileFormatError("Lock file is truncated")
    pid_text, appname, hostname = lines[0].strip(), lines[1].rstrip("\r"), lines[2].rstrip("\r")
    if not (pid_text.isascii() and pid_text.isdigit()):
        raise LockFileFormatError(f"Invalid pid in lock file: {pid_text!r}")
    pid = int(pid_text)
    if pid <= 0:
        raise LockFileFormatError(f"Invalid pid in lock file: {pid}")
    return LockInfo(pid=pid, hostname=hostname, appname=appname)


def read_lock_file(path: Path) -> tuple[Optional[LockInfo], Optional[float], Optional[bytes]]:
    """Return ``(info, mtime, raw)`` for ``path``.

    ``raw`` is ``None`` when the file does not exist or cannot be read;
    ``info`` is ``None`` additionally when the content does not decode.
    """
    try:
        with path.open("rb") as f:
            raw = f.read(MAX_LOCK_FILE_BYTES)
            mtime = os.fstat(f.fileno()).st_mtime
    except OSError:
        return None, None, None
    try:
        info = decode_lock_info(raw)
    except LockFileFormatError:
        return None, mtime, raw
    return info, mtime, raw


def get_lock_info(path: Path) -> Optional[LockInfo]:
    info, _, _ = read_lock_file(path)
    return info

from __future__ import annotations

import os
import socket
from pathlib import Path

import pytest

from sidecar_lock import lock_manager
from sidecar_lock.cli import EXIT_FREE, EXIT_HELD, EXIT_NOT_LOCKED, EXIT_OK, EXIT_STALE, EXIT_UNRESOLVABLE, main


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "plant.qet"
    path.write_text("<project/>", encoding="utf-8")
    return path


def test_inspect_prints_holder(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manager = lock_manager(application_name="qelectrotech")
    assert manager.try_acquire(project)
    try:
        assert main(["inspect", str(project)]) == EXIT_OK
    finally:
        manager.release(project)

    out = capsys.readouterr().out.splitlines()
    assert out == [f"pid: {os.getpid()}", f"hostname: {socket.gethostname()}", "appname: qelectrotech"]


def test_inspect_unlocked(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["inspect", str(project)]) == EXIT_NOT_LOCKED
    assert capsys.readouterr().out.strip() == "not locked"


def test_status_free_held_and_stale(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    lock_path = Path(str(project) + ".lock")

    assert main(["status", str(project)]) == EXIT_FREE

    lock_path.write_bytes(f"{os.getpid()}\nqelectrotech\n{socket.gethostname()}\n".encode("utf-8"))
    assert main(["status", str(project)]) == EXIT_HELD

    lock_path.write_bytes(b"garbage")
    assert main(["status", str(project)]) == EXIT_HELD

    os.utime(lock_path, (0, 0))
    assert main(["status", str(project)]) == EXIT_STALE

    assert capsys.readouterr().out.split() == ["free", "held", "held", "stale"]


def test_status_uses_stale_after_for_foreign_hosts(project: Path) -> None:
    lock_path = Path(str(project) + ".lock")
    lock_path.write_bytes(b"1\nqelectrotech\nsome-other-host.invalid\n")
    os.utime(lock_path, (0, 0))

    assert main(["status", str(project)]) == EXIT_HELD
    assert main(["status", str(project), "--stale-after", "60"]) == EXIT_STALE


def test_status_unresolvable(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["status", str(tmp_path / "missing.qet")]) == EXIT_UNRESOLVABLE
    assert "cannot resolve" in capsys.readouterr().err


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        main([])

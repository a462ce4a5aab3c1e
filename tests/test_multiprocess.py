from __future__ import annotations

import os
from multiprocessing import get_context
from pathlib import Path

import pytest

from sidecar_lock import lock_manager


def _hold_lock(path: str, ready, done, crash: bool) -> None:
    manager = lock_manager(application_name="child-editor")
    ready.put(manager.try_acquire(path))
    done.wait(timeout=30)
    if crash:
        os._exit(0)
    manager.release(path)


def _try_lock(path: str, queue, done) -> None:
    manager = lock_manager(application_name="racer")
    ok = manager.try_acquire(path)
    queue.put((os.getpid(), ok))
    # The winner must outlive every attempt.
    done.wait(timeout=30)


def _start_holder(project: Path, crash: bool):
    ctx = get_context("spawn")
    ready = ctx.Queue()
    done = ctx.Event()
    proc = ctx.Process(target=_hold_lock, args=(str(project), ready, done, crash))
    proc.start()
    assert ready.get(timeout=30) is True
    return proc, done


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "plant.qet"
    path.write_text("<project/>", encoding="utf-8")
    return path


def test_other_process_is_excluded_until_release(project: Path) -> None:
    manager = lock_manager(application_name="parent-editor")
    proc, done = _start_holder(project, crash=False)
    try:
        assert not manager.try_acquire(project)
        info = manager.inspect(project)
        assert info is not None
        assert info.pid == proc.pid
        assert info.appname == "child-editor"
        assert not manager.is_locked_by_this_process(project)
    finally:
        done.set()
        proc.join(timeout=30)
    assert proc.exitcode == 0

    assert manager.inspect(project) is None
    assert manager.try_acquire(project)
    manager.release(project)


def test_lock_of_crashed_process_is_reclaimed(project: Path) -> None:
    manager = lock_manager(application_name="parent-editor")
    proc, done = _start_holder(project, crash=True)
    done.set()
    proc.join(timeout=30)
    assert proc.exitcode == 0
    assert manager.inspect(project).pid == proc.pid

    assert manager.try_acquire(project)

    assert manager.inspect(project).pid == os.getpid()
    manager.release(project)


def test_racing_processes_elect_one_holder(project: Path) -> None:
    ctx = get_context("spawn")
    queue = ctx.Queue()
    done = ctx.Event()
    procs = [ctx.Process(target=_try_lock, args=(str(project), queue, done)) for _ in range(6)]
    for p in procs:
        p.start()
    try:
        results = [queue.get(timeout=30) for _ in procs]
    finally:
        done.set()
    for p in procs:
        p.join(timeout=30)
        assert p.exitcode == 0

    winners = [pid for pid, ok in results if ok]
    assert len(winners) == 1
    assert lock_manager().inspect(project).pid == winners[0]

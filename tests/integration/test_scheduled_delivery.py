"""End-to-end scheduling: a real detached process delivering to a fake tmux."""

import os
import sys
import time

import pytest

from src.models import CancelResult, TaskStatus
from src.scheduler import TaskScheduler

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX sessions and sh")


@pytest.fixture
def fake_tmux(tmp_path):
    """Shell script standing in for tmux; appends each invocation to a log."""
    log = tmp_path / "tmux_calls.log"
    script = tmp_path / "tmux"
    script.write_text(f'#!/bin/sh\nprintf "%s|" "$@" >> "{log}"\necho >> "{log}"\n')
    script.chmod(0o755)
    return script, log


@pytest.fixture
def live_scheduler(tmp_path, fake_tmux):
    script, _ = fake_tmux
    return TaskScheduler(config={
        "tmux": {"binary": str(script)},
        "scheduler": {
            "note_file": str(tmp_path / "note.txt"),
            "delivery_settle_seconds": 0.05,
        },
    })


def wait_for_lines(path, count, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            lines = path.read_text().splitlines()
            if len(lines) >= count:
                return lines
        time.sleep(0.05)
    return path.read_text().splitlines() if path.exists() else []


def wait_for_exit(pid, timeout=10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            reaped, _ = os.waitpid(pid, os.WNOHANG)
        except ChildProcessError:
            return True
        if reaped == pid:
            return True
        time.sleep(0.05)
    return False


def test_zero_minute_task_delivers(live_scheduler, fake_tmux, tmp_path):
    _, log = fake_tmux

    result = live_scheduler.schedule_task(0, "hello", target_window="demo:0")

    assert result.success
    assert result.task.status == TaskStatus.RUNNING
    note = (tmp_path / "note.txt").read_text()
    assert "Target: demo:0" in note
    assert note.endswith("hello")

    lines = wait_for_lines(log, 2)
    assert len(lines) == 2
    text_call = lines[0].split("|")
    assert text_call[:4] == ["send-keys", "-t", "demo:0", "--"]
    assert text_call[4].startswith("Time for orchestrator check!")
    assert text_call[4].endswith("hello")
    assert lines[1] == "send-keys|-t|demo:0|Enter|"


def test_cancel_stops_pending_delivery(live_scheduler, fake_tmux):
    _, log = fake_tmux

    result = live_scheduler.schedule_task(1, "never", target_window="demo:0")
    assert result.success

    assert live_scheduler.cancel_task(result.task_id) == CancelResult.CANCELLED
    assert wait_for_exit(result.task.pid)
    assert live_scheduler.get_task(result.task_id).status == TaskStatus.COMPLETED
    assert not log.exists()

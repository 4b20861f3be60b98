"""Unit tests for TaskScheduler: target resolution, note slot, launch and cancel."""

import signal
import subprocess
import sys
from datetime import timedelta
from unittest.mock import patch

import pytest

from src.models import TaskStatus, CancelResult, ScheduledTask
from src.scheduler import TaskScheduler, resolve_target, DEFAULT_TARGET, MAX_MINUTES


class TestResolveTarget:

    def test_default_when_nothing_given(self):
        assert resolve_target(None) == DEFAULT_TARGET == "tmux-orc:0"

    def test_explicit_target(self):
        assert resolve_target("eng:2") == "eng:2"

    def test_pm_session_overrides_target(self):
        assert resolve_target("eng:2", pm_session_name="pm", pm_window_index=3) == "pm:3"

    def test_pm_window_defaults_to_zero(self):
        assert resolve_target("eng:2", pm_session_name="pm") == "pm:0"

    def test_configured_default(self):
        assert resolve_target(None, default_target="boss:1") == "boss:1"


class TestScheduleTask:

    def test_schedule_registers_running_task(self, scheduler, mock_popen):
        result = scheduler.schedule_task(15, "check the build", target_window="eng:0")

        assert result.success is True
        assert result.task_id
        task = scheduler.get_task(result.task_id)
        assert task.status == TaskStatus.RUNNING
        assert task.pid == 4242
        assert task.target_window == "eng:0"
        assert task.execute_at - task.scheduled_at == timedelta(minutes=15)

    def test_default_target_used(self, scheduler, mock_popen):
        result = scheduler.schedule_task(5, "note")
        assert result.task.target_window == "tmux-orc:0"

    def test_pm_session_wins(self, scheduler, mock_popen):
        result = scheduler.schedule_task(5, "note", target_window="eng:0", pm_session_name="pm", pm_window_index=1)
        assert result.task.target_window == "pm:1"

    def test_launch_is_detached(self, scheduler, mock_popen, note_file):
        result = scheduler.schedule_task(2, "note", target_window="eng:0")

        args, kwargs = mock_popen.call_args
        cmd = args[0]
        assert cmd[:3] == [sys.executable, "-m", "src.deliver"]
        assert cmd[cmd.index("--target") + 1] == "eng:0"
        assert cmd[cmd.index("--note-file") + 1] == str(note_file)
        assert float(cmd[cmd.index("--delay-seconds") + 1]) == 120
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] == subprocess.DEVNULL
        assert kwargs["stdout"] == subprocess.DEVNULL
        assert result.success

    def test_note_file_layout(self, scheduler, mock_popen, note_file):
        result = scheduler.schedule_task(10, "Look at PR #12\nthen ping eng", target_window="eng:0")
        task = result.task

        lines = note_file.read_text().split("\n")
        assert lines[0] == f"=== Next Check Note ({task.scheduled_at.isoformat()}) ==="
        assert lines[1] == "Scheduled for: 10 minutes"
        assert lines[2] == "Target: eng:0"
        assert lines[3] == f"Execute at: {task.execute_at.isoformat()}"
        assert lines[4] == f"Task ID: {task.id}"
        assert lines[5] == ""
        assert lines[6:] == ["Look at PR #12", "then ping eng"]

    def test_second_schedule_overwrites_note(self, scheduler, mock_popen, note_file):
        first = scheduler.schedule_task(30, "first note", target_window="a:0")
        second = scheduler.schedule_task(30, "second note", target_window="b:0")

        content = note_file.read_text()
        assert "second note" in content
        assert "first note" not in content
        assert "Target: b:0" in content
        # Both still registered
        assert first.success and second.success
        assert {t.id for t in scheduler.get_all_tasks()} == {first.task_id, second.task_id}

    def test_ids_unique(self, scheduler, mock_popen):
        ids = {scheduler.schedule_task(1, "n").task_id for _ in range(50)}
        assert len(ids) == 50

    def test_launch_failure_is_surfaced(self, scheduler):
        with patch("src.scheduler.subprocess.Popen", side_effect=OSError("fork failed")):
            result = scheduler.schedule_task(5, "note")

        assert result.success is False
        assert result.error == "Failed to schedule task"
        task = scheduler.get_task(result.task_id)
        assert task.status == TaskStatus.FAILED
        assert task.pid is None

    def test_note_write_failure_is_surfaced(self, tmp_path, mock_popen):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        scheduler = TaskScheduler(config={"scheduler": {"note_file": str(blocker / "note.txt")}})

        result = scheduler.schedule_task(5, "note")

        assert result.success is False
        assert "note file" in result.error
        assert result.task.status == TaskStatus.FAILED
        mock_popen.assert_not_called()

    def test_negative_minutes_rejected(self, scheduler, mock_popen):
        result = scheduler.schedule_task(-1, "note")
        assert result.success is False
        assert scheduler.get_all_tasks() == []
        mock_popen.assert_not_called()

    @pytest.mark.parametrize("minutes", [1e10, MAX_MINUTES + 1, float("inf"), float("nan")])
    def test_out_of_range_minutes_rejected(self, scheduler, mock_popen, note_file, minutes):
        result = scheduler.schedule_task(minutes, "note")

        assert result.success is False
        assert "minutes must be between" in result.error
        assert scheduler.get_all_tasks() == []
        assert not note_file.exists()
        mock_popen.assert_not_called()

    def test_max_minutes_accepted(self, scheduler, mock_popen):
        result = scheduler.schedule_task(MAX_MINUTES, "note")
        assert result.success is True
        assert result.task.execute_at - result.task.scheduled_at == timedelta(minutes=MAX_MINUTES)


class TestCancelTask:

    def test_unknown_id(self, scheduler):
        assert scheduler.cancel_task("task_nope") == CancelResult.NOT_FOUND

    def test_cancel_running_task(self, scheduler, mock_popen):
        task_id = scheduler.schedule_task(5, "note").task_id

        with patch("src.scheduler.os.kill") as kill:
            assert scheduler.cancel_task(task_id) == CancelResult.CANCELLED

        kill.assert_called_once_with(4242, signal.SIGTERM)
        assert scheduler.get_task(task_id).status == TaskStatus.COMPLETED

    def test_task_without_pid_not_cancellable(self, scheduler):
        task = ScheduledTask(id="t1", minutes=5, note="n", target_window="a:0")
        scheduler.tasks[task.id] = task

        with patch("src.scheduler.os.kill") as kill:
            assert scheduler.cancel_task("t1") == CancelResult.NOT_RUNNING

        kill.assert_not_called()
        assert task.status == TaskStatus.PENDING

    def test_signal_failure_leaves_status(self, scheduler, mock_popen):
        task_id = scheduler.schedule_task(5, "note").task_id

        with patch("src.scheduler.os.kill", side_effect=ProcessLookupError()):
            assert scheduler.cancel_task(task_id) == CancelResult.FAILED

        assert scheduler.get_task(task_id).status == TaskStatus.RUNNING

    def test_finished_delivery_not_signalled(self, scheduler, mock_popen):
        task_id = scheduler.schedule_task(5, "note").task_id
        mock_popen.return_value.poll.return_value = 0

        with patch("src.scheduler.os.kill") as kill:
            assert scheduler.cancel_task(task_id) == CancelResult.FAILED

        kill.assert_not_called()
        assert scheduler.get_task(task_id).status == TaskStatus.RUNNING

    def test_reaped_delivery_not_signalled(self, scheduler, mock_popen):
        """Once the exited handle is dropped at the next schedule, cancel still refuses."""
        first = scheduler.schedule_task(5, "first").task_id
        mock_popen.return_value.poll.return_value = 0
        scheduler.schedule_task(5, "second")

        with patch("src.scheduler.os.kill") as kill:
            assert scheduler.cancel_task(first) == CancelResult.FAILED
        kill.assert_not_called()

    def test_cancel_twice(self, scheduler, mock_popen):
        task_id = scheduler.schedule_task(5, "note").task_id
        with patch("src.scheduler.os.kill"):
            scheduler.cancel_task(task_id)
            assert scheduler.cancel_task(task_id) == CancelResult.NOT_RUNNING


class TestRegistryReads:

    def test_active_tasks_filter(self, scheduler):
        for status in TaskStatus:
            scheduler.tasks[status.value] = ScheduledTask(
                id=status.value, minutes=1, note="n", target_window="a:0", status=status,
            )

        active = {t.id for t in scheduler.get_active_tasks()}
        assert active == {"pending", "running"}
        assert len(scheduler.get_all_tasks()) == 4

    def test_get_task_missing(self, scheduler):
        assert scheduler.get_task("missing") is None


class TestCannedReminders:

    def test_progress_review(self, scheduler, mock_popen, note_file):
        result = scheduler.schedule_progress_review("eng")
        assert result.task.minutes == 30
        assert result.task.target_window == "eng:0"
        assert "Progress review for session: eng" in note_file.read_text()

    def test_orchestrator_check(self, scheduler, mock_popen, note_file):
        result = scheduler.schedule_orchestrator_check()
        assert result.task.minutes == 15
        assert result.task.target_window == "tmux-orc:0"
        assert "Regular orchestrator oversight check" in note_file.read_text()

    def test_engineer_standup(self, scheduler, mock_popen, note_file):
        result = scheduler.schedule_engineer_standup("eng")
        assert result.task.minutes == 480
        assert "Daily standup for engineer: eng" in note_file.read_text()

    def test_canned_reminder_pm_override(self, scheduler, mock_popen):
        result = scheduler.schedule_progress_review("eng", minutes=5, pm_session_name="pm", pm_window_index=2)
        assert result.task.target_window == "pm:2"
        assert result.task.minutes == 5

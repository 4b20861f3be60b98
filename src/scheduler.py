"""Deferred reminders delivered to tmux windows by detached processes."""

import os
import signal
import subprocess
import sys
import time
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import logging

from .models import ScheduledTask, TaskStatus, CancelResult, ScheduleResult

logger = logging.getLogger(__name__)

DEFAULT_NOTE_FILE = "/tmp/toma_next_check_note.txt"
DEFAULT_TARGET = "tmux-orc:0"

# One year. Keeps execute_at inside datetime range.
MAX_MINUTES = 60 * 24 * 365

# Directory that holds the `src` package; the detached process needs it on
# its path to run `python -m src.deliver`.
_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _format_minutes(minutes: float) -> str:
    return str(int(minutes)) if float(minutes).is_integer() else f"{minutes:g}"


def resolve_target(
    target_window: Optional[str],
    pm_session_name: Optional[str] = None,
    pm_window_index: Optional[int] = None,
    default_target: str = DEFAULT_TARGET,
) -> str:
    """
    Pick where a reminder goes.

    PM session info wins over an explicit target, which wins over the default.
    """
    if pm_session_name:
        return f"{pm_session_name}:{pm_window_index or 0}"
    if target_window:
        return target_window
    return default_target


class TaskScheduler:
    """
    Schedules note deliveries and tracks them in memory.

    The note file is a single shared slot: each schedule call overwrites it,
    and every pending delivery reads it only when it fires. Two reminders
    scheduled before either fires both deliver the second note.

    The registry is not persisted. Background processes launched before a
    restart still fire; the new process just doesn't know about them.
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

        scheduler_config = self.config.get("scheduler", {})
        self.note_file = Path(scheduler_config.get("note_file", DEFAULT_NOTE_FILE)).expanduser()
        self.default_target = scheduler_config.get("default_target", DEFAULT_TARGET)
        self.delivery_settle_seconds = scheduler_config.get("delivery_settle_seconds", 1.0)
        self.delivery_prefix = scheduler_config.get("delivery_prefix", "Time for orchestrator check!")
        self.tmux_binary = self.config.get("tmux", {}).get("binary", "tmux")

        self.tasks: dict[str, ScheduledTask] = {}
        # task_id -> launched delivery process, dropped once it has exited
        self._processes: dict[str, subprocess.Popen] = {}

    @staticmethod
    def _generate_task_id() -> str:
        return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    def schedule_task(
        self,
        minutes: float,
        note: str,
        target_window: Optional[str] = None,
        pm_session_name: Optional[str] = None,
        pm_window_index: Optional[int] = None,
    ) -> ScheduleResult:
        """
        Schedule a note to be typed into a window after `minutes`.

        Args:
            minutes: Delay before delivery
            note: Free-text note body
            target_window: session:window to deliver to
            pm_session_name: PM session; overrides target_window when set
            pm_window_index: Window in the PM session (default 0)

        Returns:
            ScheduleResult; success=False if the note could not be written or
            the background process could not be launched
        """
        if not 0 <= minutes <= MAX_MINUTES:
            return ScheduleResult.failed(f"minutes must be between 0 and {MAX_MINUTES}, got {minutes}")

        self._reap_finished()

        now = datetime.now()
        task = ScheduledTask(
            id=self._generate_task_id(),
            minutes=minutes,
            note=note,
            target_window=resolve_target(
                target_window, pm_session_name, pm_window_index, self.default_target
            ),
            scheduled_at=now,
            execute_at=now + timedelta(minutes=minutes),
        )
        self.tasks[task.id] = task

        try:
            self._write_note_file(task)
        except OSError as e:
            task.status = TaskStatus.FAILED
            logger.error(f"Failed to write note file {self.note_file} for {task.id}: {e}")
            return ScheduleResult.failed(f"Failed to write note file: {e}", task)

        if not self._launch_delivery(task):
            return ScheduleResult.failed("Failed to schedule task", task)

        logger.info(
            f"Scheduled {task.id} for {task.target_window} in {_format_minutes(minutes)} min "
            f"(pid={task.pid})"
        )
        return ScheduleResult.ok(task)

    def render_note(self, task: ScheduledTask) -> str:
        """Header block, blank line, then the raw note."""
        return "\n".join([
            f"=== Next Check Note ({task.scheduled_at.isoformat()}) ===",
            f"Scheduled for: {_format_minutes(task.minutes)} minutes",
            f"Target: {task.target_window}",
            f"Execute at: {task.execute_at.isoformat()}",
            f"Task ID: {task.id}",
            "",
            task.note,
        ])

    def _write_note_file(self, task: ScheduledTask) -> None:
        self.note_file.parent.mkdir(parents=True, exist_ok=True)
        self.note_file.write_text(self.render_note(task), encoding="utf-8")

    def build_delivery_command(self, task: ScheduledTask) -> list[str]:
        return [
            sys.executable, "-m", "src.deliver",
            "--target", task.target_window,
            "--note-file", str(self.note_file),
            "--delay-seconds", str(task.minutes * 60),
            "--settle-seconds", str(self.delivery_settle_seconds),
            "--tmux", self.tmux_binary,
            "--prefix", self.delivery_prefix,
        ]

    def _launch_delivery(self, task: ScheduledTask) -> bool:
        """Start the detached delivery process. It outlives this process."""
        env = os.environ.copy()
        pythonpath = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            f"{_PACKAGE_ROOT}{os.pathsep}{pythonpath}" if pythonpath else str(_PACKAGE_ROOT)
        )

        try:
            proc = subprocess.Popen(
                self.build_delivery_command(task),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=env,
                start_new_session=True,  # Detach from our process group
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error(f"Error launching delivery process for {task.id}: {e}")
            task.status = TaskStatus.FAILED
            return False

        self._processes[task.id] = proc
        task.pid = proc.pid
        task.status = TaskStatus.RUNNING
        return True

    def cancel_task(self, task_id: str) -> CancelResult:
        """
        Kill a task's background process.

        Only running tasks with a pid can be cancelled. The process handle is
        polled first: a delivery that already fired (or otherwise exited) is
        reaped and reported as FAILED, so the pid is never signalled after it
        could have been reused. A failed signal leaves the status untouched and
        is not retried. A delivery already mid-way through send-keys will
        still finish.
        """
        task = self.tasks.get(task_id)
        if not task:
            logger.warning(f"Cancel requested for unknown task {task_id}")
            return CancelResult.NOT_FOUND

        if task.pid is None or task.status != TaskStatus.RUNNING:
            logger.warning(f"Task {task_id} is not cancellable (status={task.status.value}, pid={task.pid})")
            return CancelResult.NOT_RUNNING

        proc = self._processes.get(task_id)
        if proc is None or proc.poll() is not None:
            self._processes.pop(task_id, None)
            logger.warning(f"Task {task_id} already finished (pid={task.pid}), nothing to cancel")
            return CancelResult.FAILED

        try:
            os.kill(task.pid, signal.SIGTERM)
        except OSError as e:
            logger.error(f"Error cancelling task {task_id} (pid={task.pid}): {e}")
            return CancelResult.FAILED

        task.status = TaskStatus.COMPLETED
        logger.info(f"Cancelled task {task_id} (pid={task.pid})")
        return CancelResult.CANCELLED

    def _reap_finished(self) -> None:
        """Poll launched processes and drop the handles of those that exited."""
        for task_id, proc in list(self._processes.items()):
            if proc.poll() is not None:
                del self._processes[task_id]

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self.tasks.get(task_id)

    def get_all_tasks(self) -> list[ScheduledTask]:
        return list(self.tasks.values())

    def get_active_tasks(self) -> list[ScheduledTask]:
        """Tasks still pending or running."""
        return [t for t in self.tasks.values() if t.is_active]

    # Canned reminders

    def schedule_progress_review(
        self,
        session_name: str,
        minutes: float = 30,
        pm_session_name: Optional[str] = None,
        pm_window_index: Optional[int] = None,
    ) -> ScheduleResult:
        note = (
            f"Progress review for session: {session_name}\n"
            "Please provide status update:\n"
            "1. Completed tasks\n"
            "2. Current work\n"
            "3. Any blockers\n"
            "4. Next steps"
        )
        return self.schedule_task(
            minutes,
            note,
            target_window=f"{session_name}:0",
            pm_session_name=pm_session_name,
            pm_window_index=pm_window_index,
        )

    def schedule_orchestrator_check(
        self,
        minutes: float = 15,
        pm_session_name: Optional[str] = None,
        pm_window_index: Optional[int] = None,
    ) -> ScheduleResult:
        note = (
            "Regular orchestrator oversight check\n"
            "Review all active sessions and provide status summary"
        )
        return self.schedule_task(
            minutes,
            note,
            target_window=self.default_target,
            pm_session_name=pm_session_name,
            pm_window_index=pm_window_index,
        )

    def schedule_engineer_standup(
        self,
        session_name: str,
        minutes: float = 480,
        pm_session_name: Optional[str] = None,
        pm_window_index: Optional[int] = None,
    ) -> ScheduleResult:
        note = (
            f"Daily standup for engineer: {session_name}\n"
            "Please provide:\n"
            "- Yesterday's accomplishments\n"
            "- Today's goals\n"
            "- Any impediments"
        )
        return self.schedule_task(
            minutes,
            note,
            target_window=f"{session_name}:0",
            pm_session_name=pm_session_name,
            pm_window_index=pm_window_index,
        )

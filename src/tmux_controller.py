"""tmux operations for inspecting and driving agent sessions."""

import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from .models import (
    TmuxSession,
    TmuxWindow,
    WindowInfo,
    TmuxStatus,
    SessionStatus,
    WindowStatus,
    WindowMatch,
)

logger = logging.getLogger(__name__)

# Everything that can go wrong when shelling out to tmux.
# OSError covers a missing tmux binary.
TMUX_ERRORS = (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError)

SESSION_FORMAT = "#{session_name}:#{session_attached}"
WINDOW_FORMAT = "#{window_index}:#{window_name}:#{window_active}:#{window_panes}:#{window_layout}"
WINDOW_INFO_FORMAT = "#{window_name}:#{window_active}:#{window_panes}:#{window_layout}"

SNAPSHOT_TAIL_LINES = 10


def _to_int(value: str, default: int = 0) -> int:
    try:
        return int(value.strip())
    except (ValueError, AttributeError):
        return default


def _error_detail(error: Exception) -> str:
    """Best human-readable text for a tmux failure."""
    stderr = getattr(error, "stderr", None)
    if stderr:
        return stderr.strip()
    return str(error)


def parse_session_line(line: str) -> Optional[tuple[str, bool]]:
    """
    Parse a `list-sessions` record: name:attached.

    tmux forbids ':' in session names, so the last colon separates the flag.
    A missing flag reads as detached.
    """
    line = line.strip()
    if not line:
        return None
    if ":" not in line:
        return line, False
    name, attached = line.rsplit(":", 1)
    if not name:
        return None
    return name, attached.strip() == "1"


def parse_window_line(session_name: str, line: str) -> Optional[TmuxWindow]:
    """
    Parse a `list-windows` record: index:name:active:panes:layout.

    Window names may themselves contain colons, so the name is whatever sits
    between the index and the three trailing fields. Short records (older
    tmux, truncated output) fill the missing trailing fields with defaults.
    """
    line = line.strip()
    if not line:
        return None

    parts = line.split(":")
    try:
        index = int(parts[0])
    except ValueError:
        logger.warning(f"Skipping malformed window record for {session_name}: {line!r}")
        return None

    if len(parts) >= 5:
        name = ":".join(parts[1:-3])
        active, panes, layout = parts[-3], parts[-2], parts[-1]
    else:
        rest = parts[1:] + [""] * (4 - len(parts[1:]))
        name, active, panes, layout = rest[0], rest[1], rest[2], rest[3]

    return TmuxWindow(
        session_name=session_name,
        window_index=index,
        window_name=name,
        active=active.strip() == "1",
        panes=_to_int(panes),
        layout=layout.strip(),
    )


def parse_window_info(output: str) -> Optional[tuple[str, bool, int, str]]:
    """Parse a `display-message` record: name:active:panes:layout."""
    line = output.strip()
    if not line:
        return None
    parts = line.split(":")
    if len(parts) >= 4:
        name = ":".join(parts[:-3])
        active, panes, layout = parts[-3], parts[-2], parts[-1]
    else:
        rest = parts + [""] * (4 - len(parts))
        name, active, panes, layout = rest[0], rest[1], rest[2], rest[3]
    return name, active.strip() == "1", _to_int(panes), layout.strip()


class TmuxController:
    """
    Gateway to the tmux server.

    Every method degrades instead of raising: queries return empty
    collections, an error-annotated WindowInfo, or an error string; mutations
    return False (or None for window creation). Failures are logged.
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

        tmux_config = self.config.get("tmux", {})
        self.tmux_binary = tmux_config.get("binary", "tmux")
        self.max_lines_capture = tmux_config.get("max_lines_capture", 1000)
        self.default_capture_lines = tmux_config.get("default_capture_lines", 50)

        # Load timeout configuration with fallbacks
        timeouts = self.config.get("timeouts", {})
        tmux_timeouts = timeouts.get("tmux", {})

        self.command_timeout_seconds = tmux_timeouts.get("command_timeout_seconds", 5)
        self.send_message_delay_ms = tmux_timeouts.get("send_message_delay_ms", 500)

    def _run_tmux(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a tmux command."""
        cmd = [self.tmux_binary] + list(args)
        logger.debug(f"Running tmux command: {' '.join(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            timeout=self.command_timeout_seconds,
        )

    @staticmethod
    def window_target(session_name: str, window_index: int) -> str:
        return f"{session_name}:{window_index}"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_sessions(self) -> list[TmuxSession]:
        """
        List all sessions with their windows.

        A stopped tmux server and a failed call both look like "no sessions".
        """
        try:
            result = self._run_tmux("list-sessions", "-F", SESSION_FORMAT)
        except subprocess.CalledProcessError as e:
            logger.warning(f"Could not list tmux sessions: {_error_detail(e)}")
            return []
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.error(f"Error getting tmux sessions: {e}")
            return []

        sessions = []
        for line in result.stdout.splitlines():
            parsed = parse_session_line(line)
            if not parsed:
                continue
            name, attached = parsed
            sessions.append(TmuxSession(
                name=name,
                attached=attached,
                windows=self.get_session_windows(name),
            ))
        return sessions

    def get_session_windows(self, session_name: str) -> list[TmuxWindow]:
        """List windows of one session in the order tmux reports them."""
        try:
            result = self._run_tmux("list-windows", "-t", session_name, "-F", WINDOW_FORMAT)
        except TMUX_ERRORS as e:
            logger.error(f"Error getting windows for session {session_name}: {_error_detail(e)}")
            return []

        windows = []
        for line in result.stdout.splitlines():
            window = parse_window_line(session_name, line)
            if window:
                windows.append(window)
        return windows

    def capture_window_content(
        self,
        session_name: str,
        window_index: int,
        num_lines: Optional[int] = None,
    ) -> str:
        """
        Capture the most recent lines of a window.

        Args:
            session_name: tmux session name
            window_index: Window index inside the session
            num_lines: Lines to capture, clamped to max_lines_capture

        Returns:
            Captured text, or an error message in its place on failure
        """
        requested = num_lines if num_lines is not None else self.default_capture_lines
        lines = max(1, min(requested, self.max_lines_capture))
        target = self.window_target(session_name, window_index)

        try:
            result = self._run_tmux(
                "capture-pane",
                "-t", target,
                "-p",  # Print to stdout
                "-S", f"-{lines}",  # Start from N lines back
            )
            return result.stdout
        except TMUX_ERRORS as e:
            logger.error(f"Failed to capture pane {target}: {_error_detail(e)}")
            return f"Error capturing window content: {_error_detail(e)}"

    def get_window_info(self, session_name: str, window_index: int) -> WindowInfo:
        """Window metadata plus freshly captured content."""
        target = self.window_target(session_name, window_index)
        try:
            result = self._run_tmux("display-message", "-t", target, "-p", WINDOW_INFO_FORMAT)
        except TMUX_ERRORS as e:
            logger.error(f"Failed to get window info for {target}: {_error_detail(e)}")
            return WindowInfo(error=f"Could not get window info: {_error_detail(e)}")

        parsed = parse_window_info(result.stdout)
        if not parsed:
            return WindowInfo(error="No window info available")

        name, active, panes, layout = parsed
        return WindowInfo(
            name=name,
            active=active,
            panes=panes,
            layout=layout,
            content=self.capture_window_content(session_name, window_index),
        )

    def get_all_status(self) -> TmuxStatus:
        """Snapshot every session and window. One tmux round-trip per window, not batched."""
        status = TmuxStatus(timestamp=datetime.now())
        for session in self.get_sessions():
            session_status = SessionStatus(name=session.name, attached=session.attached)
            for window in session.windows:
                session_status.windows.append(WindowStatus(
                    index=window.window_index,
                    name=window.window_name,
                    active=window.active,
                    info=self.get_window_info(session.name, window.window_index),
                ))
            status.sessions.append(session_status)
        return status

    def find_windows_by_name(self, window_name: str) -> list[WindowMatch]:
        """Case-insensitive substring match over all window names."""
        needle = window_name.lower()
        matches = []
        for session in self.get_sessions():
            for window in session.windows:
                if needle in window.window_name.lower():
                    matches.append(WindowMatch(session=session.name, index=window.window_index))
        return matches

    def create_monitoring_snapshot(self) -> str:
        """Render get_all_status() as a readable report."""
        status = self.get_all_status()

        out = [f"Tmux Monitoring Snapshot - {status.timestamp.isoformat()}", "=" * 50, ""]
        for session in status.sessions:
            state = "ATTACHED" if session.attached else "DETACHED"
            out.append(f"Session: {session.name} ({state})")
            out.append("-" * 30)

            for window in session.windows:
                header = f"  Window {window.index}: {window.name}"
                if window.active:
                    header += " (ACTIVE)"
                out.append(header)

                if window.info.content:
                    recent = window.info.content.split("\n")[-SNAPSHOT_TAIL_LINES:]
                    out.append("    Recent output:")
                    for line in recent:
                        if line.strip():
                            out.append(f"    | {line}")
                out.append("")

        return "\n".join(out) + "\n"

    # ------------------------------------------------------------------
    # Input delivery
    # ------------------------------------------------------------------

    def send_message(self, target: str, message: str, delay_ms: Optional[int] = None) -> bool:
        """
        Type a message into an interactive program and submit it.

        Text and Enter go out as two separate send-keys calls with a settle
        delay between them. An agent TUI treats a fast burst of characters as
        a paste; Enter inside that burst is not a submit. If the Enter call
        fails after the text went through, the text stays typed.

        Args:
            target: session:window address
            message: Text to type
            delay_ms: Settle delay before Enter (default from config, 500ms)

        Returns:
            True if both phases succeeded
        """
        delay = self.send_message_delay_ms if delay_ms is None else delay_ms

        try:
            self._run_tmux("send-keys", "-t", target, "--", message)
        except TMUX_ERRORS as e:
            logger.error(f"Error sending message to {target}: {_error_detail(e)}")
            return False

        time.sleep(delay / 1000.0)

        try:
            self._run_tmux("send-keys", "-t", target, "Enter")
        except TMUX_ERRORS as e:
            logger.error(f"Message typed but Enter failed for {target}: {_error_detail(e)}")
            return False

        logger.info(f"Sent message to {target}: {message[:50]}...")
        return True

    def send_keys(self, target: str, keys: str) -> bool:
        """
        Send raw keys (e.g. 'C-c', 'Enter', 'claude') with no settle or submit.

        Args:
            target: session:window address
            keys: Key string passed to tmux send-keys

        Returns:
            True if keys sent successfully
        """
        try:
            self._run_tmux("send-keys", "-t", target, keys)
            logger.info(f"Sent keys to {target}: {keys[:50]}")
            return True
        except TMUX_ERRORS as e:
            logger.error(f"Error sending keys to {target}: {_error_detail(e)}")
            return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self, session_name: str, start_directory: Optional[str] = None) -> bool:
        """
        Create a new detached tmux session.

        Args:
            session_name: Name for the tmux session
            start_directory: Working directory for the first window

        Returns:
            True if session created successfully
        """
        args = ["new-session", "-d", "-s", session_name]
        if start_directory:
            args += ["-c", str(Path(start_directory).expanduser())]

        try:
            self._run_tmux(*args)
            logger.info(f"Created session {session_name}")
            return True
        except TMUX_ERRORS as e:
            logger.error(f"Error creating session {session_name}: {_error_detail(e)}")
            return False

    def create_window(
        self,
        session_name: str,
        window_name: str,
        start_directory: Optional[str] = None,
    ) -> Optional[int]:
        """
        Create a window and return the index tmux assigned to it.

        Returns:
            Window index, or None on failure
        """
        args = ["new-window", "-t", session_name, "-n", window_name]
        if start_directory:
            args += ["-c", str(Path(start_directory).expanduser())]
        args += ["-P", "-F", "#{window_index}"]

        try:
            result = self._run_tmux(*args)
        except TMUX_ERRORS as e:
            logger.error(f"Error creating window {window_name} in session {session_name}: {_error_detail(e)}")
            return None

        try:
            index = int(result.stdout.strip())
        except ValueError:
            logger.error(f"Unexpected new-window output for {session_name}: {result.stdout!r}")
            return None

        logger.info(f"Created window {session_name}:{index} ({window_name})")
        return index

    def rename_window(self, session_name: str, window_index: int, new_name: str) -> bool:
        target = self.window_target(session_name, window_index)
        try:
            self._run_tmux("rename-window", "-t", target, new_name)
            logger.info(f"Renamed window {target} to {new_name}")
            return True
        except TMUX_ERRORS as e:
            logger.error(f"Error renaming window {target}: {_error_detail(e)}")
            return False

    def kill_session(self, session_name: str) -> bool:
        try:
            self._run_tmux("kill-session", "-t", session_name)
            logger.info(f"Killed session {session_name}")
            return True
        except TMUX_ERRORS as e:
            logger.error(f"Error killing session {session_name}: {_error_detail(e)}")
            return False

    def kill_window(self, session_name: str, window_index: int) -> bool:
        target = self.window_target(session_name, window_index)
        try:
            self._run_tmux("kill-window", "-t", target)
            logger.info(f"Killed window {target}")
            return True
        except TMUX_ERRORS as e:
            logger.error(f"Error killing window {target}: {_error_detail(e)}")
            return False

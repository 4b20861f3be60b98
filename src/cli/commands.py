"""Command implementations for pm CLI."""

import sys
from typing import Optional

from .client import OrchestratorClient

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNAVAILABLE = 2


def _run_tool(client: OrchestratorClient, name: str, arguments: Optional[dict] = None, timeout: Optional[int] = None) -> int:
    """Call a tool, print its text, map the outcome to an exit code."""
    text, is_error, unavailable = client.call_tool(name, arguments, timeout=timeout)
    if unavailable:
        print("Error: orchestrator unavailable (is pm-server running?)", file=sys.stderr)
        return EXIT_UNAVAILABLE
    if is_error:
        print(f"Error: {text}" if text else f"Error: {name} failed", file=sys.stderr)
        return EXIT_ERROR
    print(text)
    return EXIT_OK


def cmd_tools(client: OrchestratorClient) -> int:
    tools = client.list_tools()
    if tools is None:
        print("Error: orchestrator unavailable (is pm-server running?)", file=sys.stderr)
        return EXIT_UNAVAILABLE
    for tool in tools:
        print(f"{tool['name']:<34} {tool['description']}")
    return EXIT_OK


def cmd_sessions(client: OrchestratorClient) -> int:
    return _run_tool(client, "tmux_get_sessions")


def cmd_windows(client: OrchestratorClient, session_name: str) -> int:
    return _run_tool(client, "tmux_get_session_windows", {"session_name": session_name})


def cmd_capture(client: OrchestratorClient, session_name: str, window_index: int, lines: Optional[int] = None) -> int:
    arguments = {"session_name": session_name, "window_index": window_index}
    if lines is not None:
        arguments["num_lines"] = lines
    return _run_tool(client, "tmux_capture_window", arguments)


def cmd_send(client: OrchestratorClient, target: str, message: str, delay: Optional[int] = None) -> int:
    arguments = {"target": target, "message": message}
    if delay is not None:
        arguments["delay"] = delay
    return _run_tool(client, "tmux_send_message", arguments)


def cmd_keys(client: OrchestratorClient, target: str, keys: str) -> int:
    return _run_tool(client, "tmux_send_keys", {"target": target, "keys": keys})


def cmd_status(client: OrchestratorClient) -> int:
    # One capture per window; large layouts take a while
    return _run_tool(client, "tmux_get_all_status", timeout=60)


def cmd_snapshot(client: OrchestratorClient) -> int:
    return _run_tool(client, "tmux_create_monitoring_snapshot", timeout=60)


def cmd_find(client: OrchestratorClient, window_name: str) -> int:
    return _run_tool(client, "tmux_find_windows_by_name", {"window_name": window_name})


def cmd_schedule(
    client: OrchestratorClient,
    minutes: float,
    note: str,
    target: Optional[str] = None,
    pm_session: Optional[str] = None,
    pm_window: Optional[int] = None,
) -> int:
    """Schedule a note; a failed schedule is an error, not a warning."""
    arguments = {"minutes": minutes, "note": note}
    if target:
        arguments["target_window"] = target
    if pm_session:
        arguments["pm_session_name"] = pm_session
    if pm_window is not None:
        arguments["pm_window_index"] = pm_window
    return _run_tool(client, "schedule_task", arguments)


def cmd_tasks(client: OrchestratorClient, active_only: bool = False) -> int:
    return _run_tool(client, "get_scheduled_tasks", {"active_only": active_only})


def cmd_cancel(client: OrchestratorClient, task_id: str) -> int:
    return _run_tool(client, "cancel_scheduled_task", {"task_id": task_id})

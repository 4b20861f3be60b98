"""Main entry point for pm CLI tool."""

import argparse
import sys
from typing import Optional

from .client import OrchestratorClient
from . import commands


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pm",
        description="tmux PM orchestrator CLI - inspect agent windows and schedule check-ins",
    )
    parser.add_argument("--api-url", default=None, help="Orchestrator URL (default: $PM_API_URL or http://127.0.0.1:8430)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # pm tools
    subparsers.add_parser("tools", help="List available tools")

    # pm sessions
    subparsers.add_parser("sessions", help="List tmux sessions and windows")

    # pm windows <session>
    windows_parser = subparsers.add_parser("windows", help="List windows of a session")
    windows_parser.add_argument("session_name", help="tmux session name")

    # pm capture <session> <index>
    capture_parser = subparsers.add_parser("capture", help="Show recent output of a window")
    capture_parser.add_argument("session_name", help="tmux session name")
    capture_parser.add_argument("window_index", type=int, help="Window index")
    capture_parser.add_argument("--lines", type=int, default=None, help="Lines to capture (default: 50)")

    # pm send <target> "<message>"
    send_parser = subparsers.add_parser("send", help="Type a message into a window and submit it")
    send_parser.add_argument("target", help="Target window (session:window)")
    send_parser.add_argument("message", help="Message text")
    send_parser.add_argument("--delay", type=int, default=None, metavar="MS", help="Delay before Enter in ms (default: 500)")

    # pm keys <target> <keys>
    keys_parser = subparsers.add_parser("keys", help="Send raw keys to a window")
    keys_parser.add_argument("target", help="Target window (session:window)")
    keys_parser.add_argument("keys", help="Keys to send (e.g. C-c, Enter)")

    # pm status
    subparsers.add_parser("status", help="Full status of every session and window (JSON)")

    # pm snapshot
    subparsers.add_parser("snapshot", help="Readable monitoring snapshot")

    # pm find <name>
    find_parser = subparsers.add_parser("find", help="Find windows by name")
    find_parser.add_argument("window_name", help="Name or part of it (case-insensitive)")

    # pm schedule <minutes> "<note>"
    schedule_parser = subparsers.add_parser("schedule", help="Deliver a note to a window after N minutes")
    schedule_parser.add_argument("minutes", type=float, help="Minutes until delivery")
    schedule_parser.add_argument("note", help="Note text")
    schedule_parser.add_argument("--target", default=None, help="Target window (default: tmux-orc:0)")
    schedule_parser.add_argument("--pm-session", default=None, help="PM session (overrides --target)")
    schedule_parser.add_argument("--pm-window", type=int, default=None, help="PM window index (default: 0)")

    # pm tasks
    tasks_parser = subparsers.add_parser("tasks", help="List scheduled tasks")
    tasks_parser.add_argument("--active", action="store_true", help="Only pending/running tasks")

    # pm cancel <task-id>
    cancel_parser = subparsers.add_parser("cancel", help="Cancel a scheduled task")
    cancel_parser.add_argument("task_id", help="Task ID")

    return parser


def main(argv: Optional[list[str]] = None):
    """Main entry point for pm CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(commands.EXIT_ERROR)

    client = OrchestratorClient(args.api_url)

    if args.command == "tools":
        sys.exit(commands.cmd_tools(client))
    elif args.command == "sessions":
        sys.exit(commands.cmd_sessions(client))
    elif args.command == "windows":
        sys.exit(commands.cmd_windows(client, args.session_name))
    elif args.command == "capture":
        sys.exit(commands.cmd_capture(client, args.session_name, args.window_index, args.lines))
    elif args.command == "send":
        sys.exit(commands.cmd_send(client, args.target, args.message, args.delay))
    elif args.command == "keys":
        sys.exit(commands.cmd_keys(client, args.target, args.keys))
    elif args.command == "status":
        sys.exit(commands.cmd_status(client))
    elif args.command == "snapshot":
        sys.exit(commands.cmd_snapshot(client))
    elif args.command == "find":
        sys.exit(commands.cmd_find(client, args.window_name))
    elif args.command == "schedule":
        sys.exit(commands.cmd_schedule(
            client, args.minutes, args.note, args.target, args.pm_session, args.pm_window
        ))
    elif args.command == "tasks":
        sys.exit(commands.cmd_tasks(client, args.active))
    elif args.command == "cancel":
        sys.exit(commands.cmd_cancel(client, args.task_id))


if __name__ == "__main__":
    main()

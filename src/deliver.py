"""
Deferred note delivery, run as a detached process by the scheduler.

Sleeps, reads the shared note file, then types its content into the target
window with the same two-phase send-keys sequence the controller uses (text,
settle, Enter). It talks to tmux directly: the process that scheduled it may
be gone by the time it fires.

    python -m src.deliver --target pm:0 --note-file /tmp/note.txt --delay-seconds 900
"""

import argparse
import logging
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "Time for orchestrator check!"
DEFAULT_SETTLE_SECONDS = 1.0
TMUX_TIMEOUT_SECONDS = 10


def build_message(prefix: str, note_content: str) -> str:
    """
    Flatten the note into one line behind the prefix.

    A raw newline sent through send-keys reaches the agent prompt as an early
    submit, so blank lines are dropped and the rest joined with spaces.
    """
    lines = [line.strip() for line in note_content.splitlines() if line.strip()]
    return " ".join([prefix] + lines) if prefix else " ".join(lines)


def read_note(note_file: Path) -> str:
    try:
        return note_file.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Could not read note file {note_file}: {e}")
        return ""


def send_two_phase(
    target: str,
    text: str,
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    tmux_binary: str = "tmux",
) -> bool:
    """Type text into target, wait, then press Enter as a separate keystroke."""
    try:
        subprocess.run(
            [tmux_binary, "send-keys", "-t", target, "--", text],
            check=True,
            capture_output=True,
            text=True,
            timeout=TMUX_TIMEOUT_SECONDS,
        )
        time.sleep(settle_seconds)
        subprocess.run(
            [tmux_binary, "send-keys", "-t", target, "Enter"],
            check=True,
            capture_output=True,
            text=True,
            timeout=TMUX_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"send-keys to {target} failed: {e.stderr}")
        return False
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.error(f"send-keys to {target} failed: {e}")
        return False

    logger.info(f"Delivered note to {target}: {text[:50]}...")
    return True


def deliver(
    target: str,
    note_file: Path,
    delay_seconds: float,
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    tmux_binary: str = "tmux",
    prefix: str = DEFAULT_PREFIX,
) -> bool:
    """Sleep, then deliver whatever the note file holds at that moment."""
    if delay_seconds > 0:
        logger.info(f"Sleeping {delay_seconds:.0f}s before delivering to {target}")
        time.sleep(delay_seconds)

    content = read_note(note_file)
    message = build_message(prefix, content)
    return send_two_phase(target, message, settle_seconds=settle_seconds, tmux_binary=tmux_binary)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pm-deliver",
        description="Deliver the scheduled note to a tmux window after a delay",
    )
    parser.add_argument("--target", required=True, help="Target window (session:window)")
    parser.add_argument("--note-file", required=True, help="Path to the shared note file")
    parser.add_argument("--delay-seconds", type=float, default=0.0, help="Seconds to sleep before delivery")
    parser.add_argument("--settle-seconds", type=float, default=DEFAULT_SETTLE_SECONDS,
                        help="Pause between typing the text and pressing Enter")
    parser.add_argument("--tmux", default="tmux", help="tmux binary to invoke")
    parser.add_argument("--prefix", default=DEFAULT_PREFIX, help="Text placed before the note")
    parser.add_argument("--log-file", default=None, help="Append logs here (default: <note-file>.log)")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    note_file = Path(args.note_file)
    log_file = args.log_file or f"{note_file}.log"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        filename=log_file,
    )

    ok = deliver(
        target=args.target,
        note_file=note_file,
        delay_seconds=args.delay_seconds,
        settle_seconds=args.settle_seconds,
        tmux_binary=args.tmux,
        prefix=args.prefix,
    )
    return 0 if ok else 1


def run():
    """Entry point for console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()

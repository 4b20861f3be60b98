"""Engineer sessions: briefings, project ideas and PM-to-engineer messaging."""

import json
import time
from pathlib import Path
from typing import Optional
import logging

from .models import ProjectIdea
from .tmux_controller import TmuxController

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_IDEAS_FILE = "/tmp/toma_project_ideas.json"

BASE_BRIEFING = """You are an AI engineer responsible for the codebase at: {project_path}

Your primary duties include:
1. Analyzing the project structure and understanding the codebase
2. Working on assigned tasks and priorities from the Project Manager
3. Following git discipline (commit every 30 minutes)
4. Communicating progress and blockers clearly to the PM
5. Managing sub-agents internally for different specialized tasks
6. Maintaining high code quality standards

Git Discipline Rules (MANDATORY):
- Commit every 30 minutes: git add -A && git commit -m "Progress: [description]"
- Never work >1 hour without committing
- Use meaningful commit messages
- Create feature branches for new work
- Tag stable versions before major changes

Internal Sub-Agent Management:
- You can delegate specialized tasks to internal sub-agents (frontend, backend, testing, etc.)
- Coordinate between your sub-agents to ensure cohesive development
- The Project Manager will communicate with you, not your sub-agents directly
- Report consolidated progress from all your sub-agents to the PM

First, analyze the project to understand:
- Project type (check pyproject.toml, package.json, requirements.txt, etc.)
- Current issues or priorities
- Main application purpose
- Available development tools and setup

Wait for instructions from the Project Manager before beginning work."""

STATUS_UPDATE_REQUEST = """STATUS UPDATE REQUEST

Please provide a comprehensive status update including:

1. COMPLETED TASKS (since last update):
   - List specific tasks/features completed
   - Include any commits made

2. CURRENT WORK:
   - What you're currently working on
   - Progress percentage if applicable

3. BLOCKERS/ISSUES:
   - Any technical challenges
   - Dependencies waiting on others
   - Resource needs

4. NEXT STEPS:
   - Immediate next tasks (next 2-4 hours)
   - Planned work for rest of day

5. GIT STATUS:
   - Last commit time and message
   - Any uncommitted changes
   - Branch status

Please be specific and include relevant details for project coordination."""


def generate_engineer_briefing(project_path: str, custom_briefing: Optional[str] = None) -> str:
    briefing = BASE_BRIEFING.format(project_path=project_path)
    if custom_briefing:
        briefing += f"\n\nAdditional Instructions:\n{custom_briefing}"
    return briefing


def format_project_idea(idea: ProjectIdea) -> str:
    """Message envelope for a project idea."""
    lines = [
        f"New Project Idea: {idea.title}",
        "",
        f"Description: {idea.description}",
        "",
        "Requirements:",
    ]
    lines += [f"- {req}" for req in idea.requirements]
    lines += ["", f"Priority: {idea.priority.value.upper()}"]
    if idea.estimated_hours:
        lines.append(f"Estimated Hours: {idea.estimated_hours:g}")
    if idea.assigned_to:
        lines.append(f"Assigned To: {idea.assigned_to}")
    lines += [
        "",
        "Please review this project idea and provide:",
        "1. Technical feasibility assessment",
        "2. Implementation approach",
        "3. Potential challenges",
        "4. Time estimate refinement",
    ]
    return "\n".join(lines)


class EngineerManager:
    """Creates engineer sessions and routes PM messages to them via the controller."""

    def __init__(self, tmux: TmuxController, config: Optional[dict] = None):
        self.tmux = tmux
        self.config = config or {}

        engineer_config = self.config.get("engineer", {})
        self.project_ideas_file = Path(
            engineer_config.get("project_ideas_file", DEFAULT_PROJECT_IDEAS_FILE)
        ).expanduser()
        self.startup_wait_seconds = engineer_config.get("startup_wait_seconds", 5)
        self.termination_grace_seconds = engineer_config.get("termination_grace_seconds", 30)
        self.window_name = engineer_config.get("window_name", "ingeniero")
        self.agent_command = engineer_config.get("agent_command", "claude")

    def create_engineer_session(
        self,
        session_name: str,
        project_path: str,
        briefing: Optional[str] = None,
    ) -> bool:
        """
        Create a session, start the agent in window 0 and brief it.

        Args:
            session_name: Name for the new tmux session
            project_path: Directory the engineer works in
            briefing: Extra instructions appended to the standard briefing

        Returns:
            True if the session was created and the briefing delivered
        """
        if not self.tmux.create_session(session_name, project_path):
            logger.error(f"Failed to create engineer session {session_name}")
            return False

        target = f"{session_name}:0"
        self.tmux.rename_window(session_name, 0, self.window_name)
        self.tmux.send_keys(target, self.agent_command)
        self.tmux.send_keys(target, "Enter")

        # Give the agent time to reach its prompt
        time.sleep(self.startup_wait_seconds)

        return self.tmux.send_message(target, generate_engineer_briefing(project_path, briefing))

    def save_project_idea(self, idea: ProjectIdea) -> None:
        """
        Append an idea to the JSON array file.

        Raises:
            OSError, ValueError: If the file cannot be read or written
        """
        ideas = []
        if self.project_ideas_file.exists():
            ideas = json.loads(self.project_ideas_file.read_text(encoding="utf-8"))

        record = idea.to_dict()
        record["assigned_to"] = idea.assigned_to or "unassigned"
        ideas.append(record)

        self.project_ideas_file.parent.mkdir(parents=True, exist_ok=True)
        self.project_ideas_file.write_text(json.dumps(ideas, indent=2), encoding="utf-8")

    def get_project_ideas(self) -> list[dict]:
        if not self.project_ideas_file.exists():
            return []
        try:
            return json.loads(self.project_ideas_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error reading project ideas from {self.project_ideas_file}: {e}")
            return []

    def send_project_idea(self, session_name: str, idea: ProjectIdea) -> bool:
        try:
            self.save_project_idea(idea)
        except (OSError, ValueError) as e:
            logger.error(f"Error saving project idea '{idea.title}': {e}")
            return False
        return self.tmux.send_message(f"{session_name}:0", format_project_idea(idea))

    def request_status_update(self, session_name: str) -> bool:
        return self.tmux.send_message(f"{session_name}:0", STATUS_UPDATE_REQUEST)

    def send_message_between_engineers(self, from_session: str, to_session: str, message: str) -> bool:
        formatted = (
            f"MESSAGE FROM {from_session.upper()}:\n\n"
            f"{message}\n\n"
            "---\n"
            "This message was sent via the orchestrator system."
        )
        return self.tmux.send_message(f"{to_session}:0", formatted)

    def broadcast_message(
        self,
        sessions: list[str],
        message: str,
        exclude_session: Optional[str] = None,
    ) -> list[bool]:
        """Send to every session except the excluded one; one result per send."""
        formatted = (
            "BROADCAST MESSAGE:\n\n"
            f"{message}\n\n"
            "---\n"
            "This message was broadcast to all active engineer sessions."
        )
        results = []
        for session in sessions:
            if exclude_session and session == exclude_session:
                continue
            results.append(self.tmux.send_message(f"{session}:0", formatted))
        return results

    def terminate_engineer_session(self, session_name: str, reason: Optional[str] = None) -> bool:
        """Warn the engineer (when a reason is given), wait for final commits, then kill."""
        if reason:
            self.tmux.send_message(
                f"{session_name}:0",
                f"SESSION TERMINATION NOTICE: {reason}\n\n"
                "Please commit any outstanding work immediately. "
                f"Session will be terminated in {self.termination_grace_seconds} seconds.",
            )
            time.sleep(self.termination_grace_seconds)

        return self.tmux.kill_session(session_name)

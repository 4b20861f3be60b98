"""Data models for the tmux project-manager orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List


class TaskStatus(Enum):
    """Scheduled task lifecycle status."""
    PENDING = "pending"      # Registered, note written, process not launched yet
    RUNNING = "running"      # Background process launched
    COMPLETED = "completed"  # Cancelled and the process signaled
    FAILED = "failed"        # Launch (or note write) failed


class CancelResult(Enum):
    """Result of a cancel attempt."""
    CANCELLED = "cancelled"      # Process signaled, task marked completed
    NOT_FOUND = "not_found"      # Unknown task id
    NOT_RUNNING = "not_running"  # No process identifier or not in running state
    FAILED = "failed"            # Signal could not be delivered


class IdeaPriority(Enum):
    """Project idea priority."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class TmuxWindow:
    """A window inside a tmux session."""
    session_name: str
    window_index: int
    window_name: str
    active: bool = False
    panes: int = 0
    layout: str = ""

    def to_dict(self) -> dict:
        return {
            "session_name": self.session_name,
            "window_index": self.window_index,
            "window_name": self.window_name,
            "active": self.active,
            "panes": self.panes,
            "layout": self.layout,
        }


@dataclass
class TmuxSession:
    """A tmux session and its windows."""
    name: str
    attached: bool = False
    windows: List[TmuxWindow] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "attached": self.attached,
            "windows": [w.to_dict() for w in self.windows],
        }


@dataclass
class WindowInfo:
    """
    Point-in-time view of a window.

    Either `content` is populated (captured pane text) or `error` explains why
    the metadata query failed. A failed query yields zero values for the rest.
    """
    name: str = ""
    active: bool = False
    panes: int = 0
    layout: str = ""
    content: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "active": self.active,
            "panes": self.panes,
            "layout": self.layout,
        }
        if self.content is not None:
            data["content"] = self.content
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class WindowStatus:
    """One window inside a status snapshot."""
    index: int
    name: str
    active: bool
    info: WindowInfo

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "active": self.active,
            "info": self.info.to_dict(),
        }


@dataclass
class SessionStatus:
    """One session inside a status snapshot."""
    name: str
    attached: bool
    windows: List[WindowStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "attached": self.attached,
            "windows": [w.to_dict() for w in self.windows],
        }


@dataclass
class TmuxStatus:
    """Full recursive snapshot of every session and window."""
    timestamp: datetime = field(default_factory=datetime.now)
    sessions: List[SessionStatus] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass
class WindowMatch:
    """A window found by name search."""
    session: str
    index: int

    def to_dict(self) -> dict:
        return {"session": self.session, "index": self.index}


@dataclass
class ScheduledTask:
    """A deferred note delivery to a tmux window."""
    id: str
    minutes: float
    note: str
    target_window: str
    scheduled_at: datetime = field(default_factory=datetime.now)
    execute_at: Optional[datetime] = None
    pid: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING

    @property
    def is_active(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.RUNNING)

    def to_dict(self) -> dict:
        """Convert task to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "minutes": self.minutes,
            "note": self.note,
            "target_window": self.target_window,
            "scheduled_at": self.scheduled_at.isoformat(),
            "execute_at": self.execute_at.isoformat() if self.execute_at else None,
            "pid": self.pid,
            "status": self.status.value,
        }


@dataclass
class ScheduleResult:
    """Outcome of a scheduling call. Failures are explicit, never swallowed."""
    success: bool
    task_id: Optional[str] = None
    task: Optional[ScheduledTask] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, task: ScheduledTask) -> "ScheduleResult":
        return cls(success=True, task_id=task.id, task=task)

    @classmethod
    def failed(cls, error: str, task: Optional[ScheduledTask] = None) -> "ScheduleResult":
        return cls(success=False, task_id=task.id if task else None, task=task, error=error)


@dataclass
class ProjectIdea:
    """A project idea handed to an engineer session."""
    title: str
    description: str
    requirements: List[str] = field(default_factory=list)
    priority: IdeaPriority = IdeaPriority.MEDIUM
    estimated_hours: Optional[float] = None
    assigned_to: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "requirements": list(self.requirements),
            "priority": self.priority.value,
            "estimated_hours": self.estimated_hours,
            "assigned_to": self.assigned_to,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectIdea":
        """Create idea from dictionary."""
        return cls(
            title=data["title"],
            description=data.get("description", ""),
            requirements=list(data.get("requirements") or []),
            priority=IdeaPriority(data.get("priority", "medium")),
            estimated_hours=data.get("estimated_hours"),
            assigned_to=data.get("assigned_to"),
        )

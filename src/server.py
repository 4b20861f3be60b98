"""FastAPI server exposing the orchestrator as named tools."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Literal, Callable

from fastapi import FastAPI, HTTPException, Body, Request
from pydantic import BaseModel, Field, ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from .models import CancelResult, IdeaPriority, ProjectIdea, ScheduleResult
from .scheduler import MAX_MINUTES

logger = logging.getLogger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Log slow requests for debugging."""

    def __init__(self, app, config: Optional[dict] = None):
        super().__init__(app)
        self.config = config or {}

        # Load timing thresholds from config
        timeouts = self.config.get("timeouts", {})
        server_timeouts = timeouts.get("server", {})
        self.slow_threshold = server_timeouts.get("slow_request_threshold_seconds", 1.0)
        self.timing_threshold = server_timeouts.get("request_timing_threshold_seconds", 0.1)

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start

        if elapsed > self.slow_threshold:
            logger.warning(
                f"SLOW REQUEST: {request.method} {request.url.path} "
                f"took {elapsed:.2f}s"
            )
        elif elapsed > self.timing_threshold:
            logger.info(
                f"Request: {request.method} {request.url.path} "
                f"took {elapsed*1000:.0f}ms"
            )

        return response


# ---------------------------------------------------------------------------
# Tool argument models
# ---------------------------------------------------------------------------

class NoArgs(BaseModel):
    pass


class SessionArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")


class WindowArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")
    window_index: int = Field(ge=0, description="Index of the window")


class CaptureWindowArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")
    window_index: int = Field(ge=0, description="Index of the window")
    num_lines: Optional[int] = Field(default=None, description="Number of lines to capture (default: 50)")


class SendMessageArgs(BaseModel):
    target: str = Field(description="Target window (session:window format)")
    message: str = Field(description="Message to send")
    delay: Optional[int] = Field(default=None, ge=0, description="Delay in milliseconds before sending Enter (default: 500)")


class SendKeysArgs(BaseModel):
    target: str = Field(description="Target window (session:window format)")
    keys: str = Field(description="Keys to send")


class CreateSessionArgs(BaseModel):
    session_name: str = Field(description="Name for the new session")
    start_directory: Optional[str] = Field(default=None, description="Starting directory for the session")


class CreateWindowArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")
    window_name: str = Field(description="Name for the new window")
    start_directory: Optional[str] = Field(default=None, description="Starting directory for the window")


class RenameWindowArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")
    window_index: int = Field(ge=0, description="Index of the window")
    new_name: str = Field(description="New name for the window")


class FindWindowsArgs(BaseModel):
    window_name: str = Field(description="Window name (or part of it) to search for")


class ScheduleTaskArgs(BaseModel):
    minutes: float = Field(ge=0, le=MAX_MINUTES, description="Minutes until the note is delivered")
    note: str = Field(description="Note to deliver")
    target_window: Optional[str] = Field(default=None, description="Target window (default: tmux-orc:0)")
    pm_session_name: Optional[str] = Field(default=None, description="PM session to notify instead of the target window")
    pm_window_index: Optional[int] = Field(default=None, ge=0, description="Window in the PM session (default: 0)")


class ScheduleProgressReviewArgs(BaseModel):
    session_name: str = Field(description="Session to review")
    minutes: float = Field(default=30, ge=0, le=MAX_MINUTES, description="Minutes until review (default: 30)")
    pm_session_name: Optional[str] = Field(default=None, description="PM session to notify instead of the target window")
    pm_window_index: Optional[int] = Field(default=None, ge=0, description="Window in the PM session (default: 0)")


class ScheduleOrchestratorCheckArgs(BaseModel):
    minutes: float = Field(default=15, ge=0, le=MAX_MINUTES, description="Minutes until check (default: 15)")
    pm_session_name: Optional[str] = Field(default=None, description="PM session to notify instead of the target window")
    pm_window_index: Optional[int] = Field(default=None, ge=0, description="Window in the PM session (default: 0)")


class ScheduleEngineerStandupArgs(BaseModel):
    session_name: str = Field(description="Engineer session")
    minutes: float = Field(default=480, ge=0, le=MAX_MINUTES, description="Minutes until standup (default: 480)")
    pm_session_name: Optional[str] = Field(default=None, description="PM session to notify instead of the target window")
    pm_window_index: Optional[int] = Field(default=None, ge=0, description="Window in the PM session (default: 0)")


class GetScheduledTasksArgs(BaseModel):
    active_only: bool = Field(default=False, description="Only pending/running tasks")


class CancelTaskArgs(BaseModel):
    task_id: str = Field(description="ID of the task to cancel")


class CreateEngineerSessionArgs(BaseModel):
    session_name: str = Field(description="Name for the engineer session")
    project_path: str = Field(description="Path to the project directory")
    briefing: Optional[str] = Field(default=None, description="Additional briefing for the engineer")


class SendProjectIdeaArgs(BaseModel):
    session_name: str = Field(description="Engineer session to receive the idea")
    title: str
    description: str
    requirements: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"] = "medium"
    estimated_hours: Optional[float] = None
    assigned_to: Optional[str] = None


class EngineerMessageArgs(BaseModel):
    from_session: str = Field(description="Sending session")
    to_session: str = Field(description="Receiving session")
    message: str


class BroadcastArgs(BaseModel):
    sessions: List[str] = Field(description="Sessions to message")
    message: str
    exclude_session: Optional[str] = None


class TerminateEngineerArgs(BaseModel):
    session_name: str = Field(description="Name of the tmux session")
    reason: Optional[str] = Field(default=None, description="Reason; when given the engineer is warned first")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResponse(BaseModel):
    """Result of a tool call."""
    content: List[TextContent]
    is_error: bool = False


class ToolDefinition(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any]


def _text(text: str, is_error: bool = False) -> dict:
    return {"content": [{"type": "text", "text": text}], "is_error": is_error}


def _json(data: Any) -> dict:
    return _text(json.dumps(data, indent=2))


def _scheduled(result: ScheduleResult, message: Callable[[str], str]) -> dict:
    """Tool result for a schedule call; `message` renders the success text from the task id."""
    if not result.success:
        return _text(f"Failed to schedule task: {result.error}", is_error=True)
    return _text(message(result.task_id))


# ---------------------------------------------------------------------------
# Tool handlers. Each takes app.state and validated args; all run in a worker thread.
# ---------------------------------------------------------------------------

def _get_sessions(state, args: NoArgs) -> dict:
    return _json([s.to_dict() for s in state.tmux.get_sessions()])


def _get_session_windows(state, args: SessionArgs) -> dict:
    return _json([w.to_dict() for w in state.tmux.get_session_windows(args.session_name)])


def _capture_window(state, args: CaptureWindowArgs) -> dict:
    return _text(state.tmux.capture_window_content(args.session_name, args.window_index, args.num_lines))


def _get_window_info(state, args: WindowArgs) -> dict:
    return _json(state.tmux.get_window_info(args.session_name, args.window_index).to_dict())


def _send_message(state, args: SendMessageArgs) -> dict:
    ok = state.tmux.send_message(args.target, args.message, args.delay)
    return _text(f"Message {'sent successfully' if ok else 'failed to send'} to {args.target}")


def _send_keys(state, args: SendKeysArgs) -> dict:
    ok = state.tmux.send_keys(args.target, args.keys)
    return _text(f"Keys {'sent successfully' if ok else 'failed to send'} to {args.target}")


def _create_session(state, args: CreateSessionArgs) -> dict:
    ok = state.tmux.create_session(args.session_name, args.start_directory)
    return _text(f"Session {args.session_name} {'created successfully' if ok else 'failed to create'}")


def _create_window(state, args: CreateWindowArgs) -> dict:
    index = state.tmux.create_window(args.session_name, args.window_name, args.start_directory)
    if index is None:
        return _text(f"Failed to create window {args.window_name} in {args.session_name}")
    return _text(f"Window {args.window_name} created at index {index}")


def _rename_window(state, args: RenameWindowArgs) -> dict:
    ok = state.tmux.rename_window(args.session_name, args.window_index, args.new_name)
    return _text(f"Window {'renamed successfully' if ok else 'failed to rename'}")


def _kill_session(state, args: SessionArgs) -> dict:
    ok = state.tmux.kill_session(args.session_name)
    return _text(f"Session {args.session_name} {'killed successfully' if ok else 'failed to kill'}")


def _kill_window(state, args: WindowArgs) -> dict:
    ok = state.tmux.kill_window(args.session_name, args.window_index)
    return _text(f"Window {'killed successfully' if ok else 'failed to kill'}")


def _get_all_status(state, args: NoArgs) -> dict:
    return _json(state.tmux.get_all_status().to_dict())


def _find_windows_by_name(state, args: FindWindowsArgs) -> dict:
    return _json([m.to_dict() for m in state.tmux.find_windows_by_name(args.window_name)])


def _create_monitoring_snapshot(state, args: NoArgs) -> dict:
    return _text(state.tmux.create_monitoring_snapshot())


def _schedule_task(state, args: ScheduleTaskArgs) -> dict:
    result = state.scheduler.schedule_task(
        args.minutes,
        args.note,
        target_window=args.target_window,
        pm_session_name=args.pm_session_name,
        pm_window_index=args.pm_window_index,
    )
    return _scheduled(result, lambda task_id: f"Task scheduled successfully with ID: {task_id}")


def _schedule_progress_review(state, args: ScheduleProgressReviewArgs) -> dict:
    result = state.scheduler.schedule_progress_review(
        args.session_name, args.minutes, args.pm_session_name, args.pm_window_index
    )
    return _scheduled(
        result,
        lambda task_id: f"Progress review scheduled for {args.session_name} in {args.minutes:g} minutes. Task ID: {task_id}",
    )


def _schedule_orchestrator_check(state, args: ScheduleOrchestratorCheckArgs) -> dict:
    result = state.scheduler.schedule_orchestrator_check(
        args.minutes, args.pm_session_name, args.pm_window_index
    )
    return _scheduled(
        result,
        lambda task_id: f"Orchestrator check scheduled in {args.minutes:g} minutes. Task ID: {task_id}",
    )


def _schedule_engineer_standup(state, args: ScheduleEngineerStandupArgs) -> dict:
    result = state.scheduler.schedule_engineer_standup(
        args.session_name, args.minutes, args.pm_session_name, args.pm_window_index
    )
    return _scheduled(
        result,
        lambda task_id: f"Engineer standup scheduled for {args.session_name} in {args.minutes:g} minutes. Task ID: {task_id}",
    )


def _get_scheduled_tasks(state, args: GetScheduledTasksArgs) -> dict:
    tasks = state.scheduler.get_active_tasks() if args.active_only else state.scheduler.get_all_tasks()
    return _json([t.to_dict() for t in tasks])


def _cancel_scheduled_task(state, args: CancelTaskArgs) -> dict:
    result = state.scheduler.cancel_task(args.task_id)
    if result == CancelResult.CANCELLED:
        return _text(f"Task {args.task_id} cancelled successfully")
    return _text(f"Task {args.task_id} failed to cancel or not found ({result.value})", is_error=True)


def _create_engineer_session(state, args: CreateEngineerSessionArgs) -> dict:
    ok = state.engineer_manager.create_engineer_session(args.session_name, args.project_path, args.briefing)
    status = f'created successfully with single "{state.engineer_manager.window_name}" window' if ok else "failed to create"
    return _text(f"Engineer session {args.session_name} {status}")


def _send_project_idea(state, args: SendProjectIdeaArgs) -> dict:
    idea = ProjectIdea(
        title=args.title,
        description=args.description,
        requirements=args.requirements,
        priority=IdeaPriority(args.priority),
        estimated_hours=args.estimated_hours,
        assigned_to=args.assigned_to,
    )
    ok = state.engineer_manager.send_project_idea(args.session_name, idea)
    return _text(f"Project idea {'sent successfully' if ok else 'failed to send'} to {args.session_name}")


def _get_project_ideas(state, args: NoArgs) -> dict:
    return _json(state.engineer_manager.get_project_ideas())


def _request_status_update(state, args: SessionArgs) -> dict:
    ok = state.engineer_manager.request_status_update(args.session_name)
    return _text(f"Status update request {'sent successfully' if ok else 'failed to send'} to {args.session_name}")


def _send_message_between_engineers(state, args: EngineerMessageArgs) -> dict:
    ok = state.engineer_manager.send_message_between_engineers(args.from_session, args.to_session, args.message)
    return _text(
        f"Message {'sent successfully' if ok else 'failed to send'} from {args.from_session} to {args.to_session}"
    )


def _broadcast_message(state, args: BroadcastArgs) -> dict:
    results = state.engineer_manager.broadcast_message(args.sessions, args.message, args.exclude_session)
    return _text(f"Broadcast message sent to {sum(1 for r in results if r)}/{len(results)} sessions")


def _terminate_engineer_session(state, args: TerminateEngineerArgs) -> dict:
    ok = state.engineer_manager.terminate_engineer_session(args.session_name, args.reason)
    return _text(f"Engineer session {args.session_name} {'terminated successfully' if ok else 'failed to terminate'}")


@dataclass
class Tool:
    name: str
    description: str
    args_model: type
    handler: Callable[[Any, BaseModel], dict]
    component: str

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.args_model.model_json_schema(),
        )


TOOLS: Dict[str, Tool] = {t.name: t for t in [
    # tmux
    Tool("tmux_get_sessions", "Get all tmux sessions and their windows", NoArgs, _get_sessions, "tmux"),
    Tool("tmux_get_session_windows", "Get windows for a specific tmux session", SessionArgs, _get_session_windows, "tmux"),
    Tool("tmux_capture_window", "Capture content from a tmux window", CaptureWindowArgs, _capture_window, "tmux"),
    Tool("tmux_get_window_info", "Get detailed information about a specific window", WindowArgs, _get_window_info, "tmux"),
    Tool("tmux_send_message", "Send a message to an agent in a tmux window", SendMessageArgs, _send_message, "tmux"),
    Tool("tmux_send_keys", "Send raw keys to a tmux window", SendKeysArgs, _send_keys, "tmux"),
    Tool("tmux_create_session", "Create a new tmux session", CreateSessionArgs, _create_session, "tmux"),
    Tool("tmux_create_window", "Create a new window in a tmux session", CreateWindowArgs, _create_window, "tmux"),
    Tool("tmux_rename_window", "Rename a tmux window", RenameWindowArgs, _rename_window, "tmux"),
    Tool("tmux_kill_session", "Kill a tmux session", SessionArgs, _kill_session, "tmux"),
    Tool("tmux_kill_window", "Kill a tmux window", WindowArgs, _kill_window, "tmux"),
    Tool("tmux_get_all_status", "Get status of every session and window", NoArgs, _get_all_status, "tmux"),
    Tool("tmux_find_windows_by_name", "Find windows whose name contains a string", FindWindowsArgs, _find_windows_by_name, "tmux"),
    Tool("tmux_create_monitoring_snapshot", "Readable snapshot of all sessions and recent output", NoArgs, _create_monitoring_snapshot, "tmux"),
    # scheduler
    Tool("schedule_task", "Schedule a note to be delivered to a window later", ScheduleTaskArgs, _schedule_task, "scheduler"),
    Tool("schedule_progress_review", "Schedule a progress review reminder", ScheduleProgressReviewArgs, _schedule_progress_review, "scheduler"),
    Tool("schedule_orchestrator_check", "Schedule an orchestrator oversight check", ScheduleOrchestratorCheckArgs, _schedule_orchestrator_check, "scheduler"),
    Tool("schedule_engineer_standup", "Schedule an engineer standup reminder", ScheduleEngineerStandupArgs, _schedule_engineer_standup, "scheduler"),
    Tool("get_scheduled_tasks", "List scheduled tasks", GetScheduledTasksArgs, _get_scheduled_tasks, "scheduler"),
    Tool("cancel_scheduled_task", "Cancel a scheduled task", CancelTaskArgs, _cancel_scheduled_task, "scheduler"),
    # engineers
    Tool("create_engineer_session", "Create an engineer session and brief the agent", CreateEngineerSessionArgs, _create_engineer_session, "engineer_manager"),
    Tool("send_project_idea", "Save a project idea and send it to an engineer", SendProjectIdeaArgs, _send_project_idea, "engineer_manager"),
    Tool("get_project_ideas", "List saved project ideas", NoArgs, _get_project_ideas, "engineer_manager"),
    Tool("request_status_update", "Ask an engineer for a status update", SessionArgs, _request_status_update, "engineer_manager"),
    Tool("send_message_between_engineers", "Relay a message from one engineer to another", EngineerMessageArgs, _send_message_between_engineers, "engineer_manager"),
    Tool("broadcast_message", "Send a message to several engineer sessions", BroadcastArgs, _broadcast_message, "engineer_manager"),
    Tool("terminate_engineer_session", "Warn an engineer and kill its session", TerminateEngineerArgs, _terminate_engineer_session, "engineer_manager"),
]}


def create_app(
    tmux=None,
    scheduler=None,
    engineer_manager=None,
    config: Optional[dict] = None,
    lifespan=None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        tmux: TmuxController instance
        scheduler: TaskScheduler instance
        engineer_manager: EngineerManager instance
        config: Configuration dictionary
        lifespan: Optional ASGI lifespan context manager

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="tmux PM Orchestrator",
        description="Drive agent sessions in tmux and schedule check-ins",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config or {}
    app.add_middleware(RequestTimingMiddleware, config=config)

    app.state.tmux = tmux
    app.state.scheduler = scheduler
    app.state.engineer_manager = engineer_manager

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "tmux-pm-orchestrator"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/tools", response_model=List[ToolDefinition])
    async def list_tools():
        """Every tool with its JSON input schema."""
        return [tool.definition() for tool in TOOLS.values()]

    @app.post("/tools/{name}", response_model=ToolResponse)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]] = Body(default=None)):
        """Validate arguments and run a tool."""
        tool = TOOLS.get(name)
        if not tool:
            raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")

        if getattr(app.state, tool.component) is None:
            raise HTTPException(status_code=503, detail=f"{tool.component} not configured")

        try:
            args = tool.args_model.model_validate(arguments or {})
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=json.loads(e.json()))

        logger.debug(f"Tool call {name}: {args!r}")
        return await asyncio.to_thread(tool.handler, app.state, args)

    return app

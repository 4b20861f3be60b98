"""Shared pytest fixtures for orchestrator tests."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.tmux_controller import TmuxController
from src.scheduler import TaskScheduler
from src.engineer_manager import EngineerManager
from src.server import create_app


@pytest.fixture
def mock_tmux() -> MagicMock:
    """
    Mock TmuxController for testing without a tmux server.

    Returns:
        MagicMock with common tmux methods configured
    """
    mock = MagicMock(spec=TmuxController)
    mock.get_sessions.return_value = []
    mock.get_session_windows.return_value = []
    mock.capture_window_content.return_value = "Mock tmux output"
    mock.send_message.return_value = True
    mock.send_keys.return_value = True
    mock.create_session.return_value = True
    mock.create_window.return_value = 1
    mock.rename_window.return_value = True
    mock.kill_session.return_value = True
    mock.kill_window.return_value = True
    mock.find_windows_by_name.return_value = []
    mock.create_monitoring_snapshot.return_value = "Tmux Monitoring Snapshot"
    return mock


@pytest.fixture
def tmux_controller() -> TmuxController:
    """TmuxController with short timeouts for testing."""
    config = {
        "timeouts": {
            "tmux": {
                "command_timeout_seconds": 2,
                "send_message_delay_ms": 10,
            }
        }
    }
    return TmuxController(config=config)


@pytest.fixture
def note_file(tmp_path) -> Path:
    return tmp_path / "next_check_note.txt"


@pytest.fixture
def scheduler(note_file) -> TaskScheduler:
    """TaskScheduler writing its note into a temp dir."""
    return TaskScheduler(config={"scheduler": {"note_file": str(note_file)}})


@pytest.fixture
def mock_popen():
    """Patch Popen in the scheduler so no real process is launched."""
    proc = MagicMock()
    proc.pid = 4242
    proc.poll.return_value = None  # still sleeping
    with patch("src.scheduler.subprocess.Popen", return_value=proc) as popen:
        yield popen


@pytest.fixture
def engineer_manager(mock_tmux, tmp_path) -> EngineerManager:
    return EngineerManager(
        mock_tmux,
        config={
            "engineer": {
                "project_ideas_file": str(tmp_path / "ideas.json"),
                "startup_wait_seconds": 0,
                "termination_grace_seconds": 0,
            }
        },
    )


@pytest.fixture
def test_client(mock_tmux, scheduler, engineer_manager) -> TestClient:
    """FastAPI TestClient wired to a mocked controller and real scheduler."""
    app = create_app(
        tmux=mock_tmux,
        scheduler=scheduler,
        engineer_manager=engineer_manager,
        config={},
    )
    return TestClient(app)

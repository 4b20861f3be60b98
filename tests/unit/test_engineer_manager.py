"""Unit tests for EngineerManager."""

from unittest.mock import patch, call

from src.engineer_manager import generate_engineer_briefing, format_project_idea
from src.models import ProjectIdea, IdeaPriority


def make_idea(**overrides) -> ProjectIdea:
    fields = dict(
        title="Metrics endpoint",
        description="Expose Prometheus metrics",
        requirements=["/metrics route", "request counters"],
        priority=IdeaPriority.HIGH,
        estimated_hours=6,
    )
    fields.update(overrides)
    return ProjectIdea(**fields)


class TestBriefing:

    def test_base_briefing(self):
        briefing = generate_engineer_briefing("/srv/app")
        assert briefing.startswith("You are an AI engineer responsible for the codebase at: /srv/app")
        assert "Additional Instructions" not in briefing

    def test_custom_briefing_appended(self):
        briefing = generate_engineer_briefing("/srv/app", "Focus on the API first")
        assert briefing.endswith("\n\nAdditional Instructions:\nFocus on the API first")


class TestCreateEngineerSession:

    def test_creates_and_briefs(self, engineer_manager, mock_tmux):
        assert engineer_manager.create_engineer_session("eng", "/srv/app", "Be brief") is True

        mock_tmux.create_session.assert_called_once_with("eng", "/srv/app")
        mock_tmux.rename_window.assert_called_once_with("eng", 0, "ingeniero")
        assert mock_tmux.send_keys.call_args_list == [call("eng:0", "claude"), call("eng:0", "Enter")]
        target, message = mock_tmux.send_message.call_args[0]
        assert target == "eng:0"
        assert "Additional Instructions:\nBe brief" in message

    def test_create_failure_stops_early(self, engineer_manager, mock_tmux):
        mock_tmux.create_session.return_value = False
        assert engineer_manager.create_engineer_session("eng", "/srv/app") is False
        mock_tmux.send_keys.assert_not_called()
        mock_tmux.send_message.assert_not_called()


class TestProjectIdeas:

    def test_send_saves_then_sends(self, engineer_manager, mock_tmux):
        assert engineer_manager.send_project_idea("eng", make_idea()) is True

        ideas = engineer_manager.get_project_ideas()
        assert len(ideas) == 1
        assert ideas[0]["title"] == "Metrics endpoint"
        assert ideas[0]["assigned_to"] == "unassigned"
        assert ideas[0]["priority"] == "high"

        target, message = mock_tmux.send_message.call_args[0]
        assert target == "eng:0"
        assert "New Project Idea: Metrics endpoint" in message
        assert "- /metrics route" in message
        assert "Priority: HIGH" in message

    def test_ideas_append(self, engineer_manager):
        engineer_manager.save_project_idea(make_idea(title="one"))
        engineer_manager.save_project_idea(make_idea(title="two", assigned_to="eng"))

        ideas = engineer_manager.get_project_ideas()
        assert [i["title"] for i in ideas] == ["one", "two"]
        assert ideas[1]["assigned_to"] == "eng"

    def test_no_file_means_no_ideas(self, engineer_manager):
        assert engineer_manager.get_project_ideas() == []

    def test_corrupt_file_reads_empty(self, engineer_manager):
        engineer_manager.project_ideas_file.write_text("{not json")
        assert engineer_manager.get_project_ideas() == []

    def test_corrupt_file_blocks_send(self, engineer_manager, mock_tmux):
        engineer_manager.project_ideas_file.write_text("{not json")
        assert engineer_manager.send_project_idea("eng", make_idea()) is False
        mock_tmux.send_message.assert_not_called()

    def test_format_optional_fields(self):
        text = format_project_idea(make_idea(estimated_hours=None, assigned_to="eng2"))
        assert "Estimated Hours" not in text
        assert "Assigned To: eng2" in text


class TestMessaging:

    def test_status_update(self, engineer_manager, mock_tmux):
        assert engineer_manager.request_status_update("eng") is True
        target, message = mock_tmux.send_message.call_args[0]
        assert target == "eng:0"
        assert message.startswith("STATUS UPDATE REQUEST")

    def test_between_engineers(self, engineer_manager, mock_tmux):
        engineer_manager.send_message_between_engineers("frontend", "backend", "API is ready")
        target, message = mock_tmux.send_message.call_args[0]
        assert target == "backend:0"
        assert message.startswith("MESSAGE FROM FRONTEND:\n\nAPI is ready")

    def test_broadcast_skips_excluded(self, engineer_manager, mock_tmux):
        mock_tmux.send_message.side_effect = [True, False]
        results = engineer_manager.broadcast_message(["a", "b", "c"], "freeze", exclude_session="b")

        assert results == [True, False]
        assert [c.args[0] for c in mock_tmux.send_message.call_args_list] == ["a:0", "c:0"]

    def test_terminate_with_reason_warns_first(self, engineer_manager, mock_tmux):
        with patch("src.engineer_manager.time.sleep") as sleep:
            assert engineer_manager.terminate_engineer_session("eng", "project done") is True

        assert "SESSION TERMINATION NOTICE: project done" in mock_tmux.send_message.call_args[0][1]
        sleep.assert_called_once_with(0)
        mock_tmux.kill_session.assert_called_once_with("eng")

    def test_terminate_without_reason(self, engineer_manager, mock_tmux):
        with patch("src.engineer_manager.time.sleep") as sleep:
            engineer_manager.terminate_engineer_session("eng")
        mock_tmux.send_message.assert_not_called()
        sleep.assert_not_called()
        mock_tmux.kill_session.assert_called_once_with("eng")

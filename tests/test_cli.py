"""Tests for the command-line interface."""
import pytest
from typer.testing import CliRunner

from blompie.cli.app import _resolve_action, app
from blompie.game import GameSession

runner = CliRunner()


@pytest.fixture
def unconfigured(monkeypatch, tmp_path):
    """Run with no server host and no .env file in reach."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BLOMPIE_SERVER_HOST", raising=False)
    monkeypatch.delenv("BLOMPIE_BACKEND", raising=False)


class TestCommands:
    """Tests for CLI commands without a reachable server."""

    def test_status_without_server(self, unconfigured):
        """Test that status reports every backend down and exits non-zero."""
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "BLOMPIE_SERVER_HOST is not set" in result.output
        assert "No backend available" in result.output

    def test_models_without_server(self, unconfigured):
        """Test that models fails cleanly when nothing answers."""
        result = runner.invoke(app, ["models"])

        assert result.exit_code == 1
        assert "No AI backend available" in result.output

    def test_invalid_configuration(self, unconfigured, monkeypatch):
        """Test that a bad variable is reported instead of a traceback."""
        monkeypatch.setenv("BLOMPIE_TEMPERATURE", "hot")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "invalid configuration" in result.output


class TestResolveAction:
    """Tests for mapping menu input to actions."""

    def test_number_and_free_text(self, fake_backend_cls, settings):
        """Test that numbers pick menu entries and other input passes through."""
        session = GameSession(fake_backend_cls(), settings)
        session.current_actions = ["Open door", "Leave"]

        assert _resolve_action(session, "2") == "Leave"
        assert _resolve_action(session, "7") == "7"
        assert _resolve_action(session, "dance") == "dance"

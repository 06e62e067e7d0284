"""Integration tests for the `voter-reconciler db` CLI commands."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from voter_reconciler.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class TestDbCommands:
    """Tests for alembic-backed migration commands."""

    def test_upgrade_defaults_to_head(self) -> None:
        with patch("alembic.command.upgrade") as mock_upgrade:
            result = runner.invoke(app, ["db", "upgrade"])

        assert result.exit_code == 0, result.output
        config, revision = mock_upgrade.call_args.args
        assert revision == "head"
        assert mock_upgrade.call_args.kwargs == {"sql": False}
        assert "configure_logger" not in config.attributes

    def test_upgrade_sql_mode_keeps_logging_off_stdout(self) -> None:
        with patch("alembic.command.upgrade") as mock_upgrade:
            result = runner.invoke(app, ["db", "upgrade", "--sql"])

        assert result.exit_code == 0, result.output
        config, revision = mock_upgrade.call_args.args
        assert revision == "head"
        assert mock_upgrade.call_args.kwargs == {"sql": True}
        assert config.attributes["configure_logger"] is False

    def test_downgrade(self) -> None:
        with patch("alembic.command.downgrade") as mock_downgrade:
            result = runner.invoke(app, ["db", "downgrade", "base"])

        assert result.exit_code == 0, result.output
        assert mock_downgrade.call_args.args[1] == "base"

    def test_current(self) -> None:
        with patch("alembic.command.current") as mock_current:
            result = runner.invoke(app, ["db", "current"])

        assert result.exit_code == 0, result.output
        assert mock_current.call_args.kwargs == {"verbose": True}

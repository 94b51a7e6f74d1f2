"""
Integration tests for the command line tool.

Tests cover:
- bootstrap and status commands
- Non-zero exit on conflicts and pending steps
- Logging setup
"""

import json
import logging
import sqlite3

import json_log_formatter
import pytest

from gloworld_server import main as cli
from gloworld_server.config import Settings

setup_logging = cli.setup_logging


@pytest.fixture
def db_path(data_dir):
    return f"{data_dir}/cli.db"


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep the test runner's log handlers in place."""
    monkeypatch.setattr(cli, "setup_logging", lambda settings: None)


def _run(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


class TestCli:
    """Tests for gloworld bootstrap/status."""

    def test_bootstrap_then_status(self, db_path, capsys):
        assert _run(["--database", db_path, "bootstrap"]) == 0
        out = capsys.readouterr().out
        assert "Bootstrap complete" in out
        assert "[APPLIED] table:principals" in out

        assert _run(["--database", db_path, "status"]) == 0
        assert "Bootstrap is up to date" in capsys.readouterr().out

    def test_second_bootstrap_applies_nothing(self, db_path, capsys):
        _run(["--database", db_path, "bootstrap"])
        capsys.readouterr()

        assert _run(["--database", db_path, "bootstrap"]) == 0
        out = capsys.readouterr().out
        assert "0 applied" in out
        assert "[APPLIED]" not in out

    def test_status_before_bootstrap(self, db_path, capsys):
        assert _run(["--database", db_path, "status", "--format", "json"]) == 1
        status = json.loads(capsys.readouterr().out)
        assert "table:principals" in status["pending"]
        assert status["rows"] == {}

    def test_conflict_exits_non_zero(self, db_path, capsys):
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE principals (id INTEGER PRIMARY KEY)")
        conn.commit()
        conn.close()

        assert _run(["--database", db_path, "bootstrap"]) == 1
        err = capsys.readouterr().err
        assert "Bootstrap FAILED" in err
        assert "principals" in err

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.main([])


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture
    def root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self, root_logger):
        setup_logging(Settings(log_level="DEBUG", log_format="json"))

        assert root_logger.level == logging.DEBUG
        assert isinstance(root_logger.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self, root_logger):
        setup_logging(Settings(log_format="text"))

        formatter = root_logger.handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)

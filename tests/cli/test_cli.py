"""
Tests for the shiftdb CLI.
"""

from __future__ import annotations

import sqlite3
import textwrap

import pytest
import structlog
from typer.testing import CliRunner

from shiftdb.cli.app import app
from shiftdb.core.logging import bind_context

runner = CliRunner()


@pytest.fixture()
def project(tmp_path):
    """A project directory with a config file and two committed migrations."""
    committed = tmp_path / "migrations" / "committed"
    committed.mkdir(parents=True)
    (committed / "000001.sql").write_text("CREATE TABLE a (id INTEGER);")
    (committed / "000002.sql").write_text("CREATE TABLE b (id INTEGER);")
    hook_log = tmp_path / "hooks.log"
    config = tmp_path / "shiftdb.toml"
    config.write_text(
        textwrap.dedent(
            f"""\
            [shiftdb]
            connection_string = "sqlite:///{tmp_path / 'app.db'}"
            shadow_connection_string = "sqlite:///{tmp_path / 'shadow.db'}"
            migrations_folder = "migrations"
            log_format = "json"
            before_all_migrations = [{{ kind = "command", command = "echo before >> '{hook_log}'" }}]
            after_all_migrations = [{{ kind = "command", command = "echo after-$SHIFTDB_SHADOW >> '{hook_log}'" }}]
            """
        )
    )
    return tmp_path


def _ledger(path):
    conn = sqlite3.connect(path)
    try:
        return [name for (name,) in conn.execute("SELECT filename FROM shiftdb_migrations ORDER BY sequence")]
    finally:
        conn.close()


class TestRootApp:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "migrate" in result.output
        assert "status" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "shiftdb 0.1.0" in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer returns exit code 0 or 2 for no_args_is_help
        assert result.exit_code in (0, 2)

    def test_migrate_help_lists_flags(self):
        result = runner.invoke(app, ["migrate", "--help"])
        assert result.exit_code == 0
        assert "--shadow" in result.output


class TestMigrateCommand:
    def test_applies_migrations_and_hooks(self, project):
        result = runner.invoke(app, ["migrate", "--config", str(project / "shiftdb.toml")])
        assert result.exit_code == 0, result.output
        assert "2 committed migrations executed" in result.output
        assert _ledger(project / "app.db") == ["000001.sql", "000002.sql"]
        assert (project / "hooks.log").read_text().split() == ["before", "after-0"]

    def test_second_run_is_up_to_date(self, project):
        config = str(project / "shiftdb.toml")
        runner.invoke(app, ["migrate", "--config", config])
        result = runner.invoke(app, ["migrate", "--config", config])
        assert result.exit_code == 0, result.output
        assert "Already up to date" in result.output
        assert (project / "hooks.log").read_text().split() == ["before", "after-0"]

    def test_force_actions_camel_case_alias(self, project):
        config = str(project / "shiftdb.toml")
        runner.invoke(app, ["migrate", "--config", config])
        result = runner.invoke(app, ["migrate", "--forceActions", "--config", config])
        assert result.exit_code == 0, result.output
        assert (project / "hooks.log").read_text().split() == ["before", "after-0", "before", "after-0"]

    def test_shadow(self, project):
        result = runner.invoke(app, ["migrate", "--shadow", "--config", str(project / "shiftdb.toml")])
        assert result.exit_code == 0, result.output
        assert "shiftdb[shadow]" in result.output
        assert _ledger(project / "shadow.db") == ["000001.sql", "000002.sql"]
        assert not (project / "app.db").exists()
        assert (project / "hooks.log").read_text().split() == ["before", "after-1"]

    def test_failure_exits_nonzero(self, project):
        (project / "migrations" / "committed" / "000003.sql").write_text("INSERT INTO nowhere VALUES (1);")
        result = runner.invoke(app, ["migrate", "--config", str(project / "shiftdb.toml")])
        assert result.exit_code == 1
        assert "MIGRATION" in result.output
        assert _ledger(project / "app.db") == ["000001.sql", "000002.sql"]

    def test_missing_connection_string(self, tmp_path):
        config = tmp_path / "shiftdb.toml"
        config.write_text('log_format = "json"\n')
        result = runner.invoke(app, ["migrate", "--config", str(config)])
        assert result.exit_code == 1
        assert "CONFIG" in result.output
        assert "Could not determine connection string" in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["migrate", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1
        assert "CONFIG" in result.output

    def test_failure_is_logged_with_error_details(self, tmp_path):
        config = tmp_path / "shiftdb.toml"
        config.write_text('log_format = "json"\n')
        result = runner.invoke(app, ["migrate", "--config", str(config)])
        assert result.exit_code == 1
        assert '"event": "command.failed"' in result.output
        assert '"error_type": "ConfigurationError"' in result.output
        assert '"retryable": false' in result.output

    def test_no_context_leaks_between_invocations(self, project):
        bind_context(run_id="stale")
        result = runner.invoke(app, ["status", "--config", str(project / "shiftdb.toml")])
        assert result.exit_code == 0, result.output
        assert structlog.contextvars.get_contextvars() == {}


class TestStatusCommand:
    def test_pending(self, project):
        result = runner.invoke(app, ["status", "--config", str(project / "shiftdb.toml")])
        assert result.exit_code == 0, result.output
        assert "000001.sql" in result.output
        assert "000002.sql" in result.output

    def test_json(self, project):
        config = str(project / "shiftdb.toml")
        runner.invoke(app, ["migrate", "--config", config])
        result = runner.invoke(app, ["status", "--json", "--config", config])
        assert result.exit_code == 0, result.output
        assert '"last_migration": "000002.sql"' in result.output
        assert '"pending": []' in result.output

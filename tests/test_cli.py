"""
CLI tests: commands, output and exit codes.
"""

import json
import logging

import pytest
from typer.testing import CliRunner

from erpsync.interface.cli import EXIT_CONFIG, EXIT_FAILURE, app

from conftest import invoice_row, item_row

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run from an empty directory and reset logging handlers afterwards."""
    monkeypatch.chdir(tmp_path)
    for var in ("SYNC_ONLY", "SYNC_BATCH_SIZE", "SOURCE_URL", "REPLICA_URL"):
        monkeypatch.delenv(var, raising=False)
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def env(source_path, replica_path):
    return {
        "SOURCE_URL": f"sqlite:///{source_path}",
        "REPLICA_URL": f"sqlite:///{replica_path}",
    }


class TestRunCommand:
    """erpsync run"""

    def test_success(self, source, env):
        source.insert("tabItem", [item_row("ITEM-1")])
        source.insert("tabSales Invoice", [invoice_row("INV-1"), invoice_row("INV-2")])

        result = runner.invoke(app, ["run", "--batch-size", "1"], env=env)

        assert result.exit_code == 0, result.output
        assert "Sync complete" in result.output
        assert "3 rows replicated" in result.output

    def test_only_option(self, source, env):
        source.insert("tabSales Invoice", [invoice_row("INV-1")])
        result = runner.invoke(app, ["run", "--only", "invoice"], env=env)
        assert result.exit_code == 0, result.output
        assert "1 rows replicated" in result.output

    def test_unknown_entity_is_config_error(self, source, env):
        result = runner.invoke(app, ["run", "--only", "customer"], env=env)
        assert result.exit_code == EXIT_CONFIG
        assert "customer" in result.output

    def test_invalid_batch_size(self, env):
        result = runner.invoke(app, ["run", "--batch-size", "0"], env=env)
        assert result.exit_code == EXIT_CONFIG

    def test_missing_config_file(self, env, tmp_path):
        result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.json")], env=env)
        assert result.exit_code == EXIT_CONFIG

    def test_config_file(self, source, env, tmp_path):
        source.insert("tabItem", [item_row("ITEM-1")])
        path = tmp_path / "erpsync.json"
        path.write_text(json.dumps({"sync": {"only": ["item"]}}))

        result = runner.invoke(app, ["run", "-c", str(path)], env=env)

        assert result.exit_code == 0, result.output
        assert "1 rows replicated" in result.output

    def test_entity_failure(self, source, env):
        source.insert("tabItem", [item_row("ITEM-1")])
        source.drop("tabSales Invoice")

        result = runner.invoke(app, ["run"], env=env)

        assert result.exit_code == EXIT_FAILURE
        assert "Error" in result.output
        assert "invoice" in result.output
        assert "Sync complete" not in result.output

    def test_unreachable_source(self, env, tmp_path):
        env["SOURCE_URL"] = f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}"
        result = runner.invoke(app, ["run"], env=env)
        assert result.exit_code == EXIT_FAILURE


class TestOtherCommands:
    """erpsync provision / status"""

    def test_provision(self, env):
        result = runner.invoke(app, ["provision"], env=env)
        assert result.exit_code == 0, result.output
        assert "Replica schema ready" in result.output

    def test_status_before_any_run(self, env):
        result = runner.invoke(app, ["status"], env=env)
        assert result.exit_code == 0, result.output
        assert "never" in result.output

    def test_status_after_run(self, source, env):
        source.insert("tabSales Invoice", [invoice_row("INV-1")])
        runner.invoke(app, ["run"], env=env)

        result = runner.invoke(app, ["status"], env=env)

        assert result.exit_code == 0, result.output
        assert "INV-1" in result.output

"""Tests for the courier CLI."""

import json
from unittest.mock import patch

from click.testing import CliRunner

from courier_api.cleanup.sweeper import SweepResult
from courier_api.cli import cli


def test_init_db_then_stats():
    runner = CliRunner()

    result = runner.invoke(cli, ["init-db"])
    assert result.exit_code == 0

    result = runner.invoke(cli, ["stats"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"pending": 0, "confirmed": 0, "orphaned": 0, "unpinned": 0}


def test_sweep_passes_options():
    with patch("courier_api.cli.run_cleanup", return_value=SweepResult(checked=1, dry_run=True)) as run_cleanup:
        result = CliRunner().invoke(cli, ["sweep", "--dry-run", "--grace-minutes", "30"])

    assert result.exit_code == 0
    assert json.loads(result.output)["dry_run"] is True
    assert run_cleanup.call_args.kwargs == {"dry_run": True, "grace_window_minutes": 30}


def test_sweep_rejects_non_positive_grace():
    result = CliRunner().invoke(cli, ["sweep", "--grace-minutes", "0"])

    assert result.exit_code != 0


def test_sweep_failure_exits_non_zero():
    with patch("courier_api.cli.run_cleanup", side_effect=RuntimeError("rpc down")):
        result = CliRunner().invoke(cli, ["sweep"])

    assert result.exit_code == 1

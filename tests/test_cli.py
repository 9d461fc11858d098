"""Tests for the operational CLI."""

import json

import pytest

from payroll_cycle.cli import PayrollCycleCli
from payroll_cycle.config import Settings


@pytest.fixture
def cli(monkeypatch) -> PayrollCycleCli:
    for name in ("APPROVAL_THRESHOLD", "AUTO_RETRY", "LOG_LEVEL", "FX_LOCK_MINUTES"):
        monkeypatch.delenv(name, raising=False)
    return PayrollCycleCli(Settings.from_env())


class TestCli:
    """Test command dispatch and output."""

    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "simulate" in capsys.readouterr().out

    def test_config_prints_json(self, cli, capsys):
        assert cli.run(["config"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["settings"]["approval_threshold"] == "50000"
        assert payload["policy"]["approval"]["approver_role"] == "CFO"
        assert payload["policy"]["fx"]["lock_minutes"] == 15

    def test_simulate_runs_to_completion(self, cli, capsys):
        assert cli.run(["simulate", "--seed", "7", "--fast"]) == 0

        out = capsys.readouterr().out
        assert "requesting approval" in out
        assert "Executed: 5 paid, 0 failed" in out
        assert "payee,amount,currency,status,rail,reference" in out
        assert "Batch nov-2025: completed (forced=False)" in out

    def test_simulate_rejects_bad_failure_rate(self, cli, capsys):
        assert cli.run(["simulate", "--failure-rate", "1.5"]) == 1
        assert "--failure-rate" in capsys.readouterr().err

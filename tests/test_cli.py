"""Tests for the operator CLI."""

import json
from uuid import uuid4

import pytest

from hr_payroll.cli import PayrollCli


@pytest.fixture
def cli(settings) -> PayrollCli:
    return PayrollCli(settings)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}"


def _run(cli, capsys, db_url, *args) -> tuple[int, dict, str]:
    code = cli.run(["--database-url", db_url, *args])
    captured = capsys.readouterr()
    payload = json.loads(captured.out) if captured.out.strip() else {}
    return code, payload, captured.err


class TestParser:
    def test_repeatable_employee_ids(self, cli):
        period_id, first, second = uuid4(), uuid4(), uuid4()
        args = cli.parser.parse_args(
            [
                "approve",
                "--period-id",
                str(period_id),
                "--employee-id",
                str(first),
                "--employee-id",
                str(second),
            ]
        )
        assert args.period_id == period_id
        assert args.employee_ids == [first, second]

    def test_period_number_choices(self, cli):
        with pytest.raises(SystemExit):
            cli.parser.parse_args(["create-period", "--year", "2024", "--month", "1", "--period", "3"])

    def test_no_command_prints_help(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage" in capsys.readouterr().out


class TestCommands:
    def test_create_and_summarize_period(self, cli, capsys, db_url):
        code, _, _ = _run(cli, capsys, db_url, "init-db")
        assert code == 0

        code, created, _ = _run(
            cli, capsys, db_url, "create-period", "--year", "2024", "--month", "2", "--period", "2"
        )
        assert code == 0
        assert created["status"] == "Draft"
        assert created["end_date"] == "2024-02-29"

        code, summary, _ = _run(cli, capsys, db_url, "summary", "--period-id", created["period_id"])
        assert code == 0
        assert summary["items_by_status"] == {}

    def test_domain_error_exit_code(self, cli, capsys, db_url):
        _run(cli, capsys, db_url, "init-db")
        code, _, err = _run(cli, capsys, db_url, "summary", "--period-id", str(uuid4()))

        assert code == 2
        assert '"error": "not_found"' in err

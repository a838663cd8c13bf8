"""Tests for the command line entry point."""

import argparse
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from rebooker.main import build_parser, main, parse_booked_date

ENV = {
    "EMAIL": "user@example.com",
    "PASSWORD": "hunter2",
    "SCHEDULE_ID": "42",
    "FACILITY_ID": "89,94",
    "LOCALE": "pt-br",
}


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Run without a stray .env file or inherited settings."""
    monkeypatch.chdir(tmp_path)
    for name in ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestParseBookedDate:
    def test_valid_date(self):
        assert parse_booked_date("2025-06-01") == date(2025, 6, 1)

    @pytest.mark.parametrize("value", ["2025-6-1", "06/01/2025", "2025-06-01T00:00", ""])
    def test_malformed_format(self, value):
        with pytest.raises(argparse.ArgumentTypeError, match="YYYY-MM-DD"):
            parse_booked_date(value)

    def test_impossible_date(self):
        with pytest.raises(argparse.ArgumentTypeError, match="Invalid date"):
            parse_booked_date("2025-02-30")


class TestMain:
    def test_missing_date_exits_non_zero(self, isolated_env):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code != 0

    def test_malformed_date_exits_non_zero(self, isolated_env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["01-06-2025"])
        assert exc_info.value.code != 0
        assert "YYYY-MM-DD" in capsys.readouterr().err

    def test_missing_configuration(self, isolated_env, capsys):
        assert main(["2025-06-01"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_runs_rebooker(self, isolated_env):
        for name, value in ENV.items():
            isolated_env.setenv(name, value)

        with patch("rebooker.main.main_async", AsyncMock()) as main_async:
            assert main(["--debug", "2025-06-01"]) == 0

        current_booked_date, login_details, portal = main_async.await_args.args
        assert current_booked_date == date(2025, 6, 1)
        assert login_details.email == "user@example.com"
        assert portal.facility_ids == ["89", "94"]

    def test_keyboard_interrupt(self, isolated_env):
        for name, value in ENV.items():
            isolated_env.setenv(name, value)

        with patch("rebooker.main.main_async"), patch(
            "rebooker.main.asyncio.run", side_effect=KeyboardInterrupt
        ):
            assert main(["2025-06-01"]) == 130


def test_parser_help_mentions_environment():
    assert "FACILITY_ID" in build_parser().format_help()

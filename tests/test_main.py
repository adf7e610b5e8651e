"""Tests for the command line entry point."""

import pytest

from conftest import make_condition, make_market
from reconbot import main as cli
from reconbot.scanner import FetchResult


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)
    monkeypatch.setenv("DB_PATH", str(tmp_path / "data" / "bot.db"))
    monkeypatch.setenv("REPORT_OUTPUT_DIR", str(tmp_path / "reports"))
    return tmp_path


def test_invalid_number_is_config_error(env, monkeypatch):
    monkeypatch.setenv("MAX_TRADES", "lots")
    assert cli.main(["--dry-run"]) == cli.EXIT_CONFIG


def test_invalid_hours_override(env):
    assert cli.main(["--session", "--hours", "0"]) == cli.EXIT_CONFIG


def test_dry_run_requires_oracle_key(env):
    assert cli.main(["--dry-run"]) == cli.EXIT_CONFIG


def test_modes_are_exclusive(env):
    with pytest.raises(SystemExit):
        cli.main(["--compare", "--session"])


def test_compare_writes_report(env, monkeypatch, capsys):
    monkeypatch.setattr(
        cli, "fetch_conditions",
        lambda config=None: FetchResult(items=[make_condition(question="Ethereum reach 5000 dollars this year")]),
    )
    monkeypatch.setattr(
        cli, "fetch_markets",
        lambda platform, limit, config: FetchResult(items=[make_market(title="Ethereum reach 5000 dollars this year")]),
    )

    assert cli.main(["--compare"]) == cli.EXIT_OK

    assert "Strong Opportunity" in capsys.readouterr().out
    assert list((env / "reports").glob("comparison_*.txt"))


def test_compare_without_conditions_fails(env, monkeypatch):
    monkeypatch.setattr(cli, "fetch_conditions", lambda config=None: FetchResult())
    monkeypatch.setattr(cli, "fetch_markets", lambda platform, limit, config: FetchResult())

    assert cli.main(["--compare"]) == cli.EXIT_FAILURE

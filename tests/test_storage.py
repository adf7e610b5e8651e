"""Tests for the SQLite repository and simulated trade ledger."""

import sqlite3
from datetime import datetime, timezone

import pytest

from conftest import make_market
from reconbot.aggregator import aggregate
from reconbot.models import Decision, Forecast, Platform, Recommendation
from reconbot.storage import Storage, trade_pnl


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "nested" / "test.db")


def _decision(subject_id="m1", side="YES", price=0.4, stake_fair=0.55, action="buy"):
    return Decision(
        subject_id=subject_id,
        action=action,
        side=side if action == "buy" else None,
        current_price=price,
        fair_value=stake_fair,
        edge=stake_fair - price,
        confidence=0.8,
        question="Will it happen?",
    )


class TestTradePnl:
    def test_yes_win_and_loss(self):
        assert trade_pnl("YES", 0.4, 2.0, resolved_yes=True) == pytest.approx(0.6 * 5)
        assert trade_pnl("YES", 0.4, 2.0, resolved_yes=False) == pytest.approx(-2.0)

    def test_no_side(self):
        assert trade_pnl("NO", 0.25, 1.0, resolved_yes=False) == pytest.approx(3.0)
        assert trade_pnl("NO", 0.25, 1.0, resolved_yes=True) == pytest.approx(-1.0)

    def test_zero_entry(self):
        assert trade_pnl("YES", 0.0, 1.0, True) == 0.0


class TestMarkets:
    def test_round_trip(self, storage):
        market = make_market(
            id="KXBTC", platform=Platform.KALSHI, liquidity=500.0, slug="kxbtc",
            close_date=datetime(2025, 12, 31, tzinfo=timezone.utc),
        )

        assert storage.save_market(market)
        loaded = storage.get_market("KXBTC", Platform.KALSHI)

        assert loaded == market

    def test_upsert_keeps_one_row(self, storage):
        storage.save_market(make_market(yes_price=0.4))
        storage.save_market(make_market(yes_price=0.45))

        assert storage.get_market("m1").yes_price == 0.45

    def test_missing(self, storage):
        assert storage.get_market("nope") is None


class TestForecasts:
    def test_history_newest_first(self, storage):
        for fair in (0.5, 0.6, 0.7):
            storage.save_forecast(Forecast(
                subject_id="m1",
                probability=fair,
                confidence=0.8,
                reasoning="r",
                fair_value=fair,
                edge=fair - 0.42,
                recommendation=Recommendation.BUY_YES,
                current_yes_price=0.42,
                platform=Platform.POLYMARKET,
            ))

        history = storage.get_forecasts("m1")
        assert [f.fair_value for f in history] == [0.7, 0.6, 0.5]
        assert history[0].platform == Platform.POLYMARKET
        assert len(storage.get_forecasts("m1", limit=2)) == 2
        assert storage.get_forecasts("other") == []


class TestLedger:
    def test_skip_not_recorded(self, storage):
        assert storage.record_trade(_decision(action="skip"), 1.0) is None
        assert storage.get_trade_stats()["total_trades"] == 0

    def test_resolve_and_stats(self, storage):
        win = storage.record_trade(_decision("a", price=0.4), 1.0)
        loss = storage.record_trade(_decision("b", side="NO", price=0.5), 1.0)
        storage.record_trade(_decision("c", price=0.5), 2.0)

        assert storage.resolve_trade(win, resolved_yes=True) == pytest.approx(1.5)
        assert storage.resolve_trade(loss, resolved_yes=True) == pytest.approx(-1.0)

        stats = storage.get_trade_stats()
        assert stats["total_trades"] == 3
        assert stats["resolved_trades"] == 2
        assert stats["open_trades"] == 1
        assert stats["wins"] == 1
        assert stats["win_rate"] == 0.5
        assert stats["total_pnl"] == pytest.approx(0.5)
        assert stats["avg_pnl"] == pytest.approx(0.25)
        assert stats["capital_at_risk"] == pytest.approx(2.0)

    def test_resolve_twice_or_unknown(self, storage):
        trade_id = storage.record_trade(_decision(), 1.0)
        storage.resolve_trade(trade_id, True)

        assert storage.resolve_trade(trade_id, False) is None
        assert storage.resolve_trade(9999, True) is None

    def test_empty_stats(self, storage):
        stats = storage.get_trade_stats()
        assert stats["total_trades"] == 0
        assert stats["win_rate"] == 0.0
        assert stats["total_pnl"] == 0.0

    def test_session_status_from_realized_pnl(self, storage):
        trade_id = storage.record_trade(_decision(price=0.25), 100.0)
        storage.resolve_trade(trade_id, True)

        status = storage.session_status(initial_capital=1000.0)

        assert status.current_capital == pytest.approx(1300.0)
        assert status.total_roi_pct == pytest.approx(30.0)
        assert status.trades_executed == 1
        assert status.win_rate == 1.0
        assert status.open_positions == 0

    def test_open_trades_keep_venue(self, storage):
        first = storage.record_trade(_decision("KX-1"), 1.0, Platform.KALSHI)
        storage.record_trade(_decision("0xabc"), 1.0)
        storage.resolve_trade(first, True)
        storage.record_trade(_decision("c1:0xdef"), 2.0, Platform.POLYMARKET)

        trades = storage.get_open_trades()

        assert [(t["subject_id"], t["platform"]) for t in trades] == [("0xabc", None), ("c1:0xdef", "polymarket")]
        assert trades[0]["mark_price"] is None

    def test_marked_trades_move_session_capital(self, storage):
        yes = storage.record_trade(_decision("a", price=0.4), 100.0)
        no = storage.record_trade(_decision("b", side="NO", price=0.5), 50.0)

        assert storage.mark_trade(yes, 0.6)
        assert storage.mark_trade(no, 0.25)

        stats = storage.get_trade_stats()
        # 250 YES shares up 0.2, 100 NO shares down 0.25
        assert stats["unrealized_pnl"] == pytest.approx(50.0 - 25.0)
        assert stats["total_pnl"] == 0.0
        assert storage.session_status(1000.0).current_capital == pytest.approx(1025.0)

    def test_resolution_replaces_mark(self, storage):
        trade_id = storage.record_trade(_decision(price=0.4), 100.0)
        storage.mark_trade(trade_id, 0.9)
        storage.resolve_trade(trade_id, resolved_yes=False)

        stats = storage.get_trade_stats()
        assert stats["unrealized_pnl"] == 0.0
        assert stats["total_pnl"] == pytest.approx(-100.0)
        assert not storage.mark_trade(trade_id, 0.5)

    def test_older_database_gains_ledger_columns(self, tmp_path):
        path = tmp_path / "old.db"
        with sqlite3.connect(path) as conn:
            conn.execute("""
                CREATE TABLE trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT, subject_id TEXT NOT NULL, question TEXT,
                    side TEXT NOT NULL, entry_price REAL NOT NULL, stake REAL NOT NULL,
                    fair_value REAL NOT NULL, edge REAL NOT NULL, confidence REAL NOT NULL,
                    resolved INTEGER NOT NULL DEFAULT 0, resolved_yes INTEGER, pnl REAL,
                    created_at TEXT NOT NULL, resolved_at TEXT
                )
            """)

        storage = Storage(path)
        trade_id = storage.record_trade(_decision(), 1.0, Platform.KALSHI)

        assert storage.mark_trade(trade_id, 0.5)
        assert storage.get_open_trades()[0]["platform"] == "kalshi"


class TestDryRuns:
    def test_save_and_list(self, storage):
        summary = aggregate([_decision("a"), _decision("b", action="skip")], max_trades=5)

        run_id = storage.save_dry_run(summary)
        runs = storage.get_dry_runs()

        assert runs[0]["id"] == run_id
        assert runs[0]["total_analyzed"] == 2
        assert runs[0]["recommended_count"] == 1
        assert len(runs[0]["funded_trades"]) == 1

"""Tests for settling the simulated ledger against refetched venue markets."""

import pytest

from conftest import make_market
from reconbot.config import SessionConfig
from reconbot.errors import UpstreamFetchError
from reconbot.ledger import LedgerSettler, market_id_for
from reconbot.models import Decision, Platform
from reconbot.scanner import FetchResult
from reconbot.session import SessionMonitor, SessionState, TerminationCause
from reconbot.storage import Storage


# ── Helpers ──────────────────────────────────────────────────────────────────

class VenueFeed:
    """Serves queued market snapshots per (platform, id); the last one repeats."""

    def __init__(self, snapshots=None, errors=None):
        self.snapshots = {key: list(values) for key, values in (snapshots or {}).items()}
        self.errors = errors or {}
        self.calls = []

    def __call__(self, platform, market_id, catalog):
        self.calls.append((platform, market_id))
        key = (platform, market_id)
        if key in self.errors:
            return FetchResult(errors=[self.errors[key]])
        queue = self.snapshots.get(key)
        if not queue:
            return FetchResult()
        market = queue.pop(0) if len(queue) > 1 else queue[0]
        return FetchResult(items=[market])


def _buy(subject_id, price=0.25, side="YES", fair=0.6):
    return Decision(
        subject_id=subject_id,
        action="buy",
        side=side,
        current_price=price,
        fair_value=fair,
        edge=fair - price,
        confidence=0.8,
    )


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "ledger.db")


# ── Tests ────────────────────────────────────────────────────────────────────

def test_market_id_for_pairs_and_plain_ids():
    assert market_id_for("KX-1") == "KX-1"
    assert market_id_for("cond-7:0xabc") == "0xabc"


class TestSettle:
    def test_settled_market_resolves_trade(self, storage):
        trade_id = storage.record_trade(_buy("KX-1"), 100.0, Platform.KALSHI)
        feed = VenueFeed({(Platform.KALSHI, "KX-1"): [make_market(id="KX-1", platform=Platform.KALSHI, resolved_yes=True)]})

        result = LedgerSettler(storage, lookup=feed).settle()

        assert result.resolved == [trade_id]
        stats = storage.get_trade_stats()
        assert stats["open_trades"] == 0
        assert stats["total_pnl"] == pytest.approx(300.0)

    def test_open_market_marks_side_price(self, storage):
        yes = storage.record_trade(_buy("0xabc", price=0.4), 100.0, Platform.POLYMARKET)
        no = storage.record_trade(_buy("c1:0xabc", price=0.5, side="NO", fair=0.3), 50.0, Platform.POLYMARKET)
        feed = VenueFeed({(Platform.POLYMARKET, "0xabc"): [make_market(id="0xabc", yes_price=0.6, no_price=0.4)]})

        result = LedgerSettler(storage, lookup=feed).settle()

        assert result.marked == [yes, no]
        assert feed.calls == [(Platform.POLYMARKET, "0xabc")]
        # YES +0.2 on 250 shares, NO -0.1 on 100 shares
        assert storage.get_trade_stats()["unrealized_pnl"] == pytest.approx(50.0 - 10.0)

    def test_trade_without_venue_searches_every_venue(self, storage):
        storage.record_trade(_buy("KX-2"), 10.0)
        feed = VenueFeed({(Platform.POLYMARKET, "KX-2"): [make_market(id="KX-2", resolved_yes=False)]})

        result = LedgerSettler(storage, lookup=feed).settle()

        assert [platform for platform, _ in feed.calls] == [Platform.KALSHI, Platform.POLYMARKET]
        assert len(result.resolved) == 1
        assert storage.get_trade_stats()["total_pnl"] == pytest.approx(-10.0)

    def test_fetch_errors_leave_trade_open(self, storage):
        trade_id = storage.record_trade(_buy("KX-3"), 10.0, Platform.KALSHI)
        error = UpstreamFetchError("kalshi", "HTTP 503")
        feed = VenueFeed(errors={(Platform.KALSHI, "KX-3"): error})

        result = LedgerSettler(storage, lookup=feed).settle()

        assert result.missing == [trade_id]
        assert result.errors == [error]
        assert storage.get_trade_stats()["open_trades"] == 1

    def test_no_open_trades_makes_no_requests(self, storage):
        feed = VenueFeed()
        LedgerSettler(storage, lookup=feed).settle()
        assert feed.calls == []


class TestSessionThroughLedger:
    def test_session_reaches_success_when_trade_settles(self, storage, fake_ticker, fake_clock):
        config = SessionConfig(
            target_return_multiple=2.0,
            duration_seconds=3600.0,
            sample_interval_seconds=60.0,
            initial_capital=1000.0,
        )
        # 400 staked at 0.25 buys 1600 shares
        storage.record_trade(_buy("KX-BTC"), 400.0, Platform.KALSHI)
        feed = VenueFeed({(Platform.KALSHI, "KX-BTC"): [
            make_market(id="KX-BTC", platform=Platform.KALSHI, yes_price=0.3, no_price=0.7),
            make_market(id="KX-BTC", platform=Platform.KALSHI, yes_price=1.0, no_price=0.0, resolved_yes=True),
        ]})
        settler = LedgerSettler(storage, lookup=feed)
        reports = []
        monitor = SessionMonitor(
            config,
            status_provider=lambda: settler.session_status(config.initial_capital),
            ticker=fake_ticker,
            clock=fake_clock,
            on_terminate=reports.append,
        )
        monitor.start()

        assert monitor.tick() is None
        assert monitor.last_status.total_roi_pct == pytest.approx(8.0)

        fake_clock.advance(60)
        assert monitor.tick() == TerminationCause.SUCCESS

        assert monitor.state == SessionState.TERMINATED
        [report] = reports
        assert report.final_status.current_capital == pytest.approx(2200.0)
        assert report.final_status.total_roi_pct == pytest.approx(120.0)
        assert report.final_status.win_rate == 1.0
        assert report.final_status.open_positions == 0

    def test_marked_losses_reach_loss_floor(self, storage, fake_ticker, fake_clock):
        config = SessionConfig(initial_capital=1000.0, loss_floor_pct=-80.0)
        storage.record_trade(_buy("0xdead", price=0.5), 900.0, Platform.POLYMARKET)
        feed = VenueFeed({(Platform.POLYMARKET, "0xdead"): [make_market(id="0xdead", yes_price=0.05, no_price=0.95)]})
        settler = LedgerSettler(storage, lookup=feed)
        monitor = SessionMonitor(
            config,
            status_provider=lambda: settler.session_status(config.initial_capital),
            ticker=fake_ticker,
            clock=fake_clock,
        )
        monitor.start()

        # 1800 shares down 0.45 each
        assert monitor.tick() == TerminationCause.CATASTROPHIC_LOSS
        assert monitor.last_status.current_capital == pytest.approx(190.0)

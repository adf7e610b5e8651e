"""
Dry run: score markets with the forecast agent and aggregate simulated trades.

No order is ever placed. Each market gets one oracle call (spaced by the
rate limiter), the forecast becomes a decision, and the aggregator funds the
first max_trades buy decisions with a fixed wager or a capped Kelly stake.
Oracle failures are collected per market and never abort the run.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

from reconbot.aggregator import SizingPolicy, Summary, fixed_stake, kelly_stake
from reconbot.config import AppConfig, DryRunConfig
from reconbot.errors import OracleParseError, UpstreamFetchError
from reconbot.forecast_agent import ForecastAgent, RateLimiter
from reconbot.models import Forecast, Market
from reconbot.recommender import to_decision
from reconbot.scanner import FetchResult, fetch_markets
from reconbot.storage import Storage
from reconbot.telegram_notifier import send_dry_run_summary

# Configure module logger
logger = logging.getLogger(__name__)

MarketFetcher = Callable[..., FetchResult]


@dataclass
class DryRunResult:
    """
    Outcome of one dry run.

    Attributes:
        summary: Aggregated statistics and funded trades
        errors: Per-market oracle failures
        forecasts: Successful forecasts in processing order
        fetch_errors: Venue fetch failures, when the run fetched its own markets
        run_id: Storage id of the saved summary, if persisted
    """
    summary: Summary
    errors: list[OracleParseError] = field(default_factory=list)
    forecasts: list[Forecast] = field(default_factory=list)
    fetch_errors: list[UpstreamFetchError] = field(default_factory=list)
    run_id: Optional[int] = None

    @property
    def error_messages(self) -> list[str]:
        return [str(e) for e in self.fetch_errors] + [str(e) for e in self.errors]


def sizing_policy(config: DryRunConfig) -> SizingPolicy:
    """Stake policy named by config.sizing."""
    if config.sizing == "kelly":
        return kelly_stake(config.bankroll, config.kelly_cap)
    if config.sizing == "fixed":
        return fixed_stake(config.wager_amount)
    raise ValueError(f"unknown sizing policy: {config.sizing}")


def run_dry_run(
    markets: Sequence[Market],
    agent: ForecastAgent,
    config: DryRunConfig,
    rate_limiter: Optional[RateLimiter] = None,
) -> DryRunResult:
    """
    Forecast markets and reduce the decisions into a Summary.

    Args:
        markets: Canonical markets to score, in priority order
        agent: Forecast agent
        config: Dry run bounds
        rate_limiter: Spacing between oracle calls

    Returns:
        DryRunResult
    """
    sizing = sizing_policy(config)
    summary = Summary(max_trades=config.max_trades)
    result = DryRunResult(summary=summary)

    candidates = list(markets)[:config.max_markets]
    logger.info(
        f"Starting dry run over {len(candidates)} markets "
        f"(max {config.max_trades} trades, {config.sizing} sizing)"
    )

    for market, forecast in agent.iter_forecasts(candidates, rate_limiter, result.errors):
        result.forecasts.append(forecast)

        decision = to_decision(forecast, no_price=market.no_price, question=market.title)
        summary = summary.add(decision, sizing)

        if decision.is_buy:
            logger.info(
                f"✓ BUY {decision.side} @ {decision.current_price:.3f} "
                f"(edge {decision.edge:+.1%}, confidence {decision.confidence:.0%})"
            )

        if config.stop_at_max_trades and len(summary.funded) >= config.max_trades:
            logger.info(f"Reached max trades ({config.max_trades}), stopping")
            break

    result.summary = summary

    logger.info(
        f"Dry run complete: {summary.total_analyzed} analyzed, "
        f"{summary.recommended_count} buy, {summary.skipped_count} skip, "
        f"{len(result.errors)} errors"
    )
    return result


class DryRunner:
    """
    Wires market fetch, dry run, persistence and notification together.

    Args:
        config: Application configuration
        agent: Forecast agent
        storage: Repository for markets, forecasts, trades and summaries
        fetcher: Venue catalog fetch function
        rate_limiter: Spacing between oracle calls
    """

    def __init__(
        self,
        config: AppConfig,
        agent: ForecastAgent,
        storage: Optional[Storage] = None,
        fetcher: MarketFetcher = fetch_markets,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.config = config
        self.agent = agent
        self.storage = storage
        self.fetcher = fetcher
        self.rate_limiter = rate_limiter

    def run(
        self,
        max_trades: Optional[int] = None,
        platform: str = "both",
        notify: bool = False,
    ) -> DryRunResult:
        """
        Fetch markets and run one dry run.

        Args:
            max_trades: Override for the configured trade cap
            platform: "kalshi", "polymarket" or "both"
            notify: Send the summary to Telegram when configured

        Returns:
            DryRunResult
        """
        dry_config = self.config.dry_run
        if max_trades is not None:
            dry_config = replace(dry_config, max_trades=max_trades)

        fetched = self.fetcher(platform, dry_config.max_markets, self.config.catalog)
        for error in fetched.errors:
            logger.warning(f"Fetch error: {error}")

        result = run_dry_run(fetched.items, self.agent, dry_config, self.rate_limiter)
        result.fetch_errors = list(fetched.errors)

        if self.storage:
            self._persist(fetched.items, result)

        if notify and self.config.telegram.enabled:
            send_dry_run_summary(result.summary, self.config.telegram)

        return result

    def _persist(self, markets: Sequence[Market], result: DryRunResult) -> None:
        for market in markets:
            self.storage.save_market(market)

        for forecast in result.forecasts:
            self.storage.save_forecast(forecast)

        venues = {market.id: market.platform for market in markets}
        for trade in result.summary.funded:
            self.storage.record_trade(trade.decision, trade.stake, venues.get(trade.decision.subject_id))

        result.run_id = self.storage.save_dry_run(result.summary)

"""
Aggregator reducing many decisions into dry-run summary statistics.

Counts and sums in a Summary are associative and commutative, so partial
summaries computed by independent workers can be merged in any order and
yield the same counts and means. Capital deployment is the exception: only
the first max_trades buy decisions are funded, in the order they reach the
reduction (and, for merges, left operand before right). Merging partials in
a different order can therefore fund a different set of trades.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional

from reconbot.models import Decision

# Configure module logger
logger = logging.getLogger(__name__)

SizingPolicy = Callable[[Decision], float]


def fixed_stake(amount: float) -> SizingPolicy:
    """Sizing policy that stakes the same amount on every trade."""
    if amount <= 0:
        raise ValueError(f"stake must be positive, got {amount}")

    def policy(decision: Decision) -> float:
        return amount

    return policy


def kelly_fraction(win_probability: float, price: float) -> float:
    """
    Kelly-optimal bankroll fraction for a binary contract bought at price.

    A share costs price and pays 1 on a win, so the net odds are
    (1 - price) / price and the Kelly fraction reduces to
    (p - price) / (1 - price). Negative values mean no bet.
    """
    if price <= 0 or price >= 1:
        return 0.0
    return (win_probability - price) / (1.0 - price)


def kelly_stake(bankroll: float, cap: float = 0.1) -> SizingPolicy:
    """
    Sizing policy staking the Kelly fraction of bankroll, capped.

    Args:
        bankroll: Capital the fractions are taken from
        cap: Largest fraction of bankroll staked on one trade

    Returns:
        Policy returning 0 when the Kelly fraction is not positive
    """
    if bankroll <= 0:
        raise ValueError(f"bankroll must be positive, got {bankroll}")
    if not 0 < cap <= 1:
        raise ValueError(f"kelly cap must be in (0, 1], got {cap}")

    def policy(decision: Decision) -> float:
        fraction = kelly_fraction(decision.win_probability, decision.current_price)
        return bankroll * min(max(fraction, 0.0), cap)

    return policy


def is_fundable(decision: Decision, stake: float) -> bool:
    """A buy can take capital only at a tradable entry price with a positive stake."""
    return decision.is_buy and 0 < decision.current_price < 1 and stake > 0


@dataclass(frozen=True)
class FundedTrade:
    """
    A buy decision that received capital.

    Attributes:
        decision: The funded decision
        stake: Capital allocated to it
    """
    decision: Decision
    stake: float

    @property
    def win_profit(self) -> float:
        return self.decision.projected_win_profit(self.stake)

    @property
    def loss_amount(self) -> float:
        return -self.stake

    @property
    def expected_profit(self) -> float:
        """Probability-weighted profit using the forecast fair value."""
        p = self.decision.win_probability
        return p * self.win_profit + (1.0 - p) * self.loss_amount

    @property
    def break_even_probability(self) -> float:
        """Win probability at which expected profit is zero; equals the entry price."""
        return self.decision.current_price

    def to_dict(self) -> dict:
        return {
            **self.decision.to_dict(),
            "stake": self.stake,
            "projected_win_profit": self.win_profit,
            "projected_loss_amount": self.loss_amount,
            "expected_profit": self.expected_profit,
            "break_even_probability": self.break_even_probability,
        }


@dataclass(frozen=True)
class Summary:
    """
    Running dry-run statistics.

    Attributes:
        max_trades: Trade-count cap for capital deployment
        total_analyzed: Decisions reduced so far
        recommended_count: Buy decisions
        skipped_count: Skip decisions
        confidence_sum: Sum of decision confidences (0-1 scale)
        edge_sum: Sum of decision edges (0-1 scale)
        funded: Funded trades, at most max_trades, in funding order. Buys
            at an untradable price (<= 0 or >= 1) or sized to a zero stake
            are counted as recommended but never funded.
        decisions: Every reduced decision
    """
    max_trades: int
    total_analyzed: int = 0
    recommended_count: int = 0
    skipped_count: int = 0
    confidence_sum: float = 0.0
    edge_sum: float = 0.0
    funded: tuple[FundedTrade, ...] = ()
    decisions: tuple[Decision, ...] = field(default=(), compare=False)

    @property
    def avg_confidence(self) -> float:
        if self.total_analyzed == 0:
            return 0.0
        return self.confidence_sum / self.total_analyzed

    @property
    def avg_edge(self) -> float:
        if self.total_analyzed == 0:
            return 0.0
        return self.edge_sum / self.total_analyzed

    @property
    def capital_deployed(self) -> float:
        return sum(trade.stake for trade in self.funded)

    @property
    def projected_best_case(self) -> float:
        return sum(trade.win_profit for trade in self.funded)

    @property
    def projected_worst_case(self) -> float:
        return sum(trade.loss_amount for trade in self.funded)

    @property
    def projected_expected_case(self) -> float:
        return sum(trade.expected_profit for trade in self.funded)

    @property
    def expected_roi(self) -> float:
        """Expected profit as a percentage of deployed capital."""
        capital = self.capital_deployed
        if capital <= 0:
            return 0.0
        return self.projected_expected_case / capital * 100.0

    @property
    def recommended_trades(self) -> list[Decision]:
        return [d for d in self.decisions if d.is_buy]

    def add(self, decision: Decision, sizing: SizingPolicy) -> "Summary":
        """
        Reduce one decision into a new summary.

        Args:
            decision: Decision to add
            sizing: Stake policy for funded trades

        Returns:
            Updated Summary (self is unchanged)
        """
        funded = self.funded
        if decision.is_buy and len(funded) < self.max_trades:
            stake = sizing(decision)
            if is_fundable(decision, stake):
                funded = funded + (FundedTrade(decision, stake),)
            else:
                logger.info(
                    f"Not funding {decision.subject_id}: entry price "
                    f"{decision.current_price:.4f}, stake {stake:.4f}"
                )

        return replace(
            self,
            total_analyzed=self.total_analyzed + 1,
            recommended_count=self.recommended_count + (1 if decision.is_buy else 0),
            skipped_count=self.skipped_count + (0 if decision.is_buy else 1),
            confidence_sum=self.confidence_sum + decision.confidence,
            edge_sum=self.edge_sum + decision.edge,
            funded=funded,
            decisions=self.decisions + (decision,),
        )

    def merge(self, other: "Summary") -> "Summary":
        """
        Merge two partial summaries.

        Statistical fields combine commutatively. Funded trades are taken
        from self first, then other, up to max_trades.

        Raises:
            ValueError: If the partials were built with different trade caps
        """
        if self.max_trades != other.max_trades:
            raise ValueError(
                f"cannot merge summaries with different max_trades "
                f"({self.max_trades} != {other.max_trades})"
            )

        return Summary(
            max_trades=self.max_trades,
            total_analyzed=self.total_analyzed + other.total_analyzed,
            recommended_count=self.recommended_count + other.recommended_count,
            skipped_count=self.skipped_count + other.skipped_count,
            confidence_sum=self.confidence_sum + other.confidence_sum,
            edge_sum=self.edge_sum + other.edge_sum,
            funded=(self.funded + other.funded)[:self.max_trades],
            decisions=self.decisions + other.decisions,
        )

    def to_dict(self) -> dict:
        return {
            "total_analyzed": self.total_analyzed,
            "recommended_count": self.recommended_count,
            "skipped_count": self.skipped_count,
            "avg_confidence": self.avg_confidence,
            "avg_edge": self.avg_edge,
            "capital_deployed": self.capital_deployed,
            "max_trades": self.max_trades,
            "projected_profit": {
                "best_case": self.projected_best_case,
                "worst_case": self.projected_worst_case,
                "expected_case": self.projected_expected_case,
                "roi": self.expected_roi,
            },
            "funded_trades": [trade.to_dict() for trade in self.funded],
            "decisions": [d.to_dict() for d in self.decisions],
        }


def aggregate(
    decisions: Iterable[Decision],
    max_trades: int,
    sizing: Optional[SizingPolicy] = None,
) -> Summary:
    """
    Reduce decisions into a Summary.

    Args:
        decisions: Decisions in arrival order
        max_trades: Trade-count cap for capital deployment
        sizing: Stake policy, one unit per trade when None

    Returns:
        Summary
    """
    sizing = sizing or fixed_stake(1.0)
    summary = Summary(max_trades=max_trades)

    for decision in decisions:
        summary = summary.add(decision, sizing)

    logger.debug(
        f"Aggregated {summary.total_analyzed} decisions: "
        f"{summary.recommended_count} buy, {summary.skipped_count} skip, "
        f"{len(summary.funded)} funded"
    )
    return summary

"""
Data models for the reconciliation bot.

This module defines the core dataclasses shared by the normalizer, matcher,
forecast agent, recommender and aggregator. All prices and probabilities are
stored on the 0.0 to 1.0 scale.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Platform(str, Enum):
    """External venue a market was sourced from."""
    KALSHI = "kalshi"
    POLYMARKET = "polymarket"


class Recommendation(str, Enum):
    """Trade recommendation derived from a forecast."""
    BUY_YES = "BUY_YES"
    BUY_NO = "BUY_NO"
    SKIP = "SKIP"


@dataclass
class Market:
    """
    Represents a tradable market from an external venue.

    Attributes:
        id: Venue market identifier (ticker or condition id)
        title: Market question/title
        description: Market description
        platform: Venue the market comes from
        yes_price: Current YES quote (0.0 to 1.0)
        no_price: Current NO quote (0.0 to 1.0), independent of yes_price
        volume: Traded volume, None when the venue does not report it
        close_date: Market close/resolution date
        liquidity: Available liquidity, None when unknown
        slug: URL-friendly identifier
        resolved_yes: Settled outcome, None while the market is open
    """
    id: str
    title: str
    description: str
    platform: Platform
    yes_price: float = 0.5
    no_price: float = 0.5
    volume: Optional[float] = None
    close_date: Optional[datetime] = None
    liquidity: Optional[float] = None
    slug: str = ""
    resolved_yes: Optional[bool] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "platform": self.platform.value,
            "yes_price": self.yes_price,
            "no_price": self.no_price,
            "volume": self.volume,
            "close_date": self.close_date.isoformat() if self.close_date else None,
            "liquidity": self.liquidity,
            "slug": self.slug,
            "resolved_yes": self.resolved_yes,
        }


@dataclass(frozen=True)
class Condition:
    """
    An internally tracked forecastable proposition.

    Attributes:
        id: Condition identifier
        question: Full question text
        end_time: When the condition stops accepting forecasts
        short_name: Optional short label
    """
    id: str
    question: str
    end_time: datetime
    short_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "short_name": self.short_name,
            "end_time": self.end_time.isoformat(),
        }


@dataclass
class MatchResult:
    """
    Outcome of matching one condition against the external catalog.

    Attributes:
        condition: The condition that was matched
        market: Best matching market, or None when nothing reached the threshold
        similarity: Jaccard similarity of the match (0.0 when unmatched)
        analysis: Human-readable analysis of the match quality
        recommendation_tag: Similarity band label
    """
    condition: Condition
    market: Optional[Market]
    similarity: float
    analysis: str
    recommendation_tag: str

    @property
    def is_matched(self) -> bool:
        return self.market is not None

    def to_dict(self) -> dict:
        return {
            "condition": self.condition.to_dict(),
            "market": self.market.to_dict() if self.market else None,
            "similarity": self.similarity,
            "analysis": self.analysis,
            "recommendation": self.recommendation_tag,
        }


@dataclass
class Forecast:
    """
    Oracle estimate for a single subject, normalized to the 0-1 scale.

    Attributes:
        subject_id: Market (or market/condition pair) identifier
        probability: Estimated probability of YES
        confidence: Oracle confidence in the estimate
        reasoning: Oracle reasoning text
        fair_value: Estimated fair YES price
        edge: fair_value - current_yes_price
        recommendation: Derived trade recommendation
        current_yes_price: YES price the estimate was made against
        expected_value: fair_value / current_yes_price, None when the price is 0
        platform: Venue of the subject market
        created_at: When the forecast was produced
    """
    subject_id: str
    probability: float
    confidence: float
    reasoning: str
    fair_value: float
    edge: float
    recommendation: Recommendation
    current_yes_price: float
    expected_value: Optional[float] = None
    platform: Optional[Platform] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "platform": self.platform.value if self.platform else None,
            "probability": self.probability,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "fair_value": self.fair_value,
            "edge": self.edge,
            "recommendation": self.recommendation.value,
            "current_yes_price": self.current_yes_price,
            "expected_value": self.expected_value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Decision:
    """
    A buy/skip decision for one subject.

    Attributes:
        subject_id: Subject identifier
        action: "buy" or "skip"
        side: "YES" or "NO" for buys, None for skips
        current_price: Entry price of the chosen side (YES price for skips)
        fair_value: Estimated fair YES price
        edge: fair_value - YES price
        confidence: Oracle confidence (0.0 to 1.0)
        question: Market question, for reports
    """
    subject_id: str
    action: str
    side: Optional[str]
    current_price: float
    fair_value: float
    edge: float
    confidence: float
    question: str = ""

    @property
    def is_buy(self) -> bool:
        return self.action == "buy"

    @property
    def win_probability(self) -> float:
        """Probability that the chosen side resolves in our favour."""
        if self.side == "NO":
            return 1.0 - self.fair_value
        return self.fair_value

    def projected_win_profit(self, stake: float) -> float:
        """Profit if the chosen side wins: payout stake/price minus the stake."""
        if self.current_price <= 0:
            return 0.0
        return stake / self.current_price - stake

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "question": self.question,
            "action": self.action,
            "side": self.side,
            "current_price": self.current_price,
            "fair_value": self.fair_value,
            "edge": self.edge,
            "confidence": self.confidence,
        }

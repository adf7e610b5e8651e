"""
Recommendation engine turning forecasts into trade decisions.

recommend() is a pure function over percentage points; thresholds come from
configuration and are never baked into call sites.
"""

import logging
from typing import Optional

from reconbot.config import RecommendationConfig
from reconbot.models import Decision, Forecast, Recommendation

# Configure module logger
logger = logging.getLogger(__name__)


def recommend(
    edge: float,
    confidence: float,
    edge_threshold: float = 5.0,
    confidence_threshold: float = 65.0,
) -> Recommendation:
    """
    Decide BUY_YES / BUY_NO / SKIP from an edge and a confidence.

    Args:
        edge: Fair value minus current YES price, in percentage points
        confidence: Confidence in percentage points (0-100)
        edge_threshold: Minimum absolute edge required to trade
        confidence_threshold: Minimum confidence required to trade

    Returns:
        Recommendation
    """
    if confidence > confidence_threshold:
        if edge > edge_threshold:
            return Recommendation.BUY_YES
        if edge < -edge_threshold:
            return Recommendation.BUY_NO
    return Recommendation.SKIP


def recommend_with(config: RecommendationConfig, edge: float, confidence: float) -> Recommendation:
    return recommend(
        edge,
        confidence,
        edge_threshold=config.edge_threshold,
        confidence_threshold=config.confidence_threshold,
    )


def to_decision(
    forecast: Forecast,
    no_price: Optional[float] = None,
    question: str = "",
) -> Decision:
    """
    Convert a forecast into a buy/skip decision.

    BUY_YES buys YES at the current YES price, BUY_NO buys NO at the NO
    quote (1 - YES when the NO quote is unknown). SKIP records the YES price.

    Args:
        forecast: Normalized forecast
        no_price: Current NO quote of the market
        question: Market question for reporting

    Returns:
        Decision object
    """
    if forecast.recommendation == Recommendation.BUY_YES:
        action, side, price = "buy", "YES", forecast.current_yes_price
    elif forecast.recommendation == Recommendation.BUY_NO:
        price = no_price if no_price is not None else 1.0 - forecast.current_yes_price
        action, side = "buy", "NO"
    else:
        action, side, price = "skip", None, forecast.current_yes_price

    logger.debug(f"Decision for {forecast.subject_id}: {action} {side or ''} @ {price:.3f}")

    return Decision(
        subject_id=forecast.subject_id,
        action=action,
        side=side,
        current_price=price,
        fair_value=forecast.fair_value,
        edge=forecast.edge,
        confidence=forecast.confidence,
        question=question,
    )

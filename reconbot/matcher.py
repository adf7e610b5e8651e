"""
Lexical matcher pairing internal conditions with external markets.

Similarity is the Jaccard index of whitespace token sets after lower-casing
and dropping short tokens. Matching is deterministic and pure: every
condition scan only reads the shared immutable inputs, so scans can be fanned
out across worker threads.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from reconbot.config import MatcherConfig
from reconbot.models import Condition, Market, MatchResult

# Configure module logger
logger = logging.getLogger(__name__)

STRONG_OPPORTUNITY = "Strong Opportunity"
INVESTIGATE_FURTHER = "Investigate Further"
RELATED_MARKET = "Related Market"
UNIQUE_MARKET = "Unique Market"

STRONG_BAND = 0.7
INVESTIGATE_BAND = 0.5


@dataclass(frozen=True)
class MatchStats:
    """
    Headline numbers for a comparison pass.

    Attributes:
        total_conditions: Conditions compared
        total_markets: Candidate markets available
        potential_matches: Conditions with a market at or above the threshold
        high_value_opportunities: Matches above the investigate band
    """
    total_conditions: int
    total_markets: int
    potential_matches: int
    high_value_opportunities: int

    def to_dict(self) -> dict:
        return {
            "total_conditions": self.total_conditions,
            "total_markets": self.total_markets,
            "potential_matches": self.potential_matches,
            "high_value_opportunities": self.high_value_opportunities,
        }


def tokenize(text: str, min_token_length: int = 3) -> frozenset[str]:
    """
    Lower-case and split on whitespace, keeping tokens longer than min_token_length.
    """
    return frozenset(
        token for token in text.lower().split() if len(token) > min_token_length
    )


def jaccard_similarity(a: frozenset[str], b: frozenset[str]) -> float:
    """|A ∩ B| / |A ∪ B|, defined as 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def text_similarity(text_a: str, text_b: str, min_token_length: int = 3) -> float:
    return jaccard_similarity(
        tokenize(text_a, min_token_length),
        tokenize(text_b, min_token_length),
    )


def find_best_match(
    condition: Condition,
    markets: Sequence[Market],
    config: MatcherConfig,
    market_tokens: Optional[Sequence[frozenset[str]]] = None,
) -> tuple[Optional[Market], float]:
    """
    Find the market most similar to a condition.

    Ties keep the first candidate encountered in input order. A best
    similarity below the configured threshold is discarded.

    Args:
        condition: Condition to match
        markets: Candidate markets
        config: Matcher configuration
        market_tokens: Pre-tokenized market titles, aligned with markets

    Returns:
        (market, similarity), or (None, 0.0) when nothing reaches the threshold
    """
    if market_tokens is None:
        market_tokens = [tokenize(m.title, config.min_token_length) for m in markets]

    condition_tokens = tokenize(condition.question, config.min_token_length)

    best_market: Optional[Market] = None
    best_similarity = 0.0

    for market, tokens in zip(markets, market_tokens):
        similarity = jaccard_similarity(condition_tokens, tokens)
        if similarity > best_similarity:
            best_similarity = similarity
            best_market = market

    if best_market is None or best_similarity < config.similarity_threshold:
        return None, 0.0

    return best_market, best_similarity


def classify_match(market: Optional[Market], similarity: float) -> tuple[str, str]:
    """
    Derive (analysis, recommendation_tag) from the similarity band.
    """
    if market is None:
        return (
            "No matching market found on external venues. "
            "This is a unique condition for early positioning.",
            UNIQUE_MARKET,
        )

    platform = market.platform.value

    if similarity > STRONG_BAND:
        return (
            f"Strong match found! This market is also listed on {platform}. "
            "Compare pricing and liquidity.",
            STRONG_OPPORTUNITY,
        )

    if similarity > INVESTIGATE_BAND:
        return (
            f"Potential match on {platform}. "
            "Review market details to confirm they describe the same event.",
            INVESTIGATE_FURTHER,
        )

    return (
        f"Weak match on {platform}. Markets may be related but not identical.",
        RELATED_MARKET,
    )


def match_condition(
    condition: Condition,
    markets: Sequence[Market],
    config: MatcherConfig,
    market_tokens: Optional[Sequence[frozenset[str]]] = None,
) -> MatchResult:
    market, similarity = find_best_match(condition, markets, config, market_tokens)
    analysis, tag = classify_match(market, similarity)

    return MatchResult(
        condition=condition,
        market=market,
        similarity=similarity,
        analysis=analysis,
        recommendation_tag=tag,
    )


def match_conditions(
    conditions: Sequence[Condition],
    markets: Sequence[Market],
    config: Optional[MatcherConfig] = None,
    max_workers: Optional[int] = None,
) -> list[MatchResult]:
    """
    Match every condition against the full market catalog.

    Produces exactly one result per condition, ordered matched-first and then
    by descending similarity. The sort is stable, so equal similarities keep
    input order.

    Args:
        conditions: Internal conditions
        markets: Canonical external markets
        config: Matcher configuration (defaults when None)
        max_workers: Thread count for the per-condition scans; sequential when None or 1

    Returns:
        List of MatchResult objects
    """
    config = config or MatcherConfig()
    market_tokens = [tokenize(m.title, config.min_token_length) for m in markets]

    logger.info(
        f"Matching {len(conditions)} conditions against {len(markets)} markets "
        f"(threshold {config.similarity_threshold}, min token length {config.min_token_length})"
    )

    def scan(condition: Condition) -> MatchResult:
        return match_condition(condition, markets, config, market_tokens)

    if max_workers and max_workers > 1 and len(conditions) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(scan, conditions))
    else:
        results = [scan(condition) for condition in conditions]

    results.sort(key=lambda r: (not r.is_matched, -r.similarity))

    matched = sum(1 for r in results if r.is_matched)
    logger.info(f"Matched {matched}/{len(results)} conditions")

    return results


def summarize_matches(results: Sequence[MatchResult], total_markets: int) -> MatchStats:
    matched = [r for r in results if r.is_matched]
    high_value = [
        r for r in matched
        if r.similarity > INVESTIGATE_BAND or r.recommendation_tag == STRONG_OPPORTUNITY
    ]

    return MatchStats(
        total_conditions=len(results),
        total_markets=total_markets,
        potential_matches=len(matched),
        high_value_opportunities=len(high_value),
    )

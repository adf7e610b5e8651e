"""
Catalog normalizer for venue-specific market records.

Each venue has an adapter: a pure function mapping one raw, loosely-typed
record into the canonical Market shape. Every field is resolved through an
ordered list of (source_key, divisor) aliases followed by a default, so the
venue quirks live in one table instead of being scattered across call sites.
Numeric parsing is lenient and never raises.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from reconbot.models import Condition, Market, Platform

# Configure module logger
logger = logging.getLogger(__name__)

# (source_key, divisor) pairs; divisor 100 converts venue cents to fractions
Alias = tuple[str, float]

# Outcome price at which a closed market counts as settled
SETTLED_PRICE = 0.99

POLYMARKET_FIELDS: dict[str, tuple[Alias, ...]] = {
    "id": (("condition_id", 1), ("conditionId", 1), ("id", 1)),
    "title": (("title", 1), ("question", 1)),
    "description": (("description", 1), ("question", 1)),
    "volume": (("volume_total", 1), ("volumeNum", 1), ("volume", 1)),
    "liquidity": (("liquidityNum", 1), ("liquidity", 1)),
    "close_date": (("end_time", 1), ("end_date", 1), ("endDate", 1)),
    "slug": (("market_slug", 1), ("slug", 1)),
}

KALSHI_FIELDS: dict[str, tuple[Alias, ...]] = {
    "id": (("ticker", 1), ("id", 1)),
    "title": (("title", 1), ("question", 1)),
    "description": (("subtitle", 1), ("description", 1)),
    "yes_price": (
        ("yes_price", 1),
        ("yesPrice", 1),
        ("last_price_dollars", 1),
        ("last_price", 100),
    ),
    "yes_book": (("yes_bid", 100), ("yes_ask", 100)),
    "no_price": (("no_price", 1), ("noPrice", 1)),
    "no_book": (("no_bid", 100), ("no_ask", 100)),
    "volume": (("volume", 1), ("volume_24h", 1)),
    "liquidity": (("liquidity_dollars", 1), ("liquidity", 100)),
    "close_date": (("close_time", 1), ("closeTime", 1), ("expiration_time", 1)),
    "slug": (("ticker", 1),),
}

CONDITION_FIELDS: dict[str, tuple[Alias, ...]] = {
    "id": (("id", 1),),
    "question": (("question", 1), ("title", 1)),
    "short_name": (("shortName", 1), ("short_name", 1)),
    "end_time": (("endTime", 1), ("end_time", 1)),
}

_MISSING = object()


def normalize_market(raw: dict, platform: Platform) -> Market:
    """
    Map one raw venue record into a canonical Market.

    Args:
        raw: Venue record as decoded from JSON
        platform: Venue the record came from

    Returns:
        Market object

    Raises:
        KeyError: If no adapter is registered for the platform
    """
    adapter = ADAPTERS[platform]
    return adapter(raw)


def normalize_markets(records: Any, platform: Platform) -> list[Market]:
    """
    Normalize a list of raw venue records, skipping unusable entries.

    Args:
        records: List of raw venue records
        platform: Venue the records came from

    Returns:
        List of Market objects
    """
    markets: list[Market] = []

    if not isinstance(records, list):
        logger.warning(f"Expected list of {platform.value} markets, got {type(records).__name__}")
        return markets

    for idx, record in enumerate(records):
        if not isinstance(record, dict):
            logger.debug(f"Skipping non-object {platform.value} record at index {idx}")
            continue

        market = normalize_market(record, platform)
        if not market.id:
            logger.debug(f"Skipping {platform.value} record at index {idx}: no id")
            continue

        markets.append(market)

    return markets


def normalize_condition(raw: dict) -> Optional[Condition]:
    """
    Map one raw internal-catalog record into a Condition.

    Returns None when the record has no id, question or end time.
    """
    condition_id = _resolve_text(raw, CONDITION_FIELDS["id"], "")
    question = _resolve_text(raw, CONDITION_FIELDS["question"], "")
    end_time = _resolve_date(raw, CONDITION_FIELDS["end_time"])

    if not condition_id or not question or end_time is None:
        logger.debug(f"Skipping incomplete condition record: {str(raw)[:200]}")
        return None

    short_name = _resolve_text(raw, CONDITION_FIELDS["short_name"], "") or None

    return Condition(
        id=condition_id,
        question=question,
        end_time=end_time,
        short_name=short_name,
    )


def normalize_conditions(records: Any) -> list[Condition]:
    if not isinstance(records, list):
        logger.warning(f"Expected list of conditions, got {type(records).__name__}")
        return []

    conditions = []
    for record in records:
        if isinstance(record, dict):
            condition = normalize_condition(record)
            if condition:
                conditions.append(condition)
    return conditions


def _polymarket_adapter(raw: dict) -> Market:
    """Polymarket (Gamma API or aggregator) record -> Market."""
    fields = POLYMARKET_FIELDS
    yes_price, no_price = _polymarket_prices(raw)

    return Market(
        id=_resolve_text(raw, fields["id"], ""),
        title=_resolve_text(raw, fields["title"], "Unknown Market"),
        description=_resolve_text(raw, fields["description"], ""),
        platform=Platform.POLYMARKET,
        yes_price=yes_price,
        no_price=no_price,
        volume=_resolve_number(raw, fields["volume"]),
        close_date=_resolve_date(raw, fields["close_date"]),
        liquidity=_resolve_number(raw, fields["liquidity"]),
        slug=_resolve_text(raw, fields["slug"], ""),
        resolved_yes=_polymarket_outcome(raw, yes_price),
    )


def _kalshi_adapter(raw: dict) -> Market:
    """Kalshi (trade API or aggregator) record -> Market."""
    fields = KALSHI_FIELDS

    return Market(
        id=_resolve_text(raw, fields["id"], ""),
        title=_resolve_text(raw, fields["title"], "Unknown Market"),
        description=_resolve_text(raw, fields["description"], ""),
        platform=Platform.KALSHI,
        yes_price=_kalshi_quote(raw, fields["yes_price"], fields["yes_book"]),
        no_price=_kalshi_quote(raw, fields["no_price"], fields["no_book"]),
        volume=_resolve_number(raw, fields["volume"]),
        close_date=_resolve_date(raw, fields["close_date"]),
        liquidity=_resolve_number(raw, fields["liquidity"]),
        slug=_resolve_text(raw, fields["slug"], ""),
        resolved_yes=_kalshi_outcome(raw),
    )


def _kalshi_quote(raw: dict, direct: tuple[Alias, ...], book: tuple[Alias, Alias]) -> float:
    """
    Resolve one side of a Kalshi quote.

    Kalshi reports an untraded market as last price 0 with bid 0 and ask
    100, so zero last prices and zero bids count as omitted. Order: first
    positive direct price, then the bid/ask midpoint, then a lone positive
    bid or ask, then 0.5.
    """
    price = _resolve_number(raw, direct, positive=True)
    if price is not None:
        return _price(price)

    bid_alias, ask_alias = book
    bid = _resolve_number(raw, (bid_alias,))
    ask = _resolve_number(raw, (ask_alias,))

    if bid is not None and ask is not None and ask > 0:
        return _price((bid + ask) / 2)
    if bid is not None and bid > 0:
        return _price(bid)
    if ask is not None and ask > 0:
        return _price(ask)
    return 0.5


def _kalshi_outcome(raw: dict) -> Optional[bool]:
    """Settled result from the "result" field; blank while the market trades."""
    result = str(raw.get("result") or "").strip().lower()
    if result == "yes":
        return True
    if result == "no":
        return False
    return None


def _polymarket_outcome(raw: dict, yes_price: float) -> Optional[bool]:
    """
    A closed Polymarket market has its outcome prices pinned to 1 and 0.
    Closed markets with unsettled prices count as unresolved.
    """
    closed = raw.get("closed")
    if isinstance(closed, str):
        closed = closed.strip().lower() == "true"
    if not closed:
        return None
    if yes_price >= SETTLED_PRICE:
        return True
    if yes_price <= 1.0 - SETTLED_PRICE:
        return False
    return None


ADAPTERS: dict[Platform, Callable[[dict], Market]] = {
    Platform.POLYMARKET: _polymarket_adapter,
    Platform.KALSHI: _kalshi_adapter,
}


def _polymarket_prices(raw: dict) -> tuple[float, float]:
    """
    Extract (yes, no) from Polymarket outcome prices.

    outcomePrices is either a list or a JSON-encoded list of strings,
    e.g. '["0.65", "0.35"]'. Missing entries default to 0.5.
    """
    prices: Any = None
    for key in ("outcome_prices", "outcomePrices"):
        if raw.get(key) not in (None, "", []):
            prices = raw[key]
            break

    if isinstance(prices, str):
        try:
            prices = json.loads(prices)
        except ValueError:
            logger.debug(f"Could not decode outcome prices: {prices[:100]}")
            prices = None

    if not isinstance(prices, list):
        return 0.5, 0.5

    yes_price = _price(parse_number(prices[0]) if len(prices) > 0 else None)
    no_price = _price(parse_number(prices[1]) if len(prices) > 1 else None)
    return yes_price, no_price


def _price(value: Optional[float]) -> float:
    if value is None or not (0.0 <= value <= 1.0):
        return 0.5
    return value


def parse_number(value: Any) -> Optional[float]:
    """
    Leniently parse a number. Empty, invalid or boolean input yields None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None

    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse ISO 8601 strings or unix timestamps into aware UTC datetimes.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = float(value)
        # Millisecond timestamps
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        numeric = parse_number(text)
        if numeric is not None:
            return parse_datetime(numeric)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Could not parse date: {text}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def _lookup(raw: dict, aliases: tuple[Alias, ...]) -> tuple[Any, float]:
    for key, divisor in aliases:
        value = raw.get(key)
        if value is not None and value != "":
            return value, divisor
    return _MISSING, 1


def _resolve_text(raw: dict, aliases: tuple[Alias, ...], default: str) -> str:
    value, _ = _lookup(raw, aliases)
    if value is _MISSING:
        return default
    return str(value)


def _resolve_number(raw: dict, aliases: tuple[Alias, ...], positive: bool = False) -> Optional[float]:
    """First alias that parses as a number (a positive one if asked), scaled by its divisor."""
    for key, divisor in aliases:
        number = parse_number(raw.get(key))
        if number is not None and (number > 0 or not positive):
            return number / divisor
    return None


def _resolve_date(raw: dict, aliases: tuple[Alias, ...]) -> Optional[datetime]:
    for key, _ in aliases:
        parsed = parse_datetime(raw.get(key))
        if parsed is not None:
            return parsed
    return None

"""
Venue catalog scanner for Polymarket, Kalshi and the internal conditions catalog.

This module only fetches raw catalogs and hands them to the normalizer. A
failed fetch never raises: the source contributes an empty list and an
UpstreamFetchError is recorded on the result so callers can continue with
partial data.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from reconbot.config import CatalogConfig
from reconbot.errors import UpstreamFetchError
from reconbot.models import Condition, Market, Platform
from reconbot.normalizer import normalize_conditions, normalize_markets

# Configure module logger
logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/json",
    "User-Agent": "ReconBot/1.0",
}

CONDITIONS_QUERY = """
query Conditions($nowSec: Int, $limit: Int) {
  conditions(
    where: { public: { equals: true }, endTime: { gt: $nowSec } }
    take: $limit
  ) {
    id
    question
    shortName
    endTime
  }
}
"""


@dataclass
class FetchResult:
    """
    Items fetched from one or more sources plus the per-source errors.

    Attributes:
        items: Normalized markets or conditions
        errors: One UpstreamFetchError per failed source
    """
    items: list = field(default_factory=list)
    errors: list[UpstreamFetchError] = field(default_factory=list)

    def extend(self, other: "FetchResult") -> None:
        self.items.extend(other.items)
        self.errors.extend(other.errors)


def fetch_markets(
    platform: str = "both",
    limit: int = 10,
    config: Optional[CatalogConfig] = None,
) -> FetchResult:
    """
    Fetch markets from one or both venues.

    When platform is "both" the limit is split between venues, Polymarket
    taking the odd remainder, and a venue whose share is zero is not queried.
    The combined result never holds more than limit markets.

    Args:
        platform: "kalshi", "polymarket" or "both"
        limit: Maximum number of markets to return
        config: Catalog endpoints

    Returns:
        FetchResult with Market items
    """
    config = config or CatalogConfig()
    if platform == "both":
        kalshi_limit = limit // 2
        polymarket_limit = limit - kalshi_limit
    else:
        polymarket_limit = kalshi_limit = limit

    result = FetchResult()

    if platform in ("polymarket", "both") and polymarket_limit > 0:
        result.extend(fetch_polymarket_markets(polymarket_limit, config))

    if platform in ("kalshi", "both") and kalshi_limit > 0:
        result.extend(fetch_kalshi_markets(kalshi_limit, config))

    result.items = result.items[:max(limit, 0)]

    logger.info(f"Fetched {len(result.items)} markets ({platform}), {len(result.errors)} source errors")
    return result


def fetch_polymarket_markets(limit: int, config: CatalogConfig) -> FetchResult:
    """Fetch active markets from the Polymarket Gamma API."""
    params = {"closed": "false", "active": "true", "limit": limit, "offset": 0}

    try:
        data = _get_json("polymarket", config.polymarket_url, params, config.timeout)
    except UpstreamFetchError as e:
        return FetchResult(errors=[e])

    records = data.get("markets", data) if isinstance(data, dict) else data
    markets: list[Market] = normalize_markets(records, Platform.POLYMARKET)[:limit]

    logger.info(f"Normalized {len(markets)} Polymarket markets")
    return FetchResult(items=markets)


def fetch_kalshi_markets(limit: int, config: CatalogConfig) -> FetchResult:
    """Fetch open markets from the Kalshi trade API."""
    params = {"status": "open", "limit": limit}

    try:
        data = _get_json("kalshi", config.kalshi_url, params, config.timeout)
    except UpstreamFetchError as e:
        return FetchResult(errors=[e])

    records = data.get("markets", []) if isinstance(data, dict) else data
    markets: list[Market] = normalize_markets(records, Platform.KALSHI)[:limit]

    logger.info(f"Normalized {len(markets)} Kalshi markets")
    return FetchResult(items=markets)


def fetch_market(platform: Platform, market_id: str, config: Optional[CatalogConfig] = None) -> FetchResult:
    """
    Refetch one market, open or settled, by its venue id.

    Args:
        platform: Venue the market lives on
        market_id: Condition id (Polymarket) or ticker (Kalshi)
        config: Catalog endpoints

    Returns:
        FetchResult with zero or one Market
    """
    config = config or CatalogConfig()
    source = platform.value

    try:
        if platform == Platform.KALSHI:
            url = f"{config.kalshi_url.rstrip('/')}/{market_id}"
            data = _get_json(source, url, {}, config.timeout)
            records = [data.get("market")] if isinstance(data, dict) else []
        else:
            data = _get_json(source, config.polymarket_url, {"condition_ids": market_id}, config.timeout)
            records = data.get("markets", data) if isinstance(data, dict) else data
    except UpstreamFetchError as e:
        return FetchResult(errors=[e])

    markets = [m for m in normalize_markets(records, platform) if m.id == market_id]
    if not markets:
        logger.warning(f"{source} market {market_id} not found")
    return FetchResult(items=markets[:1])


def fetch_conditions(limit: int = 30, config: Optional[CatalogConfig] = None) -> FetchResult:
    """
    Fetch public, still-open conditions from the internal GraphQL catalog.

    Args:
        limit: Maximum number of conditions
        config: Catalog endpoints

    Returns:
        FetchResult with Condition items
    """
    config = config or CatalogConfig()
    payload = {
        "query": CONDITIONS_QUERY,
        "variables": {"nowSec": int(time.time()), "limit": limit},
    }

    try:
        response = requests.post(
            config.conditions_url,
            json=payload,
            headers=HEADERS,
            timeout=config.timeout,
        )
        response.raise_for_status()
        data = response.json()
    except (RequestException, ValueError) as e:
        error = _to_fetch_error("conditions", e, config.timeout)
        return FetchResult(errors=[error])

    if not isinstance(data, dict) or data.get("errors"):
        message = str(data.get("errors"))[:300] if isinstance(data, dict) else "unexpected payload"
        logger.error(f"Conditions query failed: {message}")
        return FetchResult(errors=[UpstreamFetchError("conditions", message)])

    records = (data.get("data") or {}).get("conditions", [])
    conditions: list[Condition] = normalize_conditions(records)[:limit]

    logger.info(f"Fetched {len(conditions)} conditions")
    return FetchResult(items=conditions)


def _get_json(source: str, url: str, params: dict, timeout: int) -> Any:
    """
    GET a JSON document.

    Raises:
        UpstreamFetchError: On any transport, HTTP status or decoding failure
    """
    logger.debug(f"Requesting {source} catalog from {url} with params: {params}")

    try:
        response = requests.get(url, params=params, timeout=timeout, headers=HEADERS)
        response.raise_for_status()
        return response.json()
    except (RequestException, ValueError) as e:
        raise _to_fetch_error(source, e, timeout)


def _to_fetch_error(source: str, error: Exception, timeout: int) -> UpstreamFetchError:
    if isinstance(error, Timeout):
        message = f"request timed out after {timeout}s"
    elif isinstance(error, ConnectionError):
        message = f"connection error: {error}"
    elif isinstance(error, ValueError):
        message = f"invalid JSON response: {error}"
    else:
        message = f"request failed: {error}"
        response = getattr(error, "response", None)
        if response is not None:
            logger.error(f"{source} response status: {response.status_code}")
            logger.debug(f"{source} response body: {response.text[:500]}")

    logger.error(f"Failed to fetch {source} catalog: {message}")
    return UpstreamFetchError(source, message)

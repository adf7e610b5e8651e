"""
Utility functions for the reconciliation bot.

This module provides shared helper utilities used across the codebase.
All functions are pure helpers with no domain logic.
"""

import logging
from datetime import datetime, timezone

# Configure module logger
logger = logging.getLogger(__name__)


def current_utc_timestamp() -> str:
    """
    Get current UTC timestamp as ISO 8601 string.

    Returns:
        ISO 8601 formatted timestamp string (e.g., "2024-01-15T10:30:45.123456+00:00")
    """
    return datetime.now(timezone.utc).isoformat()


def calculate_edge(
    fair_value: float,
    market_price: float
) -> float:
    """
    Calculate edge between estimated fair value and market price.

    Edge = fair_value - market_price

    Positive edge means the market is underpricing YES.
    Negative edge means the market is overpricing YES.

    Args:
        fair_value: Estimated fair YES price (0.0 to 1.0)
        market_price: Current YES price (0.0 to 1.0)

    Returns:
        Edge value (can be negative, zero, or positive)

    Raises:
        ValueError: If either value is outside [0.0, 1.0]
    """
    if not (0.0 <= fair_value <= 1.0):
        raise ValueError(
            f"fair_value must be between 0.0 and 1.0, got {fair_value}"
        )

    if not (0.0 <= market_price <= 1.0):
        raise ValueError(
            f"market_price must be between 0.0 and 1.0, got {market_price}"
        )

    return fair_value - market_price


def format_percentage(value: float, decimals: int = 1, signed: bool = False) -> str:
    """
    Format a 0-1 fraction as a percentage string.

    Args:
        value: Fraction to format (0.42 -> "42.0%")
        decimals: Number of decimal places (default: 1)
        signed: Prefix positive values with "+"

    Returns:
        Formatted percentage string
    """
    sign = "+" if signed else ""
    return f"{value * 100.0:{sign}.{decimals}f}%"


def format_currency(value: float, decimals: int = 0) -> str:
    """
    Format a float value as a currency string.

    Args:
        value: Float value to format
        decimals: Number of decimal places (default: 0)

    Returns:
        Formatted currency string (e.g., "$1,234.56")
    """
    if value < 0:
        return f"-${abs(value):,.{decimals}f}"
    return f"${value:,.{decimals}f}"

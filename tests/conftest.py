"""Shared test fixtures."""

import json
from datetime import datetime, timezone
from typing import Callable, Optional

import pytest

from reconbot.models import Condition, Market, Platform


class FakeOracle:
    """Returns canned replies in order and records every prompt."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeTicker:
    """Records start/cancel; ticks are driven by the test."""

    def __init__(self):
        self.callback: Optional[Callable[[], None]] = None
        self.interval: Optional[float] = None
        self.cancel_count = 0

    def start(self, callback, interval_seconds):
        self.callback = callback
        self.interval = interval_seconds

    def cancel(self):
        self.cancel_count += 1


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def oracle_reply(
    fair_value=55,
    confidence=80,
    probability=None,
    edge=13,
    recommendation="BUY_YES",
    reasoning="Polling moved sharply.",
    prefix="Here is my analysis:\n",
) -> str:
    body = {
        "probability": fair_value if probability is None else probability,
        "confidence": confidence,
        "reasoning": reasoning,
        "fair_value": fair_value,
        "edge": edge,
        "recommendation": recommendation,
    }
    return f"{prefix}{json.dumps(body)}\nLet me know if you need more."


def make_market(
    id="m1",
    title="Bitcoin above 100000 by end of 2025",
    platform=Platform.POLYMARKET,
    yes_price=0.42,
    no_price=0.58,
    volume=125000.0,
    **kwargs,
) -> Market:
    return Market(
        id=id,
        title=title,
        description=kwargs.pop("description", ""),
        platform=platform,
        yes_price=yes_price,
        no_price=no_price,
        volume=volume,
        **kwargs,
    )


def make_condition(id="c1", question="Will BTC exceed 100k by end of 2025", **kwargs) -> Condition:
    return Condition(
        id=id,
        question=question,
        end_time=kwargs.pop("end_time", datetime(2025, 12, 31, tzinfo=timezone.utc)),
        **kwargs,
    )


@pytest.fixture
def fake_ticker():
    return FakeTicker()


@pytest.fixture
def fake_clock():
    return FakeClock()

"""Tests for the venue catalog normalizer."""

from datetime import datetime, timezone

import pytest

from reconbot.models import Platform
from reconbot.normalizer import (
    normalize_condition,
    normalize_conditions,
    normalize_market,
    normalize_markets,
    parse_datetime,
    parse_number,
)


class TestParseNumber:
    @pytest.mark.parametrize("value,expected", [
        (3, 3.0),
        (0.25, 0.25),
        ("0.65", 0.65),
        (" 12 ", 12.0),
    ])
    def test_parses_numbers(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "abc", True, [], {}])
    def test_invalid_input_is_none(self, value):
        assert parse_number(value) is None


class TestParseDatetime:
    def test_iso_with_z_suffix(self):
        parsed = parse_datetime("2025-12-31T23:59:00Z")
        assert parsed == datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_datetime("2025-01-01T00:00:00").tzinfo == timezone.utc

    def test_unix_seconds_and_milliseconds_agree(self):
        assert parse_datetime(1735689600) == parse_datetime(1735689600000)
        assert parse_datetime("1735689600") == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_garbage_is_none(self):
        assert parse_datetime("next tuesday") is None
        assert parse_datetime(None) is None


class TestPolymarketAdapter:
    def test_gamma_record(self):
        raw = {
            "conditionId": "0xabc",
            "question": "Will the Fed cut rates in March?",
            "description": "Resolves YES if...",
            "outcomePrices": '["0.65", "0.35"]',
            "volume": "152000.5",
            "liquidity": "8000",
            "endDate": "2025-03-20T00:00:00Z",
            "slug": "fed-cut-march",
        }

        market = normalize_market(raw, Platform.POLYMARKET)

        assert market.id == "0xabc"
        assert market.title == "Will the Fed cut rates in March?"
        assert market.platform == Platform.POLYMARKET
        assert market.yes_price == pytest.approx(0.65)
        assert market.no_price == pytest.approx(0.35)
        assert market.volume == pytest.approx(152000.5)
        assert market.liquidity == pytest.approx(8000.0)
        assert market.close_date == datetime(2025, 3, 20, tzinfo=timezone.utc)
        assert market.slug == "fed-cut-march"

    def test_aggregator_aliases(self):
        raw = {
            "condition_id": "cid-1",
            "title": "Aggregated title",
            "outcome_prices": [0.3, 0.72],
            "volume_total": 900,
            "end_time": 1735689600,
            "market_slug": "agg",
        }

        market = normalize_market(raw, Platform.POLYMARKET)

        assert market.id == "cid-1"
        assert market.yes_price == pytest.approx(0.3)
        assert market.no_price == pytest.approx(0.72)
        assert market.volume == 900.0
        assert market.close_date == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert market.slug == "agg"

    def test_missing_prices_default_to_half(self):
        market = normalize_market({"id": "x", "question": "Q"}, Platform.POLYMARKET)
        assert market.yes_price == 0.5
        assert market.no_price == 0.5

    def test_prices_need_not_sum_to_one(self):
        market = normalize_market({"id": "x", "outcomePrices": ["0.40", "0.55"]}, Platform.POLYMARKET)
        assert market.yes_price + market.no_price == pytest.approx(0.95)

    def test_optional_fields_left_undefined(self):
        market = normalize_market({"id": "x", "question": "Q", "volume": ""}, Platform.POLYMARKET)
        assert market.volume is None
        assert market.liquidity is None
        assert market.close_date is None

    def test_zero_volume_is_kept(self):
        market = normalize_market({"id": "x", "volume": 0}, Platform.POLYMARKET)
        assert market.volume == 0.0


class TestKalshiAdapter:
    def test_cents_converted_to_fraction(self):
        raw = {
            "ticker": "KXBTC-25DEC31",
            "title": "Bitcoin above 100000 by end of 2025",
            "subtitle": "BTC price",
            "last_price": 42,
            "no_bid": 57,
            "volume": 3100,
            "close_time": "2025-12-31T23:59:59Z",
        }

        market = normalize_market(raw, Platform.KALSHI)

        assert market.id == "KXBTC-25DEC31"
        assert market.description == "BTC price"
        assert market.platform == Platform.KALSHI
        assert market.yes_price == pytest.approx(0.42)
        assert market.no_price == pytest.approx(0.57)
        assert market.volume == 3100.0
        assert market.slug == "KXBTC-25DEC31"

    def test_fractional_aliases_take_precedence(self):
        raw = {"ticker": "T", "yes_price": 0.61, "last_price": 10, "noPrice": "0.4"}
        market = normalize_market(raw, Platform.KALSHI)
        assert market.yes_price == pytest.approx(0.61)
        assert market.no_price == pytest.approx(0.4)

    def test_invalid_prices_default(self):
        market = normalize_market({"ticker": "T", "yes_price": "n/a"}, Platform.KALSHI)
        assert market.yes_price == 0.5
        assert market.no_price == 0.5

    def test_untraded_market_is_not_priced_at_zero(self):
        raw = {"ticker": "KX", "last_price": 0, "yes_bid": 0, "yes_ask": 100, "no_bid": 0, "no_ask": 100}

        market = normalize_market(raw, Platform.KALSHI)

        assert market.yes_price == pytest.approx(0.5)
        assert market.no_price == pytest.approx(0.5)

    def test_zero_last_price_falls_back_to_book_midpoint(self):
        raw = {"ticker": "KX", "last_price": 0, "yes_bid": 30, "yes_ask": 36, "no_bid": 0, "no_ask": 70}

        market = normalize_market(raw, Platform.KALSHI)

        assert market.yes_price == pytest.approx(0.33)
        assert market.no_price == pytest.approx(0.35)

    def test_zero_direct_alias_skipped_for_later_one(self):
        market = normalize_market({"ticker": "KX", "yes_price": 0, "last_price": 42}, Platform.KALSHI)
        assert market.yes_price == pytest.approx(0.42)

    def test_lone_ask(self):
        market = normalize_market({"ticker": "KX", "yes_ask": 12}, Platform.KALSHI)
        assert market.yes_price == pytest.approx(0.12)


class TestSettledOutcomes:
    def test_kalshi_result(self):
        assert normalize_market({"ticker": "A", "result": "yes"}, Platform.KALSHI).resolved_yes is True
        assert normalize_market({"ticker": "A", "result": "No"}, Platform.KALSHI).resolved_yes is False
        assert normalize_market({"ticker": "A", "result": ""}, Platform.KALSHI).resolved_yes is None

    def test_closed_polymarket_pinned_prices(self):
        raw = {"conditionId": "0x1", "closed": True, "outcomePrices": '["1", "0"]'}
        assert normalize_market(raw, Platform.POLYMARKET).resolved_yes is True

        raw = {"conditionId": "0x1", "closed": "true", "outcomePrices": ["0.001", "0.999"]}
        assert normalize_market(raw, Platform.POLYMARKET).resolved_yes is False

    def test_open_or_unsettled_polymarket(self):
        open_market = {"conditionId": "0x1", "closed": False, "outcomePrices": ["1", "0"]}
        unsettled = {"conditionId": "0x1", "closed": True, "outcomePrices": ["0.6", "0.4"]}

        assert normalize_market(open_market, Platform.POLYMARKET).resolved_yes is None
        assert normalize_market(unsettled, Platform.POLYMARKET).resolved_yes is None


class TestNormalizeMarkets:
    def test_skips_records_without_id_and_non_objects(self):
        records = [{"ticker": "A", "title": "a"}, {"title": "no id"}, "junk", {"ticker": "B"}]
        markets = normalize_markets(records, Platform.KALSHI)
        assert [m.id for m in markets] == ["A", "B"]

    def test_non_list_payload(self):
        assert normalize_markets({"markets": []}, Platform.KALSHI) == []


class TestConditions:
    def test_condition_from_graphql_record(self):
        condition = normalize_condition({
            "id": "0x1",
            "question": "Will ETH flip BTC?",
            "shortName": "Flippening",
            "endTime": 1767225600,
        })

        assert condition.id == "0x1"
        assert condition.short_name == "Flippening"
        assert condition.end_time == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_incomplete_conditions_dropped(self):
        records = [
            {"id": "1", "question": "Q1", "endTime": 1767225600},
            {"id": "2", "question": "Q2"},
            {"question": "Q3", "endTime": 1767225600},
        ]
        assert [c.id for c in normalize_conditions(records)] == ["1"]

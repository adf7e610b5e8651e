"""Tests for the recommendation engine."""

import pytest

from reconbot.config import RecommendationConfig
from reconbot.models import Forecast, Recommendation
from reconbot.recommender import recommend, recommend_with, to_decision


class TestRecommend:
    def test_positive_edge_buys_yes(self):
        assert recommend(13, 80) == Recommendation.BUY_YES

    def test_negative_edge_buys_no(self):
        assert recommend(-13, 80) == Recommendation.BUY_NO

    def test_small_edge_skips_regardless_of_confidence(self):
        assert recommend(3, 99) == Recommendation.SKIP
        assert recommend(-3, 99) == Recommendation.SKIP

    def test_low_confidence_skips(self):
        assert recommend(30, 60) == Recommendation.SKIP

    def test_thresholds_are_strict(self):
        assert recommend(5, 80) == Recommendation.SKIP
        assert recommend(-5, 80) == Recommendation.SKIP
        assert recommend(10, 65) == Recommendation.SKIP

    @pytest.mark.parametrize("confidence", [66, 80, 100])
    def test_monotonic_in_edge(self, confidence):
        results = [recommend(edge / 2, confidence) for edge in range(0, 60)]
        assert Recommendation.BUY_NO not in results
        first_buy = results.index(Recommendation.BUY_YES)
        assert all(r == Recommendation.SKIP for r in results[:first_buy])
        assert all(r == Recommendation.BUY_YES for r in results[first_buy:])

    def test_custom_thresholds(self):
        config = RecommendationConfig(edge_threshold=10.0, confidence_threshold=50.0)
        assert recommend_with(config, 8, 90) == Recommendation.SKIP
        assert recommend_with(config, 12, 55) == Recommendation.BUY_YES


def _forecast(recommendation, yes_price=0.42, fair_value=0.55):
    return Forecast(
        subject_id="m1",
        probability=fair_value,
        confidence=0.8,
        reasoning="",
        fair_value=fair_value,
        edge=fair_value - yes_price,
        recommendation=recommendation,
        current_yes_price=yes_price,
    )


class TestToDecision:
    def test_buy_yes_enters_at_yes_price(self):
        decision = to_decision(_forecast(Recommendation.BUY_YES), no_price=0.6, question="Q")
        assert decision.action == "buy"
        assert decision.side == "YES"
        assert decision.current_price == 0.42
        assert decision.question == "Q"

    def test_buy_no_enters_at_no_quote(self):
        decision = to_decision(_forecast(Recommendation.BUY_NO, fair_value=0.3), no_price=0.6)
        assert decision.side == "NO"
        assert decision.current_price == 0.6
        assert decision.win_probability == pytest.approx(0.7)

    def test_buy_no_without_quote_uses_complement(self):
        decision = to_decision(_forecast(Recommendation.BUY_NO, fair_value=0.3))
        assert decision.current_price == pytest.approx(0.58)

    def test_skip(self):
        decision = to_decision(_forecast(Recommendation.SKIP))
        assert decision.action == "skip"
        assert decision.side is None
        assert not decision.is_buy

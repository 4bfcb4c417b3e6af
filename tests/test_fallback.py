"""
Tests for the deterministic fallback decision rule.
"""

import pytest

from ai.fallback import fallback_decision
from ai.schemas import MetricSample
from tests.helpers import make_record, make_sample


class TestFallbackNoData:
    """Records without usable metrics always hold"""

    def test_empty_samples_hold(self):
        record = make_record("bid:solana:EMPTY", [])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "hold"
        assert decision.position_type is None
        assert decision.confidence == pytest.approx(0.5)
        assert decision.reasoning == "No trade metrics available"
        assert decision.reference_price == 0.0
        assert decision.source == "fallback"

    def test_missing_close_holds(self):
        record = make_record("bid:solana:NOCLOSE", [MetricSample(open=1.0, estimate=1.0)])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "hold"
        assert decision.confidence == pytest.approx(0.5)
        assert decision.reasoning == "Insufficient market data"


class TestFallbackRule:
    """Latest-interval rule"""

    def test_above_sma_and_bullish_opens_long(self):
        record = make_record("bid:solana:UP", [make_sample(open_=95.0, close=105.0, estimate=104.0, sma=100.0)])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "open"
        assert decision.position_type == "long"
        assert decision.confidence == pytest.approx(0.6)
        assert decision.reference_price == pytest.approx(104.0)
        assert "above SMA" in decision.reasoning
        assert "bullish" in decision.reasoning

    def test_below_sma_and_bearish_opens_short(self):
        record = make_record("bid:solana:DOWN", [make_sample(open_=105.0, close=95.0, estimate=96.0, sma=100.0)])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "open"
        assert decision.position_type == "short"
        assert "below SMA" in decision.reasoning
        assert "bearish" in decision.reasoning

    def test_mixed_signals_hold(self):
        # Above SMA but bearish candle
        record = make_record("bid:solana:MIX", [make_sample(open_=110.0, close=105.0, estimate=105.0, sma=100.0)])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "hold"
        assert decision.position_type is None
        assert decision.confidence == pytest.approx(0.6)

    def test_equal_values_count_as_bearish_below(self):
        record = make_record("bid:solana:FLAT", [make_sample(open_=100.0, close=100.0, estimate=100.0, sma=100.0)])
        decision = fallback_decision(record.identifier, record)

        assert decision.action == "open"
        assert decision.position_type == "short"

    def test_uses_latest_sample_only(self):
        older = make_sample(open_=105.0, close=95.0, estimate=96.0, sma=100.0)
        latest = make_sample(open_=95.0, close=105.0, estimate=104.0, sma=100.0)
        record = make_record("bid:solana:SEQ", [older, latest])

        assert fallback_decision(record.identifier, record).position_type == "long"

    def test_missing_sma_falls_back_to_estimate(self):
        # close 105 > estimate 100 acting as SMA
        record = make_record("bid:solana:NOSMA", [make_sample(open_=95.0, close=105.0, estimate=100.0, sma=None)])
        decision = fallback_decision(record.identifier, record)

        assert decision.position_type == "long"
        assert decision.reference_price == pytest.approx(100.0)

    def test_missing_estimate_and_sma_uses_close(self):
        record = make_record("bid:solana:BARE", [make_sample(open_=95.0, close=105.0, estimate=None, sma=None)])
        decision = fallback_decision(record.identifier, record)

        # close == sma, so not above: bullish candle alone holds
        assert decision.action == "hold"
        assert decision.reference_price == pytest.approx(105.0)

    def test_is_deterministic(self):
        record = make_record("bid:solana:DET", [make_sample(open_=95.0, close=105.0, estimate=104.0, sma=100.0)])
        assert fallback_decision(record.identifier, record) == fallback_decision(record.identifier, record)

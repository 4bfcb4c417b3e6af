"""
Tests for TradingCyclePipeline - Decision & Position Lifecycle

Validates candidate selection, per-asset degradation, the fatal ranked
fetch, execution messages, cancellation and shutdown liquidation.
"""

import json
import threading

import pytest
from unittest.mock import Mock

from ai.decision_resolver import BatchDecisionResolver
from ai.model_client import MockClient
from ai.schemas import Decision
from core.exceptions import CriticalDataUnavailable, CycleCancelled
from core.trading_cycle import CycleSettings, CycleState, TradingCyclePipeline
from infra.metrics import MetricsRecorder
from tests.helpers import StubMarketData, bearish_sample, bullish_sample, make_universe


def _pipeline(market, ledger, profile, response=None, client_error=None, **kwargs):
    client = MockClient(fixed_response=response, error=client_error)
    settings = kwargs.pop("settings", CycleSettings(top_n=10, request_delay_s=0))
    return TradingCyclePipeline(
        market_data=market,
        resolver=BatchDecisionResolver(client),
        ledger=ledger,
        profile=profile,
        settings=settings,
        **kwargs,
    )


class TestSelection:
    def test_high_takes_most_volatile(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile, settings=CycleSettings(top_n=3))
        selected = pipeline.select_candidates(make_universe(5))
        assert [a.identifier for a in selected] == ["bid:solana:ADDR00", "bid:solana:ADDR01", "bid:solana:ADDR02"]

    def test_low_takes_least_volatile(self, ledger, low_profile):
        pipeline = _pipeline(StubMarketData(), ledger, low_profile, settings=CycleSettings(top_n=3))
        selected = pipeline.select_candidates(make_universe(5))
        assert [a.identifier for a in selected] == ["bid:solana:ADDR04", "bid:solana:ADDR03", "bid:solana:ADDR02"]

    def test_short_universe(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)
        assert len(pipeline.select_candidates(make_universe(2))) == 2


class TestRunCycle:
    def test_fallback_cycle_opens_positions(self, ledger, high_profile):
        universe = make_universe(3)
        market = StubMarketData(
            universe=universe,
            samples={
                universe[0].identifier: [bullish_sample(105.0)],
                universe[1].identifier: [bearish_sample(95.0)],
            },
        )
        messages = []
        pipeline = _pipeline(market, ledger, high_profile, client_error=RuntimeError("down"), notify=messages.append)

        result = pipeline.run_cycle()

        assert result.success
        assert [d.identifier for d in result.decisions] == [a.identifier for a in universe]
        assert [d.source for d in result.decisions] == ["fallback"] * 3
        assert len(ledger) == 2
        assert ledger.get("ADDR00").type == "long"
        assert ledger.get("ADDR01").type == "short"
        assert ledger.allocated_capital == pytest.approx(60_000.0)
        assert any("📈 Opening long position" in m and "expected profit of $4500.00" in m for m in messages)
        assert any("⏸️  Holding position for solana/ADDR02" in m for m in messages)
        assert pipeline.state is CycleState.IDLE

    def test_per_asset_failure_degrades_to_no_data(self, ledger, low_profile):
        universe = make_universe(3)
        failing = universe[1].identifier
        market = StubMarketData(
            universe=universe,
            samples={a.identifier: [bullish_sample()] for a in universe},
            failing=[failing],
        )
        pipeline = _pipeline(market, ledger, low_profile)

        result = pipeline.run_cycle()

        assert result.success
        assert len(result.records) == 3
        degraded = [r for r in result.records if r.identifier == failing][0]
        assert degraded.samples == []
        decision = [d for d in result.decisions if d.identifier == failing][0]
        assert decision.action == "hold"
        assert decision.reasoning == "No trade metrics available"

    def test_records_keep_candidate_order(self, ledger, low_profile):
        universe = make_universe(4)
        market = StubMarketData(universe=universe)
        pipeline = _pipeline(market, ledger, low_profile)

        result = pipeline.run_cycle()

        expected = [a.identifier for a in reversed(universe)]
        assert market.metric_calls == expected
        assert [r.identifier for r in result.records] == expected

    def test_ranked_failure_is_fatal(self, ledger, high_profile):
        market = StubMarketData(ranked_error=ConnectionError("auth failed"))
        pipeline = _pipeline(market, ledger, high_profile)

        with pytest.raises(CriticalDataUnavailable) as exc_info:
            pipeline.run_cycle()

        assert exc_info.value.source == "volatility_ranked"
        assert isinstance(exc_info.value.original, ConnectionError)
        assert market.metric_calls == []

    def test_ai_decisions_execute_in_order(self, ledger, high_profile):
        universe = make_universe(2)
        market = StubMarketData(
            universe=universe,
            samples={a.identifier: [bullish_sample(50.0)] for a in universe},
        )
        response = json.dumps([
            {"identifier": universe[0].identifier, "action": "OPEN SHORT", "reasoning": "fade"},
            {"identifier": universe[1].identifier, "action": "HOLD", "reasoning": "wait"},
        ])
        pipeline = _pipeline(market, ledger, high_profile, response=response)

        result = pipeline.run_cycle()

        assert [o.action for o in result.outcomes] == ["open", "hold"]
        assert result.outcomes[0].executed
        assert ledger.get("ADDR00").type == "short"
        assert ledger.get("ADDR00").entry_price == pytest.approx(50.0)

    def test_guard_rejection_is_not_an_error(self, ledger, high_profile):
        universe = make_universe(4)
        market = StubMarketData(
            universe=universe,
            samples={a.identifier: [bullish_sample()] for a in universe},
        )
        pipeline = _pipeline(market, ledger, high_profile)

        result = pipeline.run_cycle()

        assert result.success
        assert len(ledger) == 3
        assert result.outcomes[3].executed is False
        assert result.outcomes[3].message.startswith("⚠️  Skipped opening")

    def test_metrics_and_audit_reported(self, ledger, low_profile):
        universe = make_universe(1)
        market = StubMarketData(universe=universe, samples={universe[0].identifier: [bullish_sample()]})
        audit = Mock()
        metrics = MetricsRecorder(enabled=False)
        pipeline = _pipeline(market, ledger, low_profile, audit=audit, metrics=metrics)

        pipeline.run_cycle()

        assert metrics.last_cycle_stats.status == "ok"
        assert metrics.last_cycle_stats.opened == 1
        assert metrics.decision_count("fallback", "open") == 1
        audit.log_cycle.assert_called_once()
        assert audit.log_cycle.call_args.kwargs["risk_profile"] == "low"


class TestExecuteDecision:
    def _decision(self, action, identifier="bid:solana:ADDR00", position_type="long", price=100.0):
        return Decision(identifier, action, position_type, 0.7, "test", price)

    def test_close_existing_position(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)
        pipeline.execute_decision(self._decision("open"))

        outcome = pipeline.execute_decision(self._decision("close", price=115.0))

        assert outcome.executed
        assert outcome.pnl == pytest.approx(4500.0)
        assert outcome.message == "📉 Closing long position for solana/ADDR00 for profit of $4500.00"
        assert len(ledger) == 0

    def test_close_reports_loss(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)
        pipeline.execute_decision(self._decision("open"))

        outcome = pipeline.execute_decision(self._decision("close", price=90.0))

        assert outcome.pnl == pytest.approx(-3000.0)
        assert "for loss of $3000.00" in outcome.message

    def test_close_without_position_is_noop(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)

        outcome = pipeline.execute_decision(self._decision("close"))

        assert outcome.executed is False
        assert "No open position to close" in outcome.message

    def test_close_without_price_uses_entry(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)
        pipeline.execute_decision(self._decision("open"))

        outcome = pipeline.execute_decision(self._decision("close", price=0.0))

        assert outcome.pnl == 0.0

    def test_hold(self, ledger, high_profile):
        pipeline = _pipeline(StubMarketData(), ledger, high_profile)
        outcome = pipeline.execute_decision(self._decision("hold", position_type=None))
        assert outcome.message == "⏸️  Holding position for solana/ADDR00"
        assert len(ledger) == 0


class TestCancellation:
    def test_cancel_before_cycle(self, ledger, low_profile):
        event = threading.Event()
        event.set()
        market = StubMarketData(universe=make_universe(3))
        pipeline = _pipeline(market, ledger, low_profile, cancel_event=event)

        with pytest.raises(CycleCancelled):
            pipeline.run_cycle()
        assert market.metric_calls == []

    def test_cancel_during_fetch(self, ledger, low_profile):
        event = threading.Event()
        universe = make_universe(5)
        market = StubMarketData(universe=universe)
        original = market.fetch_metrics

        def fetch_then_cancel(identifier, lookback_hours=24):
            event.set()
            return original(identifier, lookback_hours)

        market.fetch_metrics = fetch_then_cancel
        pipeline = _pipeline(market, ledger, low_profile, cancel_event=event)

        with pytest.raises(CycleCancelled):
            pipeline.run_cycle()
        assert len(market.metric_calls) == 1

    def test_cancel_during_execution_then_shutdown(self, ledger, high_profile):
        event = threading.Event()
        universe = make_universe(3)
        market = StubMarketData(
            universe=universe,
            samples={a.identifier: [bullish_sample(100.0)] for a in universe},
            prices={universe[0].identifier: 110.0},
        )
        messages = []

        def notify(message):
            messages.append(message)
            if message.startswith("📈"):
                event.set()

        pipeline = _pipeline(market, ledger, high_profile, cancel_event=event, notify=notify)

        with pytest.raises(CycleCancelled):
            pipeline.run_cycle()
        assert len(ledger) == 1

        summary = pipeline.shutdown()

        assert summary.closed_count == 1
        assert summary.total_pnl == pytest.approx(3000.0)
        assert pipeline.state is CycleState.TERMINATED


class TestShutdown:
    def test_shutdown_liquidates_with_failing_lookups(self, ledger, high_profile):
        universe = make_universe(2)
        market = StubMarketData(
            universe=universe,
            samples={a.identifier: [bullish_sample(100.0)] for a in universe},
        )
        pipeline = _pipeline(market, ledger, high_profile)
        pipeline.run_cycle()
        assert len(ledger) == 2

        market.failing = {universe[0].identifier}
        market.prices = {universe[1].identifier: 90.0}
        summary = pipeline.shutdown()

        assert summary.closed_count == 2
        assert summary.total_pnl == pytest.approx(-3000.0)
        assert len(ledger) == 0
        assert ledger.allocated_capital == 0.0

    def test_shutdown_with_custom_lookup(self, ledger, low_profile):
        pipeline = _pipeline(StubMarketData(), ledger, low_profile)
        audit = Mock()
        pipeline.audit = audit

        summary = pipeline.shutdown(price_lookup=lambda identifier: 1.0)

        assert summary.closed_count == 0
        audit.log_liquidation.assert_called_once_with(summary)
        assert pipeline.state is CycleState.TERMINATED

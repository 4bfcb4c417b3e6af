"""
Trading Cycle Pipeline - Decision & Position Lifecycle

Implements the core flow:
1. Fetch the volatility-ranked universe and pick candidates for the profile
2. Fetch per-asset metrics (failures degrade to "no data")
3. Resolve every candidate in one batched reasoning call
4. Execute decisions against the position ledger, in order
5. On cancellation, liquidate every open position

The pipeline observes the cancellation event between suspension points and
raises CycleCancelled; the caller then runs shutdown().
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ai.decision_resolver import BatchDecisionResolver
from ai.risk_profile import RiskProfile
from ai.schemas import Decision, MetricRecord, RankedAsset
from core.audit_log import AuditLogger
from core.exceptions import CriticalDataUnavailable, CycleCancelled
from core.market_data import BitqueryClient
from core.position_ledger import LiquidationSummary, PositionLedger
from infra.metrics import CycleStats, MetricsRecorder
from infra.symbols import display_name, parse_currency_id

logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING_METRICS = "fetching_metrics"
    RESOLVING_DECISIONS = "resolving_decisions"
    EXECUTING = "executing"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass
class CycleSettings:
    """Runtime knobs for one decision cycle."""

    top_n: int = 10
    lookback_hours: int = 24
    request_delay_s: float = 0.1


@dataclass
class ExecutionOutcome:
    """Result of applying one decision to the ledger."""
    identifier: str
    action: str
    executed: bool
    message: str
    position_id: Optional[str] = None
    pnl: Optional[float] = None


@dataclass
class CycleResult:
    """Result of a decision cycle execution"""
    success: bool
    records: List[MetricRecord] = field(default_factory=list)
    decisions: List[Decision] = field(default_factory=list)
    outcomes: List[ExecutionOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def messages(self) -> List[str]:
        return [o.message for o in self.outcomes if o.message]


class TradingCyclePipeline:
    """
    Sequences fetch metrics -> resolve decisions -> execute -> report.

    The ledger is owned by the caller and injected, so the same instance is
    liquidated at shutdown.
    """

    def __init__(self,
                 market_data: BitqueryClient,
                 resolver: BatchDecisionResolver,
                 ledger: PositionLedger,
                 profile: RiskProfile,
                 settings: Optional[CycleSettings] = None,
                 audit: Optional[AuditLogger] = None,
                 metrics: Optional[MetricsRecorder] = None,
                 cancel_event: Optional[threading.Event] = None,
                 notify: Optional[Callable[[str], None]] = None):
        """
        Initialize pipeline with core components.

        Args:
            market_data: Market data provider
            resolver: Batch decision resolver
            ledger: Position ledger for this run
            profile: Active risk profile
            settings: Cycle settings
            audit: Optional audit logger
            metrics: Optional metrics recorder
            cancel_event: Cancellation channel set by the signal handler
            notify: Sink for human-readable progress messages
        """
        self.market_data = market_data
        self.resolver = resolver
        self.ledger = ledger
        self.profile = profile
        self.settings = settings or CycleSettings()
        self.audit = audit
        self.metrics = metrics
        self.cancel_event = cancel_event or threading.Event()
        self._notify = notify
        self._state = CycleState.IDLE

        logger.info(f"Initialized TradingCyclePipeline (profile={profile.name}, top_n={self.settings.top_n})")

    @property
    def state(self) -> CycleState:
        return self._state

    def _set_state(self, state: CycleState) -> None:
        logger.debug(f"Cycle state: {self._state.value} -> {state.value}")
        self._state = state

    def _emit(self, message: str) -> None:
        if self._notify is not None:
            self._notify(message)

    def _checkpoint(self) -> None:
        if self.cancel_event.is_set():
            raise CycleCancelled(f"cancelled during {self._state.value}")

    # ------------------------------------------------------------------
    # Stage 1: universe + metrics
    # ------------------------------------------------------------------

    def select_candidates(self, ranked: List[RankedAsset]) -> List[RankedAsset]:
        """
        Pick candidates from a universe sorted by volatility (highest first).

        High risk takes the most volatile; low risk takes the least volatile.
        """
        selected = list(ranked)
        if self.profile.name == "low":
            selected.reverse()
        return selected[: self.settings.top_n]

    def fetch_universe(self) -> List[RankedAsset]:
        """
        Fetch the ranked universe.

        Raises:
            CriticalDataUnavailable: without a universe there is nothing to decide on
        """
        try:
            return self.market_data.fetch_volatility_ranked()
        except Exception as e:
            logger.error(f"Error fetching volatility data: {e}")
            raise CriticalDataUnavailable("volatility_ranked", e) from e

    def fetch_records(self, candidates: List[RankedAsset]) -> List[MetricRecord]:
        """Fetch metrics per candidate, preserving candidate order."""
        records: List[MetricRecord] = []
        for index, asset in enumerate(candidates):
            self._checkpoint()
            try:
                samples = self.market_data.fetch_metrics(asset.identifier, self.settings.lookback_hours)
                self._emit(f"✓ Fetched metrics for {asset.identifier[:30]}...")
            except Exception as e:
                logger.warning(f"Error fetching metrics for {asset.identifier}: {e}")
                samples = []

            records.append(
                MetricRecord(
                    identifier=asset.identifier,
                    volatility_pct=asset.volatility_pct,
                    average_price=asset.average_price,
                    samples=samples,
                )
            )

            # Small delay to avoid rate limiting; doubles as a cancellation point
            if self.settings.request_delay_s > 0 and index < len(candidates) - 1:
                if self.cancel_event.wait(self.settings.request_delay_s):
                    self._checkpoint()
        return records

    # ------------------------------------------------------------------
    # Stage 2 + 3: resolve and execute
    # ------------------------------------------------------------------

    def resolve(self, records: List[MetricRecord]) -> List[Decision]:
        decisions = self.resolver.resolve_batch(records, self.profile)
        if self.metrics is not None:
            self.metrics.record_decisions(decisions)
        return decisions

    def execute_decision(self, decision: Decision) -> ExecutionOutcome:
        """Apply one decision to the ledger and describe what happened."""
        name = display_name(decision.identifier)

        if decision.action == "open":
            position = self.ledger.open(decision, self.profile)
            if position is None:
                return ExecutionOutcome(
                    identifier=decision.identifier,
                    action="open",
                    executed=False,
                    message=f"⚠️  Skipped opening {decision.position_type} position for {name}",
                )
            return ExecutionOutcome(
                identifier=decision.identifier,
                action="open",
                executed=True,
                position_id=position.id,
                message=(
                    f"📈 Opening {position.type} position for {name} "
                    f"with expected profit of ${position.expected_profit:.2f}"
                ),
            )

        if decision.action == "close":
            _, address = parse_currency_id(decision.identifier)
            if address not in self.ledger:
                return ExecutionOutcome(
                    identifier=decision.identifier,
                    action="close",
                    executed=False,
                    message=f"⏸️  No open position to close for {name}",
                )
            position = self.ledger.get(address)
            exit_price = decision.reference_price if decision.reference_price > 0 else position.entry_price
            closed = self.ledger.close(position, exit_price)
            if self.metrics is not None:
                self.metrics.record_realized_pnl(closed.pnl)
            outcome = "profit" if closed.is_profit else "loss"
            return ExecutionOutcome(
                identifier=decision.identifier,
                action="close",
                executed=True,
                position_id=position.id,
                pnl=closed.pnl,
                message=(
                    f"📉 Closing {position.type} position for {name} "
                    f"for {outcome} of ${abs(closed.pnl):.2f}"
                ),
            )

        return ExecutionOutcome(
            identifier=decision.identifier,
            action="hold",
            executed=False,
            message=f"⏸️  Holding position for {name}",
        )

    def execute(self, decisions: List[Decision]) -> List[ExecutionOutcome]:
        outcomes: List[ExecutionOutcome] = []
        for decision in decisions:
            self._checkpoint()
            try:
                outcome = self.execute_decision(decision)
            except Exception as e:
                logger.error(f"Error executing decision for {decision.identifier}: {e}", exc_info=True)
                outcome = ExecutionOutcome(
                    identifier=decision.identifier,
                    action=decision.action,
                    executed=False,
                    message=f"❌ Failed to execute {decision.action} for {display_name(decision.identifier)}",
                )
            outcomes.append(outcome)
            self._emit(outcome.message)

        if self.metrics is not None:
            self.metrics.record_ledger(len(self.ledger), self.ledger.allocated_capital)
        return outcomes

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleResult:
        """
        Execute one cycle through the pipeline.

        Raises:
            CriticalDataUnavailable: ranked universe fetch failed (fatal)
            CycleCancelled: cancellation observed at a suspension point
        """
        started = time.monotonic()
        result = CycleResult(success=False)

        try:
            self._set_state(CycleState.FETCHING_METRICS)
            self._checkpoint()
            ranked = self.fetch_universe()
            candidates = self.select_candidates(ranked)
            self._emit(f"✅ Selected {len(candidates)} currencies for trading")
            result.records = self.fetch_records(candidates)

            self._set_state(CycleState.RESOLVING_DECISIONS)
            self._checkpoint()
            result.decisions = self.resolve(result.records)

            self._set_state(CycleState.EXECUTING)
            self._checkpoint()
            result.outcomes = self.execute(result.decisions)
            result.success = True

        except CriticalDataUnavailable as e:
            result.error = f"critical_data_unavailable:{e.source}"
            raise
        except CycleCancelled as e:
            result.error = "cancelled"
            logger.warning(f"Cycle cancelled: {e}")
            raise
        finally:
            if self._state is not CycleState.SHUTTING_DOWN:
                self._set_state(CycleState.IDLE)
            duration = time.monotonic() - started
            self._report(result, duration)

        return result

    def _report(self, result: CycleResult, duration: float) -> None:
        opened = sum(1 for o in result.outcomes if o.executed and o.action == "open")
        closed = sum(1 for o in result.outcomes if o.executed and o.action == "close")
        status = "ok" if result.success else (result.error or "error")

        logger.info(
            f"Cycle {status} in {duration:.2f}s: assets={len(result.records)}, "
            f"decisions={len(result.decisions)}, opened={opened}, closed={closed}, "
            f"allocated=${self.ledger.allocated_capital:,.2f}"
        )
        if self.metrics is not None:
            self.metrics.record_cycle(
                CycleStats(
                    status=status,
                    assets=len(result.records),
                    decisions=len(result.decisions),
                    opened=opened,
                    closed=closed,
                    duration_seconds=duration,
                )
            )
        if self.audit is not None:
            self.audit.log_cycle(
                ts=datetime.now(timezone.utc),
                risk_profile=self.profile.name,
                records=result.records,
                decisions=result.decisions,
                outcomes=result.outcomes,
                allocated_capital=self.ledger.allocated_capital,
                error=result.error,
            )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, price_lookup: Optional[Callable[[str], Optional[float]]] = None) -> LiquidationSummary:
        """
        Liquidate every open position and move to the terminal state.

        Args:
            price_lookup: identifier -> current price; defaults to the market
                data client's latest price. Failures close at entry price.
        """
        self._set_state(CycleState.SHUTTING_DOWN)
        lookup = price_lookup if price_lookup is not None else self.market_data.latest_price

        summary = self.ledger.close_all(lookup)
        logger.info(f"Liquidated {summary.closed_count} position(s), total P&L ${summary.total_pnl:.2f}")

        if self.metrics is not None:
            self.metrics.record_liquidation(summary.closed_count, summary.total_pnl)
            self.metrics.record_ledger(len(self.ledger), self.ledger.allocated_capital)
        if self.audit is not None:
            self.audit.log_liquidation(summary)

        self._set_state(CycleState.TERMINATED)
        return summary

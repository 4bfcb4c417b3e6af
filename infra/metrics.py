"""Prometheus-backed metrics hooks for the decision loop and position ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from prometheus_client import Counter, Gauge, Summary, start_http_server

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    status: str
    assets: int
    decisions: int
    opened: int
    closed: int
    duration_seconds: float


class MetricsRecorder:
    """
    Expose decision loop stats via Prometheus.

    Singleton pattern to prevent duplicate metric registration errors.
    """
    _instance: Optional['MetricsRecorder'] = None
    _initialized: bool = False

    def __new__(cls, enabled: bool = True, port: int = 9100):
        """Ensure only one MetricsRecorder instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, enabled: bool = True, port: int = 9100) -> None:
        # Skip re-initialization if already initialized
        if self.__class__._initialized:
            return

        self._enabled = bool(enabled)
        self._port = port
        self._started = False
        self.__class__._initialized = True

        self._last_cycle_stats: Optional[CycleStats] = None
        self._decision_counts: dict = {}

        if not self._enabled:
            self._cycle_summary = None
            self._cycle_counter = None
            self._decision_counter = None
            self._positions_gauge = None
            self._allocated_gauge = None
            self._realized_pnl_gauge = None
            self._liquidation_counter = None
            return

        self._cycle_summary = Summary(
            "voltrader_cycle_duration_seconds",
            "Duration of a full decision cycle",
        )
        self._cycle_counter = Counter(
            "voltrader_cycle_total",
            "Total decision cycles by status",
            labelnames=("status",),
        )
        self._decision_counter = Counter(
            "voltrader_decisions_total",
            "Resolved decisions by source and action",
            labelnames=("source", "action"),
        )
        self._positions_gauge = Gauge(
            "voltrader_open_positions",
            "Number of open simulated positions",
        )
        self._allocated_gauge = Gauge(
            "voltrader_allocated_capital_usd",
            "Capital currently allocated to open positions",
        )
        self._realized_pnl_gauge = Gauge(
            "voltrader_realized_pnl_usd",
            "Realized P&L accumulated over the run",
        )
        self._liquidation_counter = Counter(
            "voltrader_liquidated_positions_total",
            "Positions closed by the shutdown liquidation sweep",
        )

    @classmethod
    def _reset_for_testing(cls) -> None:
        """Drop the singleton and unregister its collectors (tests only)."""
        instance = cls._instance
        if instance is not None and getattr(instance, "_enabled", False):
            from prometheus_client import REGISTRY

            for collector in (
                instance._cycle_summary,
                instance._cycle_counter,
                instance._decision_counter,
                instance._positions_gauge,
                instance._allocated_gauge,
                instance._realized_pnl_gauge,
                instance._liquidation_counter,
            ):
                try:
                    REGISTRY.unregister(collector)
                except KeyError:
                    pass
        cls._instance = None
        cls._initialized = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def last_cycle_stats(self) -> Optional[CycleStats]:
        return self._last_cycle_stats

    def decision_count(self, source: str, action: str) -> int:
        return self._decision_counts.get((source, action), 0)

    def start(self) -> None:
        if not self._enabled or self._started:
            return
        try:
            start_http_server(self._port)
            self._started = True
            logger.info("Prometheus metrics exporter listening on port %s", self._port)
        except OSError as exc:
            logger.error("Failed to start metrics exporter on port %s: %s", self._port, exc)

    def record_decisions(self, decisions: Iterable) -> None:
        for decision in decisions:
            key = (decision.source, decision.action)
            self._decision_counts[key] = self._decision_counts.get(key, 0) + 1
            if self._decision_counter is not None:
                self._decision_counter.labels(source=decision.source, action=decision.action).inc()

    def record_ledger(self, open_positions: int, allocated_capital: float) -> None:
        if self._positions_gauge is not None:
            self._positions_gauge.set(open_positions)
        if self._allocated_gauge is not None:
            self._allocated_gauge.set(allocated_capital)

    def record_realized_pnl(self, pnl: float) -> None:
        if self._realized_pnl_gauge is not None:
            self._realized_pnl_gauge.inc(pnl)

    def record_liquidation(self, closed_count: int, total_pnl: float) -> None:
        if self._liquidation_counter is not None:
            self._liquidation_counter.inc(closed_count)
        self.record_realized_pnl(total_pnl)

    def record_cycle(self, stats: CycleStats) -> None:
        self._last_cycle_stats = stats
        if self._cycle_counter is not None:
            self._cycle_counter.labels(status=stats.status).inc()
        if self._cycle_summary is not None:
            self._cycle_summary.observe(stats.duration_seconds)

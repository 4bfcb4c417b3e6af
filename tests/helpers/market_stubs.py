"""
Test helpers for decision loop tests.

Provides metric record builders and an in-memory market data stub that
mirrors BitqueryClient's public surface.
"""

from typing import Dict, List, Optional

from ai.schemas import MetricRecord, MetricSample, RankedAsset


def make_sample(
    open_: Optional[float] = 100.0,
    close: Optional[float] = 100.0,
    estimate: Optional[float] = None,
    sma: Optional[float] = None,
    volume: float = 1000.0,
) -> MetricSample:
    """Build a MetricSample; high/low bracket open and close."""
    prices = [p for p in (open_, close) if p is not None]
    return MetricSample(
        open=open_,
        high=max(prices) if prices else None,
        low=min(prices) if prices else None,
        close=close,
        volume_usd=volume,
        estimate=estimate,
        weighted_sma=sma,
        interval_start="2024-01-01T00:00:00Z",
        interval_end="2024-01-01T01:00:00Z",
    )


def make_record(identifier: str, samples: Optional[List[MetricSample]] = None,
                volatility: float = 12.5, average: float = 100.0) -> MetricRecord:
    return MetricRecord(
        identifier=identifier,
        volatility_pct=volatility,
        average_price=average,
        samples=list(samples or []),
    )


def bullish_sample(price: float = 105.0) -> MetricSample:
    """Close above SMA and above open."""
    return make_sample(open_=price * 0.95, close=price, estimate=price, sma=price * 0.97)


def bearish_sample(price: float = 95.0) -> MetricSample:
    """Close below SMA and below open."""
    return make_sample(open_=price * 1.05, close=price, estimate=price, sma=price * 1.03)


def make_universe(count: int, network: str = "solana") -> List[RankedAsset]:
    """Ranked universe sorted by volatility, highest first."""
    return [
        RankedAsset(
            identifier=f"bid:{network}:ADDR{index:02d}",
            volatility_pct=float(100 - index),
            average_price=1.0 + index,
        )
        for index in range(count)
    ]


class StubMarketData:
    """
    In-memory stand-in for BitqueryClient.

    Args:
        universe: Ranked assets returned by fetch_volatility_ranked()
        samples: identifier -> samples (missing identifiers return [])
        failing: identifiers whose fetch_metrics() raises
        prices: identifier -> latest price for liquidation
        ranked_error: exception raised by fetch_volatility_ranked()
    """

    def __init__(self,
                 universe: Optional[List[RankedAsset]] = None,
                 samples: Optional[Dict[str, List[MetricSample]]] = None,
                 failing: Optional[List[str]] = None,
                 prices: Optional[Dict[str, float]] = None,
                 ranked_error: Optional[Exception] = None):
        self.universe = universe or []
        self.samples = samples or {}
        self.failing = set(failing or [])
        self.prices = prices or {}
        self.ranked_error = ranked_error
        self.metric_calls: List[str] = []
        self.price_calls: List[str] = []

    def fetch_volatility_ranked(self) -> List[RankedAsset]:
        if self.ranked_error is not None:
            raise self.ranked_error
        return list(self.universe)

    def fetch_metrics(self, identifier: str, lookback_hours: int = 24) -> List[MetricSample]:
        self.metric_calls.append(identifier)
        if identifier in self.failing:
            raise RuntimeError(f"metrics unavailable for {identifier}")
        return list(self.samples.get(identifier, []))

    def latest_price(self, identifier: str) -> Optional[float]:
        self.price_calls.append(identifier)
        if identifier in self.failing:
            raise RuntimeError(f"price unavailable for {identifier}")
        return self.prices.get(identifier)

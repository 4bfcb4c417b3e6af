"""
Decision pipeline schemas and data structures.

Defines the contract between the market data collaborator, the batch
decision resolver and the position ledger. Inputs and outputs are plain
dataclasses so they can be logged and audited as-is.
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Union

Action = Literal["open", "close", "hold"]
PositionType = Literal["long", "short"]
DecisionSource = Literal["ai", "fallback"]


@dataclass
class MetricSample:
    """One interval bar for an asset (ascending by time in a record)."""
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume_usd: Optional[float] = None
    estimate: Optional[float] = None           # Average estimated price
    weighted_sma: Optional[float] = None       # Weighted simple moving average
    interval_start: Optional[str] = None
    interval_end: Optional[str] = None

    @property
    def price(self) -> Optional[float]:
        """Best available price: estimate, then close."""
        if self.estimate is not None:
            return self.estimate
        return self.close


@dataclass
class RankedAsset:
    """Entry of the volatility-ranked universe."""
    identifier: str
    volatility_pct: float = 0.0
    average_price: float = 0.0


@dataclass
class MetricRecord:
    """Market snapshot for a single asset. Empty samples is a valid state."""
    identifier: str
    volatility_pct: float = 0.0
    average_price: float = 0.0
    samples: List[MetricSample] = field(default_factory=list)

    @property
    def latest(self) -> Optional[MetricSample]:
        return self.samples[-1] if self.samples else None

    @property
    def reference_price(self) -> float:
        latest = self.latest
        if latest is None or latest.price is None:
            return 0.0
        return float(latest.price)


@dataclass
class Decision:
    """Resolved decision for one asset."""
    identifier: str
    action: Action
    position_type: Optional[PositionType]
    confidence: float
    reasoning: str
    reference_price: float
    source: DecisionSource = "ai"

    def __post_init__(self):
        """Clamp confidence to [0, 1]."""
        self.confidence = max(0.0, min(1.0, float(self.confidence)))


@dataclass
class ParsedDecision:
    """Raw entry returned by the reasoning service, before normalisation."""
    identifier: str
    action: str = "HOLD"
    position_type: Optional[str] = None
    reasoning: Optional[str] = None


@dataclass
class ParsedDecisions:
    """Successful parse of a reasoning-service response."""
    entries: List[ParsedDecision]


@dataclass
class ParseFailure:
    """Reasoning-service response that could not be used."""
    reason: str
    raw: str = ""


ParseResult = Union[ParsedDecisions, ParseFailure]

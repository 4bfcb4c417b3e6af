"""
Position Ledger: simulated positions and capital accounting

Owns every open position for the run, keyed by asset address.
Positions are created by open(), never mutated, and removed by close()
or the shutdown liquidation sweep (close_all()).

Invariants:
- At most one open position per address
- 0 <= allocated_capital <= total_capital
- allocated_capital == sum of open position sizes
"""
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ai.risk_profile import RiskProfile
from ai.schemas import Decision, PositionType
from core.exceptions import PositionNotFoundError
from infra.symbols import parse_currency_id

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_CAPITAL = 100_000.0
DEFAULT_CAPITAL_GUARD = 0.9  # Never allocate past 90% of total capital

PriceLookup = Callable[[str], Optional[float]]


@dataclass(frozen=True)
class Position:
    """Open simulated position"""
    id: str
    identifier: str
    network: str
    address: str
    type: PositionType
    entry_price: float
    size: float                      # Capital units (USD)
    opened_at: datetime
    stop_loss_multiplier: float
    take_profit_multiplier: float
    confidence: float
    reasoning: str
    expected_profit: float

    @property
    def stop_loss_price(self) -> float:
        if self.type == "short":
            return self.entry_price * (2.0 - self.stop_loss_multiplier)
        return self.entry_price * self.stop_loss_multiplier

    @property
    def take_profit_price(self) -> float:
        if self.type == "short":
            return self.entry_price * (2.0 - self.take_profit_multiplier)
        return self.entry_price * self.take_profit_multiplier


@dataclass(frozen=True)
class ClosedPosition:
    """Position plus realized P&L at close"""
    position: Position
    current_price: float
    pnl: float
    closed_at: datetime

    @property
    def identifier(self) -> str:
        return self.position.identifier

    @property
    def is_profit(self) -> bool:
        return self.pnl >= 0


@dataclass
class LiquidationSummary:
    """Result of closing every open position"""
    closed_count: int = 0
    total_pnl: float = 0.0
    positions: List[ClosedPosition] = field(default_factory=list)


def calculate_pnl(position_type: str, entry_price: float, current_price: float, size: float) -> float:
    """Realized P&L proportional to price movement and position size."""
    if position_type == "long":
        return (current_price - entry_price) / entry_price * size
    return (entry_price - current_price) / entry_price * size


class PositionLedger:
    """
    In-memory store of open positions with capital accounting.

    Responsibilities:
    - Size new positions from the risk profile
    - Enforce the capital guard (declined opens return None)
    - Realize P&L on close
    - Liquidate everything at shutdown, even when price lookups fail

    Mutations are serialized with a lock so a single writer owns the
    capital accounting even if callers run on several threads.
    """

    def __init__(
        self,
        total_capital: float = DEFAULT_TOTAL_CAPITAL,
        capital_guard_fraction: float = DEFAULT_CAPITAL_GUARD,
    ):
        if total_capital <= 0:
            raise ValueError(f"total_capital must be positive, got {total_capital}")
        if not 0 < capital_guard_fraction <= 1:
            raise ValueError(f"capital_guard_fraction must be in (0, 1], got {capital_guard_fraction}")

        self._total_capital = float(total_capital)
        self._guard_fraction = float(capital_guard_fraction)
        self._allocated = 0.0
        self._positions: Dict[str, Position] = {}
        self._lock = threading.RLock()
        self._seq = itertools.count(1)

        logger.info(
            f"PositionLedger initialized: capital=${self._total_capital:,.2f}, "
            f"guard={self._guard_fraction:.0%}"
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def total_capital(self) -> float:
        return self._total_capital

    @property
    def allocated_capital(self) -> float:
        return self._allocated

    @property
    def available_capital(self) -> float:
        return self._total_capital - self._allocated

    def get(self, address: str) -> Optional[Position]:
        return self._positions.get(address)

    def open_positions(self) -> List[Position]:
        with self._lock:
            return list(self._positions.values())

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, address: object) -> bool:
        return address in self._positions

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def open(self, decision: Decision, profile: RiskProfile) -> Optional[Position]:
        """
        Open a position from a decision.

        Returns:
            The new Position, or None if declined (capital guard, no usable
            entry price, or no long/short direction). Declines never mutate state.
        """
        logger.info(f"Opening {decision.position_type} position for {decision.identifier}")

        if decision.position_type not in ("long", "short"):
            logger.warning(f"Declined open for {decision.identifier}: no position type")
            return None

        entry_price = float(decision.reference_price or 0.0)
        if entry_price <= 0:
            logger.warning(f"Declined open for {decision.identifier}: no valid entry price")
            return None

        with self._lock:
            if self._allocated >= self._total_capital * self._guard_fraction:
                logger.warning(
                    f"Not enough capital to open new position (available ${self.available_capital:,.2f})"
                )
                return None

            size = self._total_capital * profile.max_position_fraction
            network, address = parse_currency_id(decision.identifier)

            # Last write wins: a replaced position releases its capital
            replaced = self._positions.get(address)
            released = replaced.size if replaced else 0.0
            new_allocated = self._allocated - released + size
            if new_allocated > self._total_capital + 1e-9:
                logger.warning(
                    f"Declined open for {decision.identifier}: allocation "
                    f"${new_allocated:,.2f} would exceed capital"
                )
                return None

            position = Position(
                id=f"pos_{next(self._seq)}_{int(time.time() * 1000)}",
                identifier=decision.identifier,
                network=network,
                address=address,
                type=decision.position_type,
                entry_price=entry_price,
                size=size,
                opened_at=datetime.now(timezone.utc),
                stop_loss_multiplier=profile.stop_loss_multiplier,
                take_profit_multiplier=profile.take_profit_multiplier,
                confidence=decision.confidence,
                reasoning=decision.reasoning,
                expected_profit=size * (profile.take_profit_multiplier - 1),
            )

            if replaced:
                logger.warning(f"Replacing open position {replaced.id} at {address}")
            self._positions[address] = position
            self._allocated = new_allocated

        logger.info(f"Position opened: {position.id}")
        return position

    def close(self, position: Position, current_price: float) -> ClosedPosition:
        """
        Close an open position and realize P&L.

        Raises:
            PositionNotFoundError: if this position is not the one open at its
                address (already closed, or replaced by a later open)
        """
        logger.info(f"Closing {position.type} position for {position.identifier}")

        with self._lock:
            held = self._positions.get(position.address)
            if held is None or held.id != position.id:
                raise PositionNotFoundError(position.address)

            pnl = calculate_pnl(position.type, position.entry_price, float(current_price), position.size)

            self._positions.pop(position.address)
            self._allocated = max(0.0, self._allocated - held.size)
            if not self._positions:
                self._allocated = 0.0  # clear float drift

        logger.info(f"Position closed: {position.id} with P&L: ${pnl:.2f}")
        return ClosedPosition(
            position=position,
            current_price=float(current_price),
            pnl=pnl,
            closed_at=datetime.now(timezone.utc),
        )

    def close_all(self, price_lookup: Optional[PriceLookup] = None) -> LiquidationSummary:
        """
        Close every open position (shutdown liquidation).

        A failed, empty or non-positive price lookup closes at entry price,
        so one bad lookup never blocks the others.
        """
        positions = self.open_positions()
        summary = LiquidationSummary()
        if not positions:
            return summary

        logger.info(f"Closing {len(positions)} open position(s)...")

        for position in positions:
            current_price = position.entry_price
            if price_lookup is not None:
                try:
                    looked_up = price_lookup(position.identifier)
                    if looked_up is not None and float(looked_up) > 0:
                        current_price = float(looked_up)
                    else:
                        logger.warning(f"No current price for {position.identifier}, using entry price")
                except Exception as e:
                    logger.warning(
                        f"Could not fetch current price for {position.identifier}, using entry price: {e}"
                    )

            try:
                closed = self.close(position, current_price)
            except PositionNotFoundError as e:
                logger.warning(f"Skipping {position.id}: {e}")
                continue
            summary.positions.append(closed)
            summary.total_pnl += closed.pnl

        summary.closed_count = len(summary.positions)
        return summary

"""
Position Management: Exit Logic for Stop-Loss and Take-Profit

Evaluates open ledger positions against the exit multipliers captured at
entry and closes the ones that crossed a threshold.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.position_ledger import ClosedPosition, Position, PositionLedger

logger = logging.getLogger(__name__)


@dataclass
class PositionExitSignal:
    """Signal to exit a position"""
    position: Position
    reason: str  # "stop_loss" or "take_profit"
    current_price: float
    move_pct: float  # Price move vs entry, in the position's favour


class PositionManager:
    """
    Manages position exits based on stop-loss and take-profit multipliers.

    Long positions stop out at entry * stop_loss and take profit at
    entry * take_profit; short positions mirror both thresholds around entry.
    """

    def __init__(self, ledger: PositionLedger, enabled: bool = True):
        self.ledger = ledger
        self.enabled = enabled

    def check_exit(self, position: Position, current_price: Optional[float]) -> Optional[PositionExitSignal]:
        """
        Check if position meets any exit condition.

        Priority order: stop_loss > take_profit

        Returns:
            PositionExitSignal if exit condition met, None otherwise
        """
        if not current_price or current_price <= 0:
            return None

        if position.type == "long":
            hit_stop = current_price <= position.stop_loss_price
            hit_target = current_price >= position.take_profit_price
            move_pct = (current_price - position.entry_price) / position.entry_price * 100
        else:
            hit_stop = current_price >= position.stop_loss_price
            hit_target = current_price <= position.take_profit_price
            move_pct = (position.entry_price - current_price) / position.entry_price * 100

        if hit_stop:
            return PositionExitSignal(position, "stop_loss", current_price, move_pct)
        if hit_target:
            return PositionExitSignal(position, "take_profit", current_price, move_pct)
        return None

    def enforce_exits(self, price_lookup: Callable[[str], Optional[float]]) -> List[ClosedPosition]:
        """
        Check every open position and close the ones that hit an exit.

        Price lookup failures skip that position for this pass.
        """
        if not self.enabled:
            logger.debug("Position exits disabled in config")
            return []

        closed: List[ClosedPosition] = []
        for position in self.ledger.open_positions():
            try:
                current_price = price_lookup(position.identifier)
            except Exception as e:
                logger.warning(f"No valid current price for {position.identifier}, skipping exit check: {e}")
                continue

            signal = self.check_exit(position, current_price)
            if signal is None:
                continue

            logger.info(
                f"EXIT SIGNAL: {position.identifier} {signal.reason.upper()} - "
                f"move: {signal.move_pct:+.2f}%, "
                f"Price: ${position.entry_price:.6f} → ${signal.current_price:.6f}"
            )
            closed.append(self.ledger.close(position, signal.current_price))

        if closed:
            logger.info(f"Closed {len(closed)} position(s) on exit rules")
        return closed

"""Shared exception types for core trading logic."""

from typing import Optional


class CriticalDataUnavailable(RuntimeError):
    """Raised when required market data cannot be fetched (fatal to the run)."""

    def __init__(self, source: str, original: Optional[Exception] = None):
        super().__init__(source)
        self.source = source
        self.original = original


class MarketDataError(RuntimeError):
    """Raised by the market data client on transport, auth or API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PositionNotFoundError(KeyError):
    """Raised when closing a position whose address has no open position."""

    def __init__(self, address: str):
        super().__init__(address)
        self.address = address

    def __str__(self) -> str:
        return f"No open position for address {self.address}"


class CycleCancelled(Exception):
    """Raised at a suspension point once the cancellation signal is observed."""

"""Test helpers for voltrader test suite"""

from tests.helpers.market_stubs import (
    StubMarketData,
    bearish_sample,
    bullish_sample,
    make_record,
    make_sample,
    make_universe,
)

__all__ = [
    "StubMarketData",
    "bearish_sample",
    "bullish_sample",
    "make_record",
    "make_sample",
    "make_universe",
]

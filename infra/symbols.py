"""Currency identifier parsing and display utilities.

Market data identifiers are composite strings such as
`bid:solana:XLnpFRQ3rSWupCRjuQfx74mgVoT3ezVJKE1CogRZxhH` (prefix, network,
address) or `eth:0xabc...` (prefix, address on the default chain). Positions
are keyed by the address part, so every module parses identifiers through
this single helper.
"""

from __future__ import annotations

from typing import Any, NamedTuple

DEFAULT_NETWORK = "ethereum"
UNKNOWN_NETWORK = "unknown"
DELIMITER = ":"


class CurrencyRef(NamedTuple):
    network: str
    address: str


def parse_currency_id(identifier: Any) -> CurrencyRef:
    """Split a composite identifier into (network, address).

    Three parts -> (parts[1], parts[2]); two parts -> (default chain, parts[1]);
    any other shape -> ("unknown", identifier). Never raises.
    """

    if identifier is None:
        return CurrencyRef(UNKNOWN_NETWORK, "")
    text = str(identifier)
    parts = text.split(DELIMITER)

    if len(parts) == 3:
        return CurrencyRef(parts[1], parts[2])
    if len(parts) == 2:
        return CurrencyRef(DEFAULT_NETWORK, parts[1])
    return CurrencyRef(UNKNOWN_NETWORK, text)


def short_address(address: str, *, head: int = 10, tail: int = 6) -> str:
    """Abbreviate a long address as `HEAD...TAIL`."""

    if len(address) <= head + tail:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def display_name(identifier: Any) -> str:
    """Human-readable `network/ADDR...TAIL` label for messages."""

    network, address = parse_currency_id(identifier)
    return f"{network}/{short_address(address)}"


__all__ = [
    "DEFAULT_NETWORK",
    "UNKNOWN_NETWORK",
    "CurrencyRef",
    "parse_currency_id",
    "short_address",
    "display_name",
]

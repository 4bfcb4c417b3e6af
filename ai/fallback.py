"""
Deterministic fallback decision rule.

Used whenever the reasoning service is unavailable, returns something
unusable, or omits an asset. Pure function of the metric record.
"""

from .schemas import Decision, MetricRecord

NO_DATA_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.6


def fallback_decision(identifier: str, record: MetricRecord) -> Decision:
    """
    Evaluate the latest interval of a record.

    Rules (latest sample):
        close > sma and close > open   -> open long
        close <= sma and close <= open -> open short
        otherwise                      -> hold

    sma falls back to the estimate, then to close, when absent.

    Args:
        identifier: Asset identifier the decision is for
        record: Metric record (may have no samples)

    Returns:
        Decision with source="fallback"
    """
    latest = record.latest if record is not None else None

    if latest is None:
        return Decision(
            identifier=identifier,
            action="hold",
            position_type=None,
            confidence=NO_DATA_CONFIDENCE,
            reasoning="No trade metrics available",
            reference_price=0.0,
            source="fallback",
        )

    if latest.close is None:
        return Decision(
            identifier=identifier,
            action="hold",
            position_type=None,
            confidence=NO_DATA_CONFIDENCE,
            reasoning="Insufficient market data",
            reference_price=0.0,
            source="fallback",
        )

    close = float(latest.close)
    open_ = float(latest.open) if latest.open is not None else close
    estimate = float(latest.estimate) if latest.estimate is not None else close
    sma = float(latest.weighted_sma) if latest.weighted_sma is not None else estimate

    above_sma = close > sma
    bullish = close > open_

    if above_sma and bullish:
        action, position_type = "open", "long"
    elif not above_sma and not bullish:
        action, position_type = "open", "short"
    else:
        action, position_type = "hold", None

    return Decision(
        identifier=identifier,
        action=action,
        position_type=position_type,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=(
            f"Fallback: Price {'above' if above_sma else 'below'} SMA "
            f"with {'bullish' if bullish else 'bearish'} candle"
        ),
        reference_price=estimate,
        source="fallback",
    )

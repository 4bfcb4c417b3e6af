"""
Risk profile mappings.

Maps the operator-selected risk tag to concrete sizing and exit parameters.
The volatility threshold is strategy guidance for the reasoning service,
it is not enforced by the resolver or the ledger.
"""

from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_PROFILE = "low"


@dataclass(frozen=True)
class RiskProfile:
    """Immutable sizing and exit parameters for one risk tag."""
    name: str
    max_position_fraction: float    # Fraction of total capital per position
    volatility_threshold: float     # Low excludes above, high requires above
    stop_loss_multiplier: float     # Price ratio vs entry that forces a close (<1)
    take_profit_multiplier: float   # Price ratio vs entry that forces a close (>1)
    description: str = ""


RISK_PROFILE: Dict[str, RiskProfile] = {
    "low": RiskProfile(
        name="low",
        max_position_fraction=0.1,       # 10% of capital per position
        volatility_threshold=0.02,
        stop_loss_multiplier=0.95,       # 5% stop loss
        take_profit_multiplier=1.05,     # 5% take profit
        description="Low Risk, Low Returns",
    ),
    "high": RiskProfile(
        name="high",
        max_position_fraction=0.3,       # 30% of capital per position
        volatility_threshold=0.05,
        stop_loss_multiplier=0.90,       # 10% stop loss
        take_profit_multiplier=1.15,     # 15% take profit
        description="High Risk, High Returns",
    ),
}

# Interactive menu answers
_MENU_CHOICES: Dict[str, str] = {
    "1": "high",
    "2": "low",
}


def normalize_risk_tag(raw: Optional[str]) -> str:
    """
    Map a menu answer or tag to a known risk tag.

    Args:
        raw: "1", "2", "high", "low" (any case); anything else is unknown

    Returns:
        "high" or "low" (unknown input resolves to the safe default)
    """
    if raw is None:
        return DEFAULT_PROFILE
    choice = str(raw).strip().lower()
    choice = _MENU_CHOICES.get(choice, choice)
    return choice if choice in RISK_PROFILE else DEFAULT_PROFILE


def get_risk_profile(tag: Optional[str]) -> RiskProfile:
    """
    Get risk profile for a given tag.

    Args:
        tag: "low" or "high"; unknown or missing resolves to "low"

    Returns:
        RiskProfile
    """
    if not tag:
        return RISK_PROFILE[DEFAULT_PROFILE]
    return RISK_PROFILE.get(str(tag).strip().lower(), RISK_PROFILE[DEFAULT_PROFILE])

"""Risk-profile weight templates.

Each profile row sums to 1.0 when every strategy type is offered. Rows are
filtered to the types the backend actually offers, so the result usually
needs ``normalize`` before it can be used as a strategy split.
"""

from typing import Dict, Iterable

from ..models import RiskProfile
from .normalizer import normalize

WEIGHT_TEMPLATES: Dict[RiskProfile, Dict[str, float]] = {
    RiskProfile.CONSERVATIVE: {
        "grid": 0.35,
        "dca": 0.35,
        "martingale": 0.0,
        "trend": 0.10,
        "mean_reversion": 0.15,
        "breakout": 0.0,
        "momentum": 0.0,
        "combo": 0.05,
    },
    RiskProfile.BALANCED: {
        "grid": 0.25,
        "dca": 0.20,
        "martingale": 0.05,
        "trend": 0.15,
        "mean_reversion": 0.10,
        "breakout": 0.10,
        "momentum": 0.10,
        "combo": 0.05,
    },
    RiskProfile.AGGRESSIVE: {
        "grid": 0.15,
        "dca": 0.10,
        "martingale": 0.15,
        "trend": 0.20,
        "mean_reversion": 0.05,
        "breakout": 0.15,
        "momentum": 0.15,
        "combo": 0.05,
    },
}


def base_weights(profile, available_types: Iterable[str]) -> Dict[str, float]:
    """Look up the template row for ``profile`` restricted to ``available_types``.

    Args:
        profile: RiskProfile or profile name; unknown values mean BALANCED.
        available_types: Strategy types offered by the backend.

    Returns:
        Mapping of every available type to its (un-normalized) base weight.
        Types missing from the template get 0.
    """
    row = WEIGHT_TEMPLATES[RiskProfile.parse(profile)]
    return {
        strategy_type: row.get(strategy_type, 0.0)
        for strategy_type in dict.fromkeys(available_types)
    }


def template_split(profile, available_types: Iterable[str]) -> Dict[str, float]:
    """Normalized template weights, ready to apply to a symbol."""
    return normalize(base_weights(profile, available_types))


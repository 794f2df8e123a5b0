"""Weight normalization.

Every place that turns candidate weights into a final split goes through
``normalize``: AI recommendations, manually entered weights and the
equal-weight fallback.
"""

import math
from typing import Dict, Hashable, Iterable, Mapping, TypeVar

K = TypeVar("K", bound=Hashable)

# Absolute tolerance on a [0, 1]-scaled weight sum.
WEIGHT_SUM_EPSILON = 0.001

# Float slack so that boundary sums such as 0.999 still compare inside.
_FLOAT_SLACK = 1e-9


def _clean(value: float) -> float:
    """Coerce a candidate weight to a finite non-negative float."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def equal_weights(keys: Iterable[K]) -> Dict[K, float]:
    """Uniform distribution over ``keys`` (each gets 1/n)."""
    keys = list(dict.fromkeys(keys))
    if not keys:
        return {}
    share = 1.0 / len(keys)
    return {key: share for key in keys}


def normalize(weights: Mapping[K, float]) -> Dict[K, float]:
    """Rescale weights so they sum to 1.0, preserving proportions.

    If the weights sum to zero the result is uniform across every key in
    the input. Negative or non-finite inputs count as zero.

    Args:
        weights: Mapping of key to candidate weight.

    Returns:
        New mapping with the same keys summing to 1.0 (empty for empty input).
    """
    cleaned = {key: _clean(value) for key, value in weights.items()}
    total = math.fsum(cleaned.values())

    if total <= 0:
        return equal_weights(cleaned.keys())

    return {key: value / total for key, value in cleaned.items()}


def from_percentages(percentages: Mapping[K, float]) -> Dict[K, float]:
    """Normalize percentage-like numbers (e.g. ``{"BTC": 70, "ETH": 30}``).

    Percentages are not assumed to sum to 100; they are treated as relative
    magnitudes.
    """
    return normalize(percentages)


def weight_sum(weights: Iterable[float]) -> float:
    return math.fsum(weights)


def sums_to_one(total: float, epsilon: float = WEIGHT_SUM_EPSILON) -> bool:
    """True when ``total`` is within ``epsilon`` of 1.0 (boundary inclusive)."""
    return abs(total - 1.0) <= epsilon + _FLOAT_SLACK

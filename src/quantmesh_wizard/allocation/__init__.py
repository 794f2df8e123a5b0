"""Allocation engine: weight templates, normalization, tree and validation."""

from .normalizer import (
    WEIGHT_SUM_EPSILON,
    equal_weights,
    from_percentages,
    normalize,
    sums_to_one,
)
from .templates import WEIGHT_TEMPLATES, base_weights, template_split
from .tree import AggregatedSymbol, AllocationTree
from .validator import (
    ALL_ZERO_ALLOCATION,
    ALLOCATION_EXCEEDS_TOTAL,
    CAPITAL_TOTAL_NOT_SET,
    NO_ALLOCATION_ANYWHERE,
    WEIGHTS_MUST_SUM_TO_100,
    AllocationValidator,
    ValidationResult,
    validate_withdrawal_policy,
)

__all__ = [
    # Normalization
    "WEIGHT_SUM_EPSILON",
    "equal_weights",
    "from_percentages",
    "normalize",
    "sums_to_one",
    # Templates
    "WEIGHT_TEMPLATES",
    "base_weights",
    "template_split",
    # Tree
    "AggregatedSymbol",
    "AllocationTree",
    # Validation
    "AllocationValidator",
    "ValidationResult",
    "validate_withdrawal_policy",
    "CAPITAL_TOTAL_NOT_SET",
    "ALLOCATION_EXCEEDS_TOTAL",
    "ALL_ZERO_ALLOCATION",
    "NO_ALLOCATION_ANYWHERE",
    "WEIGHTS_MUST_SUM_TO_100",
]

"""Allocation validation.

Checks run in a fixed order and the first failure wins, so the operator
is shown one problem at a time:

1. capital total set for every exchange with a configured symbol
2. allocation within the exchange total
3. not every symbol of an exchange at zero
4. something allocated somewhere
5. strategy weights sum to 100% for every funded symbol

Checks 1-4 gate the asset allocation step, check 5 the strategy split step.
"""

import logging
import math
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from ..models import ExchangeId, WithdrawDestination, WithdrawalMode, WithdrawalPolicy
from .normalizer import WEIGHT_SUM_EPSILON, sums_to_one
from .tree import AllocationTree

logger = logging.getLogger(__name__)

CAPITAL_TOTAL_NOT_SET = "capital total not set"
ALLOCATION_EXCEEDS_TOTAL = "allocation exceeds total"
ALL_ZERO_ALLOCATION = "all-zero allocation"
NO_ALLOCATION_ANYWHERE = "no allocation anywhere"
WEIGHTS_MUST_SUM_TO_100 = "weights must sum to 100%"

WITHDRAWAL_MODE_NOT_SELECTED = "withdrawal mode not selected"
WITHDRAW_RATIO_OUT_OF_RANGE = "withdraw ratio out of range"
TRIGGER_THRESHOLD_OUT_OF_RANGE = "trigger threshold out of range"
WALLET_ADDRESS_REQUIRED = "wallet address required"
WITHDRAW_AMOUNT_BOUNDS = "withdraw amount bounds invalid"

# Allocated capital may exceed the total by float noise only (relative).
_OVERAGE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation run: ok, or the first failure found."""
    ok: bool
    reason: Optional[str] = None
    exchange: Optional[ExchangeId] = None
    symbol: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failed(
        cls,
        reason: str,
        exchange: Optional[ExchangeId] = None,
        symbol: Optional[str] = None,
        **details: Any,
    ) -> "ValidationResult":
        return cls(ok=False, reason=reason, exchange=exchange, symbol=symbol, details=details)

    @property
    def message(self) -> str:
        """Human-readable message for display."""
        if self.ok:
            return "ok"
        where = ""
        if self.exchange and self.symbol:
            where = f" ({self.exchange} {self.symbol})"
        elif self.exchange:
            where = f" ({self.exchange})"
        if self.reason == ALLOCATION_EXCEEDS_TOTAL:
            return f"{self.reason}{where}: over by {self.details['overage']:.2f}"
        if self.reason == WEIGHTS_MUST_SUM_TO_100:
            return f"{self.reason}{where}: currently {self.details['percentage']}%"
        return f"{self.reason}{where}"

    def __bool__(self) -> bool:
        return self.ok


Check = Callable[[AllocationTree], ValidationResult]


def check_capital_total_set(tree: AllocationTree) -> ValidationResult:
    for exchange in tree.exchanges():
        if tree.configured_symbols_for_exchange(exchange) and tree.total_capital(exchange) <= 0:
            return ValidationResult.failed(CAPITAL_TOTAL_NOT_SET, exchange)
    return ValidationResult.success()


def check_allocation_within_total(tree: AllocationTree) -> ValidationResult:
    for exchange in tree.exchanges():
        allocated = tree.total_allocated_for_exchange(exchange)
        total = tree.total_capital(exchange)
        overage = allocated - total
        if overage > _OVERAGE_TOLERANCE * max(1.0, total):
            return ValidationResult.failed(
                ALLOCATION_EXCEEDS_TOTAL,
                exchange,
                overage=overage,
                allocated=allocated,
                total_capital=total,
            )
    return ValidationResult.success()


def check_not_all_zero(tree: AllocationTree) -> ValidationResult:
    for exchange in tree.exchanges():
        if tree.symbols(exchange) and not tree.configured_symbols_for_exchange(exchange):
            return ValidationResult.failed(ALL_ZERO_ALLOCATION, exchange)
    return ValidationResult.success()


def check_any_allocation(tree: AllocationTree) -> ValidationResult:
    if any(tree.configured_symbols_for_exchange(ex) for ex in tree.exchanges()):
        return ValidationResult.success()
    return ValidationResult.failed(NO_ALLOCATION_ANYWHERE)


def _strategy_weight_failures(tree: AllocationTree, epsilon: float) -> Iterator[ValidationResult]:
    for exchange in tree.exchanges():
        for symbol in tree.configured_symbols_for_exchange(exchange):
            total = tree.strategy_weight_sum(exchange, symbol)
            if not sums_to_one(total, epsilon):
                yield ValidationResult.failed(
                    WEIGHTS_MUST_SUM_TO_100,
                    exchange,
                    symbol,
                    percentage=math.floor(total * 100 + 0.5),
                    weight_sum=total,
                )


def check_strategy_weights(
    tree: AllocationTree, epsilon: float = WEIGHT_SUM_EPSILON
) -> ValidationResult:
    return next(_strategy_weight_failures(tree, epsilon), ValidationResult.success())


ASSET_ALLOCATION_CHECKS: List[Check] = [
    check_capital_total_set,
    check_allocation_within_total,
    check_not_all_zero,
    check_any_allocation,
]


class AllocationValidator:
    """Runs allocation checks in order and reports the first failure."""

    def __init__(self, epsilon: float = WEIGHT_SUM_EPSILON):
        self.epsilon = epsilon
        self.asset_checks: List[Check] = list(ASSET_ALLOCATION_CHECKS)
        self.strategy_checks: List[Check] = [partial(check_strategy_weights, epsilon=epsilon)]

    def _run(self, tree: AllocationTree, checks: Iterable[Check]) -> ValidationResult:
        for check in checks:
            result = check(tree)
            if not result.ok:
                logger.warning(f"Validation failed: {result.message}")
                return result
        return ValidationResult.success()

    def validate_asset_allocation(self, tree: AllocationTree) -> ValidationResult:
        """Checks 1-4, run when leaving the asset allocation step."""
        return self._run(tree, self.asset_checks)

    def validate_strategy_split(self, tree: AllocationTree) -> ValidationResult:
        """Check 5, run when leaving the strategy split step."""
        return self._run(tree, self.strategy_checks)

    def validate(self, tree: AllocationTree, include_strategy_split: bool = True) -> ValidationResult:
        """Run every check in order (checks 1-5, or 1-4)."""
        checks = list(self.asset_checks)
        if include_strategy_split:
            checks += self.strategy_checks
        return self._run(tree, checks)

    def failing_pairs(self, tree: AllocationTree) -> List[ValidationResult]:
        """Every funded pair whose weights do not sum to 100%.

        ``validate`` stops at the first one; this lists all of them so the
        strategy step can highlight every offending symbol.
        """
        return list(_strategy_weight_failures(tree, self.epsilon))


def validate_withdrawal_policy(policy: WithdrawalPolicy) -> ValidationResult:
    """Validate profit-taking rules independently of the allocation."""
    if not policy.enabled:
        return ValidationResult.success()
    if not policy.modes:
        return ValidationResult.failed(WITHDRAWAL_MODE_NOT_SELECTED)
    if WithdrawalMode.PROFIT_RATIO in policy.modes and not 0 < policy.withdraw_ratio <= 1:
        return ValidationResult.failed(WITHDRAW_RATIO_OUT_OF_RANGE, value=policy.withdraw_ratio)
    if WithdrawalMode.THRESHOLD in policy.modes and not 0 < policy.trigger_threshold <= 1:
        return ValidationResult.failed(TRIGGER_THRESHOLD_OUT_OF_RANGE, value=policy.trigger_threshold)
    if policy.destination == WithdrawDestination.WALLET and not (policy.wallet_address or "").strip():
        return ValidationResult.failed(WALLET_ADDRESS_REQUIRED)
    if policy.min_withdraw_amount < 0:
        return ValidationResult.failed(WITHDRAW_AMOUNT_BOUNDS, min=policy.min_withdraw_amount)
    if policy.max_withdraw_amount is not None and policy.max_withdraw_amount < policy.min_withdraw_amount:
        return ValidationResult.failed(
            WITHDRAW_AMOUNT_BOUNDS,
            min=policy.min_withdraw_amount,
            max=policy.max_withdraw_amount,
        )
    return ValidationResult.success()

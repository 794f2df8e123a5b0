"""Tests for allocation and withdrawal policy validation.

**Feature: config-wizard, Property 4: Overage is reported exactly**
**Feature: config-wizard, Property 5: Strategy weights sum to 100% within 0.001**
"""

import pytest
from hypothesis import given, settings, strategies as st

from quantmesh_wizard.allocation import AllocationTree, AllocationValidator
from quantmesh_wizard.allocation.validator import (
    ALL_ZERO_ALLOCATION,
    ALLOCATION_EXCEEDS_TOTAL,
    CAPITAL_TOTAL_NOT_SET,
    NO_ALLOCATION_ANYWHERE,
    WALLET_ADDRESS_REQUIRED,
    WEIGHTS_MUST_SUM_TO_100,
    WITHDRAW_AMOUNT_BOUNDS,
    WITHDRAW_RATIO_OUT_OF_RANGE,
    WITHDRAWAL_MODE_NOT_SELECTED,
    TRIGGER_THRESHOLD_OUT_OF_RANGE,
    ValidationResult,
    validate_withdrawal_policy,
)
from quantmesh_wizard.models import WithdrawDestination, WithdrawalMode, WithdrawalPolicy


def single_symbol_tree(total=1000, capital=500, weights=None):
    tree = AllocationTree()
    tree.add_exchange("binance", total_capital=total)
    tree.add_exchange_symbol("binance", "BTCUSDT", capital)
    if weights:
        tree.replace_strategy_split("binance", "BTCUSDT", weights)
    return tree


class TestAssetAllocationChecks:

    def test_capital_total_not_set(self):
        tree = single_symbol_tree(total=0, capital=100)

        result = AllocationValidator().validate_asset_allocation(tree)

        assert result.reason == CAPITAL_TOTAL_NOT_SET
        assert result.exchange == "binance"

    def test_overage_reported_exactly(self):
        """Property 4: 1001 allocated against 1000 fails with overage 1."""
        tree = AllocationTree()
        tree.add_exchange("binance", total_capital=1000)
        tree.add_exchange_symbol("binance", "BTCUSDT", 600)
        tree.add_exchange_symbol("binance", "ETHUSDT", 401)

        result = AllocationValidator().validate_asset_allocation(tree)

        assert not result.ok
        assert result.reason == ALLOCATION_EXCEEDS_TOTAL
        assert result.details["overage"] == pytest.approx(1.0)
        assert result.message == "allocation exceeds total (binance): over by 1.00"

    @given(
        total=st.floats(min_value=1, max_value=1e6, allow_nan=False),
        extra=st.floats(min_value=0.01, max_value=1e4, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_any_overage_fails(self, total, extra):
        tree = single_symbol_tree(total=total, capital=total + extra)

        result = AllocationValidator().validate_asset_allocation(tree)

        assert result.reason == ALLOCATION_EXCEEDS_TOTAL
        assert result.details["overage"] == pytest.approx(extra, rel=1e-6)

    def test_allocation_equal_to_total_passes(self, scenario_tree):
        assert AllocationValidator().validate_asset_allocation(scenario_tree).ok

    def test_all_zero_allocation(self):
        tree = single_symbol_tree(total=1000, capital=0)
        tree.add_exchange("bybit", total_capital=500)
        tree.add_exchange_symbol("bybit", "ETHUSDT", 500)

        result = AllocationValidator().validate_asset_allocation(tree)

        assert result.reason == ALL_ZERO_ALLOCATION
        assert result.exchange == "binance"

    def test_no_allocation_anywhere(self):
        tree = AllocationTree()
        tree.add_exchange("binance", total_capital=1000)

        result = AllocationValidator().validate_asset_allocation(tree)

        assert result.reason == NO_ALLOCATION_ANYWHERE

    def test_first_failure_wins(self):
        """Check 1 is reported before check 2 when both fail."""
        tree = single_symbol_tree(total=1000, capital=2000)
        tree.add_exchange("bybit", total_capital=0)
        tree.add_exchange_symbol("bybit", "ETHUSDT", 10)

        result = AllocationValidator().validate(tree)

        assert result.reason == CAPITAL_TOTAL_NOT_SET
        assert result.exchange == "bybit"


class TestStrategyWeightCheck:
    """Tests for Property 5: Strategy weights sum to 100% within 0.001."""

    @pytest.mark.parametrize("dca", [0.399, 0.401, 0.4])
    def test_sums_within_epsilon_pass(self, dca):
        tree = single_symbol_tree(weights={"grid": 0.6, "dca": dca})

        assert AllocationValidator().validate_strategy_split(tree).ok

    @pytest.mark.parametrize("dca", [0.39, 0.41])
    def test_sums_outside_epsilon_fail(self, dca):
        tree = single_symbol_tree(weights={"grid": 0.6, "dca": dca})

        result = AllocationValidator().validate_strategy_split(tree)

        assert result.reason == WEIGHTS_MUST_SUM_TO_100
        assert result.symbol == "BTCUSDT"

    def test_missing_split_reports_current_percentage(self):
        tree = single_symbol_tree(weights={"grid": 0.5})

        result = AllocationValidator().validate_strategy_split(tree)

        assert result.details["percentage"] == 50
        assert result.message == "weights must sum to 100% (binance BTCUSDT): currently 50%"

    @pytest.mark.parametrize("grid,percentage", [(0.125, 13), (0.375, 38), (0.625, 63)])
    def test_percentage_rounds_half_up(self, grid, percentage):
        tree = single_symbol_tree(weights={"grid": grid})

        result = AllocationValidator().validate_strategy_split(tree)

        assert result.details["percentage"] == percentage

    def test_unfunded_symbols_are_not_checked(self):
        tree = single_symbol_tree(weights={"grid": 1.0})
        tree.add_exchange_symbol("binance", "ETHUSDT", 0)

        assert AllocationValidator().validate_strategy_split(tree).ok

    def test_failing_pairs_lists_every_symbol(self, scenario_tree):
        failures = AllocationValidator().failing_pairs(scenario_tree)

        assert [f.symbol for f in failures] == ["BTCUSDT", "ETHUSDT"]

    def test_custom_epsilon(self):
        tree = single_symbol_tree(weights={"grid": 0.6, "dca": 0.39})

        assert AllocationValidator(epsilon=0.02).validate_strategy_split(tree).ok


class TestValidationResult:

    def test_result_truthiness(self):
        assert ValidationResult.success()
        assert not ValidationResult.failed(NO_ALLOCATION_ANYWHERE)

    def test_plain_message(self):
        assert ValidationResult.failed(NO_ALLOCATION_ANYWHERE).message == "no allocation anywhere"


class TestWithdrawalPolicy:

    def test_default_policy_is_valid(self):
        assert validate_withdrawal_policy(WithdrawalPolicy()).ok

    def test_disabled_policy_is_always_valid(self):
        policy = WithdrawalPolicy(enabled=False, modes=[], withdraw_ratio=5)

        assert validate_withdrawal_policy(policy).ok

    def test_mode_required(self):
        result = validate_withdrawal_policy(WithdrawalPolicy(modes=[]))

        assert result.reason == WITHDRAWAL_MODE_NOT_SELECTED

    @pytest.mark.parametrize("ratio", [0, -0.1, 1.5])
    def test_ratio_bounds(self, ratio):
        result = validate_withdrawal_policy(WithdrawalPolicy(withdraw_ratio=ratio))

        assert result.reason == WITHDRAW_RATIO_OUT_OF_RANGE

    def test_threshold_only_checked_in_threshold_mode(self):
        policy = WithdrawalPolicy(modes=[WithdrawalMode.PROFIT_RATIO], trigger_threshold=3)
        assert validate_withdrawal_policy(policy).ok

        policy = WithdrawalPolicy(modes=[WithdrawalMode.THRESHOLD], trigger_threshold=3)
        assert validate_withdrawal_policy(policy).reason == TRIGGER_THRESHOLD_OUT_OF_RANGE

    def test_wallet_destination_needs_address(self):
        policy = WithdrawalPolicy(destination=WithdrawDestination.WALLET, wallet_address="  ")

        assert validate_withdrawal_policy(policy).reason == WALLET_ADDRESS_REQUIRED

    def test_max_below_min(self):
        policy = WithdrawalPolicy(min_withdraw_amount=100, max_withdraw_amount=50)

        assert validate_withdrawal_policy(policy).reason == WITHDRAW_AMOUNT_BOUNDS

"""Submission payload built from a validated allocation tree."""

from typing import Any, Dict

from ..allocation.tree import AllocationTree
from ..models import CapitalMode, RiskProfile, WithdrawalPolicy, pair_key


def build_payload(
    tree: AllocationTree,
    withdrawal_policy: WithdrawalPolicy,
    risk_profile: RiskProfile = RiskProfile.BALANCED,
    capital_mode: CapitalMode = CapitalMode.TOTAL,
) -> Dict[str, Any]:
    """Serialize the tree and withdrawal policy for the submission sink.

    Only funded symbols (capital > 0) are included. ``symbol_allocations``
    carries each symbol's share of its exchange total in percent.

    Returns:
        JSON-serializable dict.
    """
    exchanges: Dict[str, Any] = {}
    strategy_splits: Dict[str, Any] = {}
    symbol_allocations: Dict[str, float] = {}

    for exchange in tree.exchanges():
        total = tree.total_capital(exchange)
        symbols = {}
        for symbol in tree.configured_symbols_for_exchange(exchange):
            capital = tree.symbol_capital(exchange, symbol)
            key = pair_key(exchange, symbol)
            symbols[symbol] = capital
            symbol_allocations[key] = round(capital / total * 100, 2) if total > 0 else 0.0
            strategy_splits[key] = [
                split.to_dict()
                for split in tree.strategy_split(exchange, symbol)
                if split.weight > 0
            ]
        if symbols:
            exchanges[exchange] = {"total_capital": total, "symbols": symbols}

    return {
        "risk_profile": risk_profile.value,
        "capital_mode": capital_mode.value,
        "exchanges": exchanges,
        "strategy_splits": strategy_splits,
        "symbol_allocations": symbol_allocations,
        "withdrawal_policy": withdrawal_policy.to_dict(),
    }

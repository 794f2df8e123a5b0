"""Allocation tree: exchange -> symbol -> {capital, strategy split}.

The tree is the aggregate root of a wizard session. All mutations are
synchronous and never raise; invalid calls (unknown exchange or symbol,
negative capital, out-of-range weight) are ignored.
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from ..models import (
    ExchangeCapital,
    ExchangeId,
    StrategySplit,
    SymbolAllocation,
    pair_key,
)
from .normalizer import WEIGHT_SUM_EPSILON, normalize, sums_to_one, weight_sum

logger = logging.getLogger(__name__)


@dataclass
class AggregatedSymbol:
    """One symbol's capital summed across every exchange that trades it."""
    symbol: str
    capital: float
    weight: float
    exchanges: List[ExchangeId] = field(default_factory=list)


@dataclass
class _ExchangeNode:
    capital: ExchangeCapital
    symbols: Dict[str, SymbolAllocation] = field(default_factory=dict)
    # pair key -> strategy type -> split, in insertion order
    splits: Dict[str, Dict[str, StrategySplit]] = field(default_factory=dict)


def _valid_amount(value) -> bool:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value >= 0


def _valid_weight(value) -> bool:
    return _valid_amount(value) and float(value) <= 1.0


def _floor_cents(amount: float) -> float:
    return math.floor(amount * 100) / 100


class AllocationTree:
    """Nested capital allocation for one wizard session."""

    def __init__(self):
        self._exchanges: Dict[ExchangeId, _ExchangeNode] = {}

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------

    def add_exchange(
        self,
        exchange: ExchangeId,
        total_capital: Optional[float] = None,
        available_balance: Optional[float] = None,
    ) -> None:
        """Register an exchange, or update the given fields if present."""
        node = self._exchanges.get(exchange)
        if node is None:
            node = _ExchangeNode(capital=ExchangeCapital(exchange_id=exchange))
            self._exchanges[exchange] = node
        if available_balance is not None and _valid_amount(available_balance):
            node.capital.available_balance = float(available_balance)
        if total_capital is not None:
            self.set_total_capital(exchange, total_capital)

    def remove_exchange(self, exchange: ExchangeId) -> None:
        self._exchanges.pop(exchange, None)

    def has_exchange(self, exchange: ExchangeId) -> bool:
        return exchange in self._exchanges

    def exchanges(self) -> List[ExchangeId]:
        return list(self._exchanges)

    def set_total_capital(self, exchange: ExchangeId, amount: float) -> None:
        node = self._exchanges.get(exchange)
        if node is None or not _valid_amount(amount):
            logger.debug(f"Ignoring total capital {amount!r} for {exchange}")
            return
        node.capital.total_capital = float(amount)

    def total_capital(self, exchange: ExchangeId) -> float:
        node = self._exchanges.get(exchange)
        return node.capital.total_capital if node else 0.0

    def exchange_capital(self, exchange: ExchangeId) -> Optional[ExchangeCapital]:
        node = self._exchanges.get(exchange)
        return copy.copy(node.capital) if node else None

    # ------------------------------------------------------------------
    # Symbols
    # ------------------------------------------------------------------

    def add_exchange_symbol(self, exchange: ExchangeId, symbol: str, capital: float = 0.0) -> None:
        """Add a symbol to an exchange. Re-adding overwrites its capital."""
        node = self._exchanges.get(exchange)
        if node is None or not symbol or not _valid_amount(capital):
            logger.debug(f"Ignoring add of {symbol!r} to {exchange}")
            return
        node.symbols[symbol] = SymbolAllocation(symbol=symbol, capital=float(capital))

    def set_symbol_capital(self, exchange: ExchangeId, symbol: str, capital: float) -> None:
        node = self._exchanges.get(exchange)
        if node is None or symbol not in node.symbols or not _valid_amount(capital):
            logger.debug(f"Ignoring capital {capital!r} for {pair_key(exchange, symbol)}")
            return
        node.symbols[symbol].capital = float(capital)

    def remove_symbol(self, exchange: ExchangeId, symbol: str) -> None:
        """Remove a symbol and its strategy split."""
        node = self._exchanges.get(exchange)
        if node is None:
            return
        node.symbols.pop(symbol, None)
        node.splits.pop(pair_key(exchange, symbol), None)

    def has_symbol(self, exchange: ExchangeId, symbol: str) -> bool:
        node = self._exchanges.get(exchange)
        return node is not None and symbol in node.symbols

    def symbols(self, exchange: ExchangeId) -> List[str]:
        node = self._exchanges.get(exchange)
        return list(node.symbols) if node else []

    def symbol_capital(self, exchange: ExchangeId, symbol: str) -> float:
        node = self._exchanges.get(exchange)
        if node is None or symbol not in node.symbols:
            return 0.0
        return node.symbols[symbol].capital

    def symbol_allocations(self, exchange: ExchangeId) -> List[SymbolAllocation]:
        node = self._exchanges.get(exchange)
        if node is None:
            return []
        return [copy.copy(alloc) for alloc in node.symbols.values()]

    def total_allocated_for_exchange(self, exchange: ExchangeId) -> float:
        node = self._exchanges.get(exchange)
        if node is None:
            return 0.0
        return math.fsum(alloc.capital for alloc in node.symbols.values())

    def configured_symbols_for_exchange(self, exchange: ExchangeId) -> List[str]:
        """Symbols with capital > 0. Strategy completeness is a separate query."""
        node = self._exchanges.get(exchange)
        if node is None:
            return []
        return [s for s, alloc in node.symbols.items() if alloc.capital > 0]

    def distribute_capital(
        self,
        exchange: ExchangeId,
        weights: Optional[Mapping[str, float]] = None,
        symbols: Optional[Iterable[str]] = None,
    ) -> Dict[str, float]:
        """Split the exchange's total capital across its symbols.

        Weights are restricted to the target symbols and normalized; without
        weights every target symbol gets an equal share. When ``symbols``
        names a subset, only the capital not held by the other symbols is
        distributed. Amounts are floored to cents so the sum never exceeds
        the total.

        Returns:
            The normalized shares that were applied (empty if nothing was).
        """
        node = self._exchanges.get(exchange)
        if node is None:
            return {}
        targets = [s for s in (symbols if symbols is not None else node.symbols) if s in node.symbols]
        if not targets:
            return {}
        candidates = {symbol: (weights or {}).get(symbol, 0.0) for symbol in targets}
        shares = normalize(candidates)
        held_elsewhere = math.fsum(
            alloc.capital for symbol, alloc in node.symbols.items() if symbol not in shares
        )
        budget = max(0.0, node.capital.total_capital - held_elsewhere)
        for symbol, share in shares.items():
            node.symbols[symbol].capital = _floor_cents(budget * share)
        return shares

    # ------------------------------------------------------------------
    # Strategy splits
    # ------------------------------------------------------------------

    def set_strategy_weight(
        self, exchange: ExchangeId, symbol: str, strategy_type: str, weight: float
    ) -> None:
        """Upsert one strategy weight for (exchange, symbol, type)."""
        node = self._exchanges.get(exchange)
        if node is None or symbol not in node.symbols or not strategy_type or not _valid_weight(weight):
            logger.debug(
                f"Ignoring weight {weight!r} for {strategy_type} on {pair_key(exchange, symbol)}"
            )
            return
        split = node.splits.setdefault(pair_key(exchange, symbol), {})
        if strategy_type in split:
            split[strategy_type].weight = float(weight)
        else:
            split[strategy_type] = StrategySplit(strategy_type=strategy_type, weight=float(weight))

    def replace_strategy_split(
        self, exchange: ExchangeId, symbol: str, weights: Mapping[str, float]
    ) -> None:
        """Replace a symbol's whole split. Ignored if any weight is out of range."""
        node = self._exchanges.get(exchange)
        if node is None or symbol not in node.symbols:
            return
        if not all(_valid_weight(w) for w in weights.values()):
            logger.debug(f"Ignoring split {dict(weights)!r} for {pair_key(exchange, symbol)}")
            return
        node.splits[pair_key(exchange, symbol)] = {
            strategy_type: StrategySplit(strategy_type=strategy_type, weight=float(weight))
            for strategy_type, weight in weights.items()
        }

    def clear_strategy_split(self, exchange: ExchangeId, symbol: str) -> None:
        node = self._exchanges.get(exchange)
        if node is not None:
            node.splits.pop(pair_key(exchange, symbol), None)

    def strategy_split(self, exchange: ExchangeId, symbol: str) -> List[StrategySplit]:
        node = self._exchanges.get(exchange)
        if node is None:
            return []
        split = node.splits.get(pair_key(exchange, symbol), {})
        return [copy.copy(s) for s in split.values()]

    def strategy_weights(self, exchange: ExchangeId, symbol: str) -> Dict[str, float]:
        return {s.strategy_type: s.weight for s in self.strategy_split(exchange, symbol)}

    def strategy_weight_sum(self, exchange: ExchangeId, symbol: str) -> float:
        return weight_sum(s.weight for s in self.strategy_split(exchange, symbol))

    def is_strategy_split_complete(
        self, exchange: ExchangeId, symbol: str, epsilon: float = WEIGHT_SUM_EPSILON
    ) -> bool:
        """True when the symbol's weights sum to 1.0 within ``epsilon``."""
        return sums_to_one(self.strategy_weight_sum(exchange, symbol), epsilon)

    def strategy_capital(self, exchange: ExchangeId, symbol: str) -> Dict[str, float]:
        """Capital per strategy type (symbol capital x weight)."""
        capital = self.symbol_capital(exchange, symbol)
        return {s.strategy_type: capital * s.weight for s in self.strategy_split(exchange, symbol)}

    # ------------------------------------------------------------------
    # Whole-tree views
    # ------------------------------------------------------------------

    def pairs(self) -> Iterable[tuple]:
        """Yield every (exchange, symbol) pair in insertion order."""
        for exchange, node in self._exchanges.items():
            for symbol in node.symbols:
                yield exchange, symbol

    def grand_total_capital(self) -> float:
        return math.fsum(node.capital.total_capital for node in self._exchanges.values())

    def aggregate_across_all_exchanges(self) -> Dict[str, AggregatedSymbol]:
        """Flatten per-exchange allocations into one cross-exchange view.

        Capitals of a symbol traded on several exchanges are summed; the
        blended weight is summed capital / grand total capital.
        """
        grand_total = self.grand_total_capital()
        result: Dict[str, AggregatedSymbol] = {}
        for exchange, node in self._exchanges.items():
            for symbol, alloc in node.symbols.items():
                entry = result.setdefault(symbol, AggregatedSymbol(symbol=symbol, capital=0.0, weight=0.0))
                entry.capital += alloc.capital
                entry.exchanges.append(exchange)
        for entry in result.values():
            entry.weight = entry.capital / grand_total if grand_total > 0 else 0.0
        return result

    def copy(self) -> "AllocationTree":
        return copy.deepcopy(self)

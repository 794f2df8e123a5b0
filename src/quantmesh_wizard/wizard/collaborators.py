"""Contracts for the services a wizard session talks to.

The session only needs the async methods below; ``BackendClient`` in
``quantmesh_wizard.clients`` implements all of them over HTTP, and tests
use in-memory fakes.
"""

import itertools
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ..models import ExchangeId


class ExchangeSource(Protocol):
    async def list_configured_exchanges(self) -> List[ExchangeId]: ...

    async def list_available_symbols(self, exchange: ExchangeId) -> List[str]: ...


class BalanceSource(Protocol):
    async def get_available_balance(self, exchange: ExchangeId) -> float: ...


class StrategyTypeSource(Protocol):
    async def list_strategy_types(self) -> List[str]: ...


class RecommendationService(Protocol):
    async def recommend(
        self,
        exchange: ExchangeId,
        symbols: List[str],
        risk_profile: str,
        capital_context: Mapping[str, Any],
    ) -> Mapping[str, Any]: ...


class SubmissionSink(Protocol):
    async def submit(self, payload: Mapping[str, Any]) -> Mapping[str, Any]: ...

    async def apply(self, preview: Mapping[str, Any]) -> Mapping[str, Any]: ...


@dataclass
class Notice:
    """Non-blocking message shown when a remote call fell back to defaults."""
    source: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


_request_ids = itertools.count(1)


@dataclass(frozen=True)
class RecommendationRequest:
    """Token tagging an in-flight recommendation with its target keys."""
    request_id: int
    exchange: ExchangeId
    symbols: Tuple[str, ...]
    risk_profile: str

    @classmethod
    def issue(cls, exchange: ExchangeId, symbols: List[str], risk_profile: str) -> "RecommendationRequest":
        return cls(
            request_id=next(_request_ids),
            exchange=exchange,
            symbols=tuple(symbols),
            risk_profile=risk_profile,
        )


@dataclass
class Recommendation:
    """Sanitized AI recommendation.

    ``symbol_weights`` holds raw percentage-like numbers (not normalized);
    ``strategy_hints`` maps symbol -> strategy type -> raw weight.
    """
    symbol_weights: Dict[str, float] = field(default_factory=dict)
    strategy_hints: Dict[str, Dict[str, float]] = field(default_factory=dict)
    explanation: str = ""


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _numeric_mapping(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    result = {}
    for key, value in raw.items():
        number = _number(value)
        if number is not None:
            result[str(key)] = number
    return result


def parse_recommendation(payload: Any) -> Recommendation:
    """Turn an untrusted recommendation payload into a Recommendation.

    Accepts snake_case or camelCase keys and silently drops entries that
    are not numeric.
    """
    if not isinstance(payload, Mapping):
        return Recommendation()

    weights = payload.get("symbol_weights", payload.get("symbolWeights"))
    hints = payload.get("strategy_hints", payload.get("strategyHints"))

    strategy_hints = {}
    if isinstance(hints, Mapping):
        for symbol, split in hints.items():
            cleaned = _numeric_mapping(split)
            if cleaned:
                strategy_hints[str(symbol)] = cleaned

    return Recommendation(
        symbol_weights=_numeric_mapping(weights),
        strategy_hints=strategy_hints,
        explanation=str(payload.get("explanation", "")),
    )

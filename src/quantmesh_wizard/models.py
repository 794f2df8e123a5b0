"""Core data models for the QuantMesh configuration wizard."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Opaque exchange identifier, e.g. "binance".
ExchangeId = str

DEFAULT_STRATEGY_TYPES = ["grid", "dca"]


class RiskProfile(Enum):
    """Risk appetite selecting a weight template row."""
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @classmethod
    def parse(cls, value: Any) -> "RiskProfile":
        """Parse a profile name, falling back to BALANCED for unknown input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.BALANCED


class CapitalMode(Enum):
    """How the operator enters capital: one total or per symbol."""
    TOTAL = "total"
    PER_SYMBOL = "per_symbol"


class WithdrawalMode(Enum):
    """Profit-taking rule kinds."""
    PROFIT_RATIO = "profit_ratio"
    THRESHOLD = "threshold"
    PRINCIPAL_PROTECTION = "principal_protection"


class WithdrawFrequency(Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


class WithdrawDestination(Enum):
    ACCOUNT = "account"
    WALLET = "wallet"


def pair_key(exchange: ExchangeId, symbol: str) -> str:
    """Composite key for an (exchange, symbol) pair."""
    return f"{exchange}:{symbol}"


@dataclass
class SymbolAllocation:
    """Capital assigned to one symbol within one exchange (quote currency)."""
    symbol: str
    capital: float = 0.0


@dataclass
class StrategySplit:
    """Share of a symbol's capital assigned to one strategy type."""
    strategy_type: str
    weight: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"strategy_type": self.strategy_type, "weight": self.weight}


@dataclass
class ExchangeCapital:
    """Capital budget for one exchange.

    ``available_balance`` is an external fact reported by the balance
    source; it seeds ``total_capital`` but is never validated.
    """
    exchange_id: ExchangeId
    total_capital: float = 0.0
    available_balance: Optional[float] = None


@dataclass
class WithdrawalPolicy:
    """Profit-taking rules submitted alongside the allocation."""
    enabled: bool = True
    modes: List[WithdrawalMode] = field(
        default_factory=lambda: [WithdrawalMode.PROFIT_RATIO]
    )
    withdraw_ratio: float = 0.5
    trigger_threshold: float = 0.1
    frequency: WithdrawFrequency = WithdrawFrequency.DAILY
    destination: WithdrawDestination = WithdrawDestination.ACCOUNT
    wallet_address: Optional[str] = None
    min_withdraw_amount: float = 10.0
    max_withdraw_amount: Optional[float] = None
    breakeven_protection: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithdrawalPolicy":
        """Build a policy from a plain mapping (plan files, API payloads)."""
        defaults = cls()
        modes = data.get("modes")
        max_amount = data.get("max_withdraw_amount")
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            modes=[WithdrawalMode(m) for m in modes] if modes is not None else defaults.modes,
            withdraw_ratio=float(data.get("withdraw_ratio", defaults.withdraw_ratio)),
            trigger_threshold=float(data.get("trigger_threshold", defaults.trigger_threshold)),
            frequency=WithdrawFrequency(data.get("frequency", defaults.frequency.value)),
            destination=WithdrawDestination(data.get("destination", defaults.destination.value)),
            wallet_address=data.get("wallet_address"),
            min_withdraw_amount=float(data.get("min_withdraw_amount", defaults.min_withdraw_amount)),
            max_withdraw_amount=float(max_amount) if max_amount is not None else None,
            breakeven_protection=bool(data.get("breakeven_protection", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "modes": [m.value for m in self.modes],
            "withdraw_ratio": self.withdraw_ratio,
            "trigger_threshold": self.trigger_threshold,
            "frequency": self.frequency.value,
            "destination": self.destination.value,
            "wallet_address": self.wallet_address,
            "min_withdraw_amount": self.min_withdraw_amount,
            "max_withdraw_amount": self.max_withdraw_amount,
            "principal_protection": {
                "enabled": WithdrawalMode.PRINCIPAL_PROTECTION in self.modes,
                "breakeven_protection": self.breakeven_protection,
            },
        }

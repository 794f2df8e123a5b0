"""
QuantMesh Wizard - Multi-exchange trading bot configuration wizard

Allocates capital across exchanges, symbols and strategy types, validates
the allocation and submits it to the trading bot.
"""

__version__ = "1.0.0"
__author__ = "QuantMesh Team"

from .models import (
    CapitalMode,
    RiskProfile,
    StrategySplit,
    SymbolAllocation,
    WithdrawalPolicy,
)
from .allocation import AllocationTree, AllocationValidator, ValidationResult
from .wizard import WizardSession, WizardStep

__all__ = [
    "CapitalMode",
    "RiskProfile",
    "StrategySplit",
    "SymbolAllocation",
    "WithdrawalPolicy",
    "AllocationTree",
    "AllocationValidator",
    "ValidationResult",
    "WizardSession",
    "WizardStep",
]

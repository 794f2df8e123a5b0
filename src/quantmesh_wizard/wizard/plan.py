"""Run a wizard session non-interactively from a JSON plan.

A plan mirrors what an operator would enter on each wizard step::

    {
        "risk_profile": "balanced",
        "capital_mode": "total",
        "use_ai": true,
        "exchanges": {
            "binance": {"total_capital": 1000, "symbols": ["BTCUSDT", "ETHUSDT"]},
            "bybit": {"symbols": {"BTCUSDT": 200}}
        },
        "strategy_splits": {"binance:BTCUSDT": {"grid": 0.6, "dca": 0.4}},
        "withdrawal_policy": {"withdraw_ratio": 0.3}
    }

Symbols given as a list are weighted by the AI recommendation (or equal
weights); symbols given as a mapping carry their own capital.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..allocation.normalizer import normalize
from ..models import CapitalMode, WithdrawalPolicy, pair_key
from .session import WizardSession
from .state import TransitionFailure, WizardStep

logger = logging.getLogger(__name__)


class PlanError(Exception):
    """Raised when a plan file cannot be read or is malformed."""
    pass


def load_plan(path: str | Path) -> Dict[str, Any]:
    """Load a plan file.

    Raises:
        PlanError: If the file is missing or not a JSON object.
    """
    path = Path(path)
    try:
        with open(path) as f:
            plan = json.load(f)
    except FileNotFoundError:
        raise PlanError(f"Plan file not found: {path}")
    except json.JSONDecodeError as e:
        raise PlanError(f"Invalid JSON in {path}: {e}")
    if not isinstance(plan, dict):
        raise PlanError(f"{path} must be a JSON object")
    check_plan(plan)
    return plan


def _is_amount(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value >= 0


def check_plan(plan: Mapping[str, Any]) -> None:
    """Validate plan values before any of them reach the session.

    Raises:
        PlanError: Listing every problem found.
    """
    errors = []

    profile = plan.get("risk_profile")
    if profile is not None and not isinstance(profile, str):
        errors.append("risk_profile must be a string")
    mode = plan.get("capital_mode")
    if mode is not None and mode not in {m.value for m in CapitalMode}:
        errors.append(
            f"capital_mode must be one of {', '.join(m.value for m in CapitalMode)}, got {mode!r}"
        )

    exchanges = plan.get("exchanges", {})
    if not isinstance(exchanges, dict):
        errors.append("exchanges must be a mapping of exchange to entry")
        exchanges = {}
    for exchange, entry in exchanges.items():
        if not isinstance(entry, dict):
            errors.append(f"exchanges.{exchange} must be an object, got {type(entry).__name__}")
            continue
        total = entry.get("total_capital")
        if total is not None and not _is_amount(total):
            errors.append(f"exchanges.{exchange}.total_capital must be a number >= 0")
        symbols = entry.get("symbols", [])
        if isinstance(symbols, dict):
            bad = [s for s, capital in symbols.items() if not _is_amount(capital)]
            if bad:
                errors.append(f"exchanges.{exchange}.symbols has invalid capital for {', '.join(bad)}")
        elif not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
            errors.append(f"exchanges.{exchange}.symbols must be a list of symbols or a symbol -> capital mapping")

    splits = plan.get("strategy_splits", {})
    if not isinstance(splits, dict) or not all(
        isinstance(w, dict) and all(_is_amount(v) for v in w.values()) for w in splits.values()
    ):
        errors.append("strategy_splits must map 'exchange:symbol' to strategy type -> weight")

    if "withdrawal_policy" in plan:
        policy = plan["withdrawal_policy"]
        if not isinstance(policy, dict):
            errors.append("withdrawal_policy must be an object")
        else:
            try:
                WithdrawalPolicy.from_dict(policy)
            except (TypeError, ValueError) as e:
                errors.append(f"withdrawal_policy: {e}")

    if errors:
        raise PlanError("\n".join(errors))


async def _fill_assets(session: WizardSession, plan: Dict[str, Any]) -> None:
    for exchange, entry in plan.get("exchanges", {}).items():
        if not session.tree.has_exchange(exchange):
            logger.warning(f"⚠️ {exchange} is not configured on the bot, skipping")
            continue
        if entry.get("total_capital") is not None:
            session.set_total_capital(exchange, entry["total_capital"])

        symbols = entry.get("symbols", [])
        if isinstance(symbols, dict):
            for symbol, capital in symbols.items():
                session.add_symbol(exchange, symbol, capital)
            for symbol in symbols:
                session.apply_template(exchange, symbol)
        elif symbols:
            for symbol in symbols:
                session.add_symbol(exchange, symbol)
            await session.request_recommendation(exchange, symbols)


def _fill_splits(session: WizardSession, plan: Dict[str, Any]) -> None:
    overrides = plan.get("strategy_splits", {})
    for exchange, symbol in list(session.tree.pairs()):
        weights = overrides.get(pair_key(exchange, symbol))
        if weights:
            # Percentages such as {"grid": 60, "dca": 40} are accepted too
            session.tree.replace_strategy_split(exchange, symbol, normalize(weights))
        elif not session.tree.is_strategy_split_complete(exchange, symbol):
            session.apply_template(exchange, symbol)


async def run_plan(
    session: WizardSession, plan: Dict[str, Any], ai_credential: str = ""
) -> Optional[TransitionFailure]:
    """Walk an opened session from AI setup to preview.

    Returns:
        The first transition failure, or None once the preview is generated.

    Raises:
        PlanError: If the plan holds invalid values.
    """
    check_plan(plan)
    if plan.get("risk_profile"):
        session.select_risk_profile(plan["risk_profile"])
    if plan.get("capital_mode"):
        session.select_capital_mode(plan["capital_mode"])

    if ai_credential and plan.get("use_ai", True):
        session.set_ai_credential(ai_credential)
        result = session.next()
    else:
        result = session.skip_ai()
    if isinstance(result, TransitionFailure):
        return result

    await _fill_assets(session, plan)
    result = session.next()
    if isinstance(result, TransitionFailure):
        return result

    _fill_splits(session, plan)
    while session.step != WizardStep.WITHDRAWAL_SETUP:
        result = session.next()
        if isinstance(result, TransitionFailure):
            return result

    if "withdrawal_policy" in plan:
        session.set_withdrawal_policy(WithdrawalPolicy.from_dict(plan["withdrawal_policy"]))
    result = await session.generate()
    return result if isinstance(result, TransitionFailure) else None

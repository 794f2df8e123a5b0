"""Wizard session.

Owns the allocation tree and the wizard state for one run of the wizard,
and drives the remote collaborators. Remote failures never block the
wizard: lookups fall back to defaults and leave a ``Notice``, submission
failures are reported verbatim and keep the current step.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..allocation.normalizer import equal_weights, normalize
from ..allocation.templates import template_split
from ..allocation.tree import AllocationTree
from ..allocation.validator import (
    AllocationValidator,
    ValidationResult,
    validate_withdrawal_policy,
)
from ..config import WizardConfig
from ..models import CapitalMode, ExchangeId, RiskProfile, WithdrawalPolicy
from .collaborators import (
    BalanceSource,
    ExchangeSource,
    Notice,
    Recommendation,
    RecommendationRequest,
    RecommendationService,
    StrategyTypeSource,
    SubmissionSink,
    parse_recommendation,
)
from .payload import build_payload
from .state import (
    TransitionFailure,
    TransitionResult,
    WizardState,
    WizardStep,
    advance,
    go_back,
    initial_state,
    mark_applied,
    mark_generated,
    skip_ai_setup,
    with_credential,
    with_error,
)

logger = logging.getLogger(__name__)


class WizardError(Exception):
    """Raised when a session operation is called from the wrong step."""
    pass


@dataclass
class RecommendationOutcome:
    """What a completed recommendation request did to the tree."""
    request: RecommendationRequest
    applied: bool
    symbol_weights: Dict[str, float] = field(default_factory=dict)
    strategy_splits: Dict[str, Dict[str, float]] = field(default_factory=dict)
    used_fallback: bool = False


class WizardSession:
    """One wizard run: an allocation tree, a wizard state and collaborators.

    The session is single-threaded. Remote calls are awaited one at a time
    per request; concurrent recommendation requests are correlated by
    their ``RecommendationRequest`` token and applied as they arrive.
    """

    def __init__(
        self,
        exchange_source: ExchangeSource,
        balance_source: BalanceSource,
        strategy_type_source: StrategyTypeSource,
        sink: SubmissionSink,
        recommender: Optional[RecommendationService] = None,
        config: Optional[WizardConfig] = None,
    ):
        self.config = config or WizardConfig()
        self.exchange_source = exchange_source
        self.balance_source = balance_source
        self.strategy_type_source = strategy_type_source
        self.sink = sink
        self.recommender = recommender

        self.tree = AllocationTree()
        self.state: WizardState = initial_state()
        self.validator = AllocationValidator(self.config.weight_sum_epsilon)
        self.risk_profile = RiskProfile.parse(self.config.default_risk_profile)
        self.capital_mode = CapitalMode(self.config.capital_mode)
        self.withdrawal_policy = WithdrawalPolicy()

        self.available_symbols: Dict[ExchangeId, List[str]] = {}
        self.strategy_types: List[str] = list(self.config.fallback_strategy_types)
        self.notices: List[Notice] = []
        self.preview: Optional[Dict[str, Any]] = None
        self.result: Optional[Dict[str, Any]] = None

        self._pending: Dict[int, RecommendationRequest] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Load exchanges, symbols, balances and strategy types."""
        try:
            exchanges = list(await self.exchange_source.list_configured_exchanges())
        except Exception as e:
            logger.warning(f"Failed to list configured exchanges: {e}")
            self._notify("exchanges", f"Could not load configured exchanges: {e}")
            exchanges = []

        for exchange in exchanges:
            self.available_symbols[exchange] = await self._load_symbols(exchange)
            balance = await self._load_balance(exchange)
            seed = balance if balance else self.config.default_total_capital
            self.tree.add_exchange(exchange, total_capital=seed, available_balance=balance)

        try:
            types = [t for t in await self.strategy_type_source.list_strategy_types() if t]
        except Exception as e:
            logger.warning(f"Failed to list strategy types, using {self.config.fallback_strategy_types}: {e}")
            self._notify("strategy_types", f"Could not load strategy types: {e}")
            types = []
        self.strategy_types = types or list(self.config.fallback_strategy_types)

        logger.info(
            f"🧭 Wizard opened: {len(exchanges)} exchange(s), "
            f"strategy types {', '.join(self.strategy_types)}"
        )

    async def _load_symbols(self, exchange: ExchangeId) -> List[str]:
        try:
            return list(await self.exchange_source.list_available_symbols(exchange))
        except Exception as e:
            logger.warning(f"Failed to list symbols for {exchange}: {e}")
            self._notify("symbols", f"Could not load symbols for {exchange}: {e}")
            return []

    async def _load_balance(self, exchange: ExchangeId) -> Optional[float]:
        try:
            balance = float(await self.balance_source.get_available_balance(exchange))
        except Exception as e:
            logger.warning(f"Failed to fetch balance for {exchange}: {e}")
            self._notify("balance", f"Could not fetch balance for {exchange}: {e}")
            return None
        return balance if balance >= 0 else None

    def close(self) -> None:
        """Discard the tree. Late recommendation results are ignored."""
        self._closed = True
        self._pending.clear()
        self.tree = AllocationTree()
        logger.info("Wizard closed, allocation discarded")

    @property
    def closed(self) -> bool:
        return self._closed

    def _notify(self, source: str, message: str) -> None:
        self.notices.append(Notice(source=source, message=message))

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def set_ai_credential(self, credential: str) -> None:
        self.state = with_credential(self.state, credential)

    def select_risk_profile(self, profile) -> None:
        self.risk_profile = RiskProfile.parse(profile)

    def select_capital_mode(self, mode) -> None:
        self.capital_mode = mode if isinstance(mode, CapitalMode) else CapitalMode(mode)

    def set_total_capital(self, exchange: ExchangeId, amount: float) -> None:
        self.tree.set_total_capital(exchange, amount)

    def add_symbol(self, exchange: ExchangeId, symbol: str, capital: float = 0.0) -> None:
        self.tree.add_exchange_symbol(exchange, symbol, capital)

    def set_symbol_capital(self, exchange: ExchangeId, symbol: str, capital: float) -> None:
        self.tree.set_symbol_capital(exchange, symbol, capital)

    def remove_symbol(self, exchange: ExchangeId, symbol: str) -> None:
        self.tree.remove_symbol(exchange, symbol)

    def distribute_capital(
        self, exchange: ExchangeId, weights: Optional[Mapping[str, float]] = None
    ) -> Dict[str, float]:
        """Spread the exchange total over its symbols (equal if no weights)."""
        return self.tree.distribute_capital(exchange, weights)

    def set_strategy_weight(
        self, exchange: ExchangeId, symbol: str, strategy_type: str, weight: float
    ) -> None:
        self.tree.set_strategy_weight(exchange, symbol, strategy_type, weight)

    def normalize_strategy_weights(self, exchange: ExchangeId, symbol: str) -> Dict[str, float]:
        """Rescale manually entered weights so they sum to 100%."""
        weights = normalize(self.tree.strategy_weights(exchange, symbol))
        if weights:
            self.tree.replace_strategy_split(exchange, symbol, weights)
        return weights

    def apply_template(self, exchange: ExchangeId, symbol: str, profile=None) -> Dict[str, float]:
        """Replace a symbol's split with the risk profile template."""
        weights = template_split(profile or self.risk_profile, self.strategy_types)
        self.tree.replace_strategy_split(exchange, symbol, weights)
        return weights

    def apply_template_to_all(self, profile=None) -> None:
        for exchange, symbol in list(self.tree.pairs()):
            self.apply_template(exchange, symbol, profile)

    def set_withdrawal_policy(self, policy: WithdrawalPolicy) -> ValidationResult:
        """Store the withdrawal policy and return its validation result."""
        self.withdrawal_policy = policy
        return validate_withdrawal_policy(policy)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def step(self) -> WizardStep:
        return self.state.step

    def next(self) -> TransitionResult:
        """Advance one step, validating the step being left."""
        result = advance(self.state, self.tree, self.validator)
        return self._settle(result)

    def back(self) -> WizardState:
        if self.state.step == WizardStep.PREVIEW:
            self.preview = None
        self.state = go_back(self.state)
        return self.state

    def skip_ai(self) -> TransitionResult:
        return self._settle(skip_ai_setup(self.state))

    def _settle(self, result: TransitionResult) -> TransitionResult:
        if isinstance(result, TransitionFailure):
            logger.warning(f"Cannot leave {result.step.value}: {result.message}")
            self.state = with_error(self.state, result.message)
            return result
        logger.info(f"➡️ Wizard step {self.state.step.value} -> {result.step.value}")
        self.state = result
        return result

    # ------------------------------------------------------------------
    # AI recommendations
    # ------------------------------------------------------------------

    def _capital_context(self, exchange: ExchangeId, symbols: List[str]) -> Dict[str, Any]:
        capital = self.tree.exchange_capital(exchange)
        return {
            "capital_mode": self.capital_mode.value,
            "total_capital": capital.total_capital if capital else 0.0,
            "available_balance": capital.available_balance if capital else None,
            "symbol_capitals": {s: self.tree.symbol_capital(exchange, s) for s in symbols},
            "strategy_types": list(self.strategy_types),
            "api_key": self.state.ai_credential,
        }

    async def request_recommendation(
        self, exchange: ExchangeId, symbols: Optional[Iterable[str]] = None
    ) -> RecommendationOutcome:
        """Ask for an AI recommendation and apply it when it arrives.

        If AI is unavailable or the call fails, symbols get equal weights
        and the risk profile template; the failure is recorded as a notice.
        """
        symbols = list(symbols) if symbols is not None else self.tree.symbols(exchange)
        request = RecommendationRequest.issue(exchange, symbols, self.risk_profile.value)
        self._pending[request.request_id] = request

        recommendation = Recommendation()
        if self.recommender is not None and self.state.ai_enabled:
            try:
                payload = await self.recommender.recommend(
                    exchange,
                    symbols,
                    self.risk_profile.value,
                    self._capital_context(exchange, symbols),
                )
                recommendation = parse_recommendation(payload)
            except Exception as e:
                logger.warning(f"AI recommendation for {exchange} failed: {e}")
                self._notify("ai", f"AI recommendation failed, using equal weights: {e}")
        else:
            logger.info(f"AI assistance off, using equal weights for {exchange}")

        return self._complete(request, recommendation)

    def _complete(
        self, request: RecommendationRequest, recommendation: Recommendation
    ) -> RecommendationOutcome:
        self._pending.pop(request.request_id, None)
        if self._closed:
            logger.debug(f"Ignoring recommendation #{request.request_id}: wizard closed")
            return RecommendationOutcome(request=request, applied=False)

        live = [s for s in request.symbols if self.tree.has_symbol(request.exchange, s)]
        if not live:
            logger.debug(f"Ignoring recommendation #{request.request_id}: symbols gone")
            return RecommendationOutcome(request=request, applied=False)

        suggested = {s: w for s, w in recommendation.symbol_weights.items() if s in live}
        used_fallback = not suggested
        symbol_weights = normalize({s: suggested.get(s, 0.0) for s in live}) if suggested else equal_weights(live)

        if self.capital_mode == CapitalMode.TOTAL:
            self.tree.distribute_capital(request.exchange, symbol_weights, symbols=live)

        strategy_splits = {}
        for symbol in live:
            hint = {
                t: w for t, w in recommendation.strategy_hints.get(symbol, {}).items()
                if t in self.strategy_types
            }
            if hint:
                weights = normalize(hint)
            else:
                weights = template_split(request.risk_profile, self.strategy_types)
            self.tree.replace_strategy_split(request.exchange, symbol, weights)
            strategy_splits[symbol] = weights

        logger.info(
            f"🤖 Applied recommendation #{request.request_id} for {request.exchange}: "
            + ", ".join(f"{s}={w:.1%}" for s, w in symbol_weights.items())
        )
        return RecommendationOutcome(
            request=request,
            applied=True,
            symbol_weights=symbol_weights,
            strategy_splits=strategy_splits,
            used_fallback=used_fallback,
        )

    @property
    def pending_requests(self) -> List[RecommendationRequest]:
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_payload(self) -> Dict[str, Any]:
        payload = build_payload(
            self.tree, self.withdrawal_policy, self.risk_profile, self.capital_mode
        )
        if self.state.ai_enabled:
            payload["gemini_api_key"] = self.state.ai_credential
        return payload

    async def generate(self) -> TransitionResult:
        """Validate everything and hand the payload to the submission sink.

        Raises:
            WizardError: If not on the withdrawal setup step.
        """
        if self.state.step != WizardStep.WITHDRAWAL_SETUP:
            raise WizardError(f"generate is only available on withdrawal-setup, not {self.state.step.value}")

        validation = self.validator.validate(self.tree)
        if validation.ok:
            validation = validate_withdrawal_policy(self.withdrawal_policy)
        if not validation.ok:
            return self._settle(TransitionFailure(self.state.step, validation.reason, validation))

        try:
            preview = await self.sink.submit(self.build_payload())
        except Exception as e:
            logger.error(f"❌ Generate failed: {e}")
            return self._settle(TransitionFailure(self.state.step, str(e)))

        self.preview = dict(preview or {})
        return self._settle(mark_generated(self.state))

    async def apply(self) -> TransitionResult:
        """Apply the generated preview.

        Raises:
            WizardError: If not on the preview step.
        """
        if self.state.step != WizardStep.PREVIEW or self.preview is None:
            raise WizardError(f"apply is only available on preview, not {self.state.step.value}")

        try:
            result = await self.sink.apply(self.preview)
        except Exception as e:
            logger.error(f"❌ Apply failed: {e}")
            return self._settle(TransitionFailure(self.state.step, str(e)))

        self.result = dict(result or {})
        return self._settle(mark_applied(self.state))

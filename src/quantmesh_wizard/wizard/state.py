"""Wizard state and transition functions.

The whole wizard position is one immutable ``WizardState``. Transitions are
plain functions returning either the next state or a ``TransitionFailure``;
a failure never changes the state.

Steps run linearly:

    ai_setup -> asset_alloc -> strategy_split -> param_tuning
             -> withdrawal_setup -> preview -> success

``preview`` and ``success`` are only entered after the external generate and
apply calls succeed (``mark_generated`` / ``mark_applied``). Going back is
always allowed and never validated.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from ..allocation.tree import AllocationTree
from ..allocation.validator import AllocationValidator, ValidationResult

AI_CREDENTIAL_REQUIRED = "AI API key required"
PREVIEW_REQUIRES_GENERATE = "preview is reached by generating the configuration"
SUCCESS_REQUIRES_APPLY = "success is reached by applying the configuration"
WIZARD_COMPLETE = "wizard already complete"


class WizardStep(Enum):
    """Wizard steps in display order."""
    AI_SETUP = "ai-setup"
    ASSET_ALLOC = "asset-alloc"
    STRATEGY_SPLIT = "strategy-split"
    PARAM_TUNING = "param-tuning"
    WITHDRAWAL_SETUP = "withdrawal-setup"
    PREVIEW = "preview"
    SUCCESS = "success"

    @property
    def index(self) -> int:
        return _STEP_ORDER.index(self)

    def next(self) -> Optional["WizardStep"]:
        i = self.index
        return _STEP_ORDER[i + 1] if i + 1 < len(_STEP_ORDER) else None

    def previous(self) -> Optional["WizardStep"]:
        i = self.index
        return _STEP_ORDER[i - 1] if i > 0 else None


_STEP_ORDER = list(WizardStep)


@dataclass(frozen=True)
class WizardState:
    """Snapshot of the wizard's position."""
    step: WizardStep = WizardStep.AI_SETUP
    ai_credential: str = ""
    ai_skipped: bool = False
    last_error: Optional[str] = None

    @property
    def ai_enabled(self) -> bool:
        return bool(self.ai_credential.strip()) and not self.ai_skipped


@dataclass(frozen=True)
class TransitionFailure:
    """A refused forward transition. The wizard stays on ``step``."""
    step: WizardStep
    reason: str
    validation: Optional[ValidationResult] = None

    @property
    def message(self) -> str:
        if self.validation is not None and not self.validation.ok:
            return self.validation.message
        return self.reason


TransitionResult = Union[WizardState, TransitionFailure]


def initial_state() -> WizardState:
    return WizardState()


def with_credential(state: WizardState, credential: str) -> WizardState:
    """Record the AI credential entered on the first step."""
    return replace(state, ai_credential=credential or "", ai_skipped=False)


def _check_leaving(
    state: WizardState,
    tree: AllocationTree,
    validator: AllocationValidator,
) -> Optional[TransitionFailure]:
    step = state.step
    if step == WizardStep.AI_SETUP:
        if not state.ai_credential.strip():
            return TransitionFailure(step, AI_CREDENTIAL_REQUIRED)
        return None

    if step == WizardStep.ASSET_ALLOC:
        result = validator.validate_asset_allocation(tree)
    elif step == WizardStep.STRATEGY_SPLIT:
        result = validator.validate_strategy_split(tree)
    elif step == WizardStep.WITHDRAWAL_SETUP:
        return TransitionFailure(step, PREVIEW_REQUIRES_GENERATE)
    elif step == WizardStep.PREVIEW:
        return TransitionFailure(step, SUCCESS_REQUIRES_APPLY)
    elif step == WizardStep.SUCCESS:
        return TransitionFailure(step, WIZARD_COMPLETE)
    else:
        return None

    if not result.ok:
        return TransitionFailure(step, result.reason, result)
    return None


def advance(
    state: WizardState,
    tree: AllocationTree,
    validator: Optional[AllocationValidator] = None,
) -> TransitionResult:
    """Move one step forward if the step being left validates.

    Args:
        state: Current wizard state.
        tree: Allocation tree to validate.
        validator: Validator to use; a default one if omitted.

    Returns:
        The next WizardState, or a TransitionFailure naming the problem.
    """
    failure = _check_leaving(state, tree, validator or AllocationValidator())
    if failure is not None:
        return failure
    return replace(state, step=state.step.next(), last_error=None)


def go_back(state: WizardState) -> WizardState:
    """Move one step back. Never validated; a no-op on the first step."""
    previous = state.step.previous()
    if previous is None:
        return state
    return replace(state, step=previous, last_error=None)


def skip_ai_setup(state: WizardState) -> TransitionResult:
    """Leave the AI setup step without a credential (AI assistance off)."""
    if state.step != WizardStep.AI_SETUP:
        return TransitionFailure(state.step, "only the AI setup step can be skipped")
    return replace(state, step=WizardStep.ASSET_ALLOC, ai_skipped=True, last_error=None)


def mark_generated(state: WizardState) -> TransitionResult:
    """Enter ``preview`` after a successful external generate call."""
    if state.step != WizardStep.WITHDRAWAL_SETUP:
        return TransitionFailure(state.step, f"cannot generate from {state.step.value}")
    return replace(state, step=WizardStep.PREVIEW, last_error=None)


def mark_applied(state: WizardState) -> TransitionResult:
    """Enter ``success`` after a successful external apply call."""
    if state.step != WizardStep.PREVIEW:
        return TransitionFailure(state.step, f"cannot apply from {state.step.value}")
    return replace(state, step=WizardStep.SUCCESS, last_error=None)


def with_error(state: WizardState, message: Optional[str]) -> WizardState:
    return replace(state, last_error=message)

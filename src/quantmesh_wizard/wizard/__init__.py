"""Configuration wizard: state machine, session and collaborator contracts."""

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
from .plan import PlanError, check_plan, load_plan, run_plan
from .session import RecommendationOutcome, WizardError, WizardSession
from .state import (
    TransitionFailure,
    WizardState,
    WizardStep,
    advance,
    go_back,
    initial_state,
    mark_applied,
    mark_generated,
    skip_ai_setup,
    with_credential,
)

__all__ = [
    # Session
    "WizardSession",
    "WizardError",
    "RecommendationOutcome",
    # State machine
    "WizardState",
    "WizardStep",
    "TransitionFailure",
    "advance",
    "go_back",
    "initial_state",
    "mark_applied",
    "mark_generated",
    "skip_ai_setup",
    "with_credential",
    # Collaborators
    "BalanceSource",
    "ExchangeSource",
    "Notice",
    "Recommendation",
    "RecommendationRequest",
    "RecommendationService",
    "StrategyTypeSource",
    "SubmissionSink",
    "parse_recommendation",
    # Payload
    "build_payload",
    # Plans
    "PlanError",
    "check_plan",
    "load_plan",
    "run_plan",
]

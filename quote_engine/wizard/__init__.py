from quote_engine.wizard.guards import GuardContext, GuardResult
from quote_engine.wizard.session import QuoteSession
from quote_engine.wizard.state_machine import (
    InvalidTransitionError,
    QuoteState,
    QuoteStateMachine,
    TransitionTrigger,
    WizardStep,
    reduce,
)

__all__ = [
    "QuoteSession",
    "QuoteStateMachine",
    "QuoteState",
    "WizardStep",
    "TransitionTrigger",
    "InvalidTransitionError",
    "GuardContext",
    "GuardResult",
    "reduce",
]

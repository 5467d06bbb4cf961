"""
Quote wizard state machine.

The wizard is a pure reducer: ``reduce(state, trigger, ctx)`` takes a frozen
QuoteState and returns the next one, or raises. Every transition is listed
explicitly with its guard, so a forward move can never skip a check, and
backward moves only go to the immediately preceding step.

Steps:
    DEVICE -> ISSUES -> SCHEDULE -> REVIEW -> VERIFY (guests only) -> BOOKED
    ISSUES -> STORE_VISIT_REQUIRED when a software-only issue is selected

Usage:
    sm = QuoteStateMachine()
    sm.update(selection=select_device(sm.state.selection, catalog, device))
    sm.transition(TransitionTrigger.DEVICE_CONFIRMED, ctx)
    assert sm.current_step == WizardStep.ISSUES
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from quote_engine.errors import QuoteEngineError, ValidationBlocked
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.quote_schema import ContactInfo, QuoteSelection, ScheduleSelection
from quote_engine.wizard.guards import (
    Guard,
    GuardContext,
    all_of,
    booking_recorded,
    code_verified,
    contact_ready,
    device_selected,
    has_software_issue,
    is_authenticated,
    is_guest,
    issues_ready,
    quote_ready,
    schedule_ready,
)
from quote_engine.wizard.selection import prune_for_device, revalidate_schedule

logger = get_session_logger(__name__)


class WizardStep(str, Enum):
    """All steps of the quote wizard."""
    DEVICE = "device"
    ISSUES = "issues"
    SCHEDULE = "schedule"
    REVIEW = "review"
    VERIFY = "verify"
    BOOKED = "booked"
    STORE_VISIT_REQUIRED = "store_visit_required"


class TransitionTrigger(str, Enum):
    """Customer actions that move the wizard."""
    DEVICE_CONFIRMED = "device_confirmed"
    ISSUES_CONFIRMED = "issues_confirmed"
    SCHEDULE_CONFIRMED = "schedule_confirmed"
    CONTACT_SUBMITTED = "contact_submitted"
    BOOKING_COMMITTED = "booking_committed"
    BACK = "back"


class QuoteState(BaseModel):
    """Immutable snapshot of everything the customer has chosen so far."""

    model_config = ConfigDict(frozen=True)

    step: WizardStep = WizardStep.DEVICE
    selection: QuoteSelection = Field(default_factory=QuoteSelection)
    schedule: ScheduleSelection = Field(default_factory=ScheduleSelection)
    contact: ContactInfo = Field(default_factory=ContactInfo)
    authenticated: bool = False
    code_verified: bool = False
    booking_ref: Optional[str] = None


@dataclass
class Transition:
    """A single valid step transition."""
    from_step: WizardStep
    to_step: WizardStep
    trigger: TransitionTrigger
    guard: Optional[Guard] = None


@dataclass
class StepEntry:
    """Recorded history entry for a step visit."""
    step: WizardStep
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class InvalidTransitionError(QuoteEngineError):
    """Raised when a trigger has no transition from the current step."""


TRANSITIONS: list[Transition] = [
    # --- Forward ---
    Transition(WizardStep.DEVICE, WizardStep.ISSUES,
               TransitionTrigger.DEVICE_CONFIRMED, device_selected),
    # Software issues cannot be fixed on site; checked before the schedule route
    Transition(WizardStep.ISSUES, WizardStep.STORE_VISIT_REQUIRED,
               TransitionTrigger.ISSUES_CONFIRMED, has_software_issue),
    Transition(WizardStep.ISSUES, WizardStep.SCHEDULE,
               TransitionTrigger.ISSUES_CONFIRMED, issues_ready),
    Transition(WizardStep.SCHEDULE, WizardStep.REVIEW,
               TransitionTrigger.SCHEDULE_CONFIRMED, all_of(issues_ready, schedule_ready)),
    Transition(WizardStep.REVIEW, WizardStep.VERIFY,
               TransitionTrigger.CONTACT_SUBMITTED, all_of(is_guest, quote_ready, contact_ready)),
    Transition(WizardStep.REVIEW, WizardStep.BOOKED,
               TransitionTrigger.BOOKING_COMMITTED,
               all_of(is_authenticated, quote_ready, booking_recorded)),
    Transition(WizardStep.VERIFY, WizardStep.BOOKED,
               TransitionTrigger.BOOKING_COMMITTED, all_of(code_verified, booking_recorded)),

    # --- Back, one step at a time ---
    Transition(WizardStep.ISSUES, WizardStep.DEVICE, TransitionTrigger.BACK),
    Transition(WizardStep.SCHEDULE, WizardStep.ISSUES, TransitionTrigger.BACK),
    Transition(WizardStep.REVIEW, WizardStep.SCHEDULE, TransitionTrigger.BACK),
    Transition(WizardStep.VERIFY, WizardStep.REVIEW, TransitionTrigger.BACK),
    Transition(WizardStep.STORE_VISIT_REQUIRED, WizardStep.ISSUES, TransitionTrigger.BACK),
]

TERMINAL_STEPS = frozenset({WizardStep.BOOKED, WizardStep.STORE_VISIT_REQUIRED})


def _reset_on_back(state: QuoteState, from_step: WizardStep, ctx: GuardContext) -> dict[str, Any]:
    """Drop whatever the earlier step can no longer vouch for."""
    if from_step == WizardStep.SCHEDULE:
        return {
            "selection": prune_for_device(state.selection, ctx.catalog),
            "schedule": revalidate_schedule(
                state.schedule, ctx.matcher, ctx.table, ctx.minimum_date
            ),
        }
    if from_step == WizardStep.VERIFY:
        return {"code_verified": False}
    return {}


def reduce(
    state: QuoteState,
    trigger: TransitionTrigger,
    ctx: GuardContext,
    transitions: Optional[list[Transition]] = None,
) -> QuoteState:
    """
    Compute the next wizard state.

    Candidate transitions are tried in table order; the first whose guard
    passes wins.

    Raises:
        InvalidTransitionError: if no transition exists for the trigger.
        ValidationBlocked: if transitions exist but every guard failed.
    """
    transitions = TRANSITIONS if transitions is None else transitions
    candidates = [t for t in transitions if t.from_step == state.step and t.trigger == trigger]
    if not candidates:
        valid = sorted({t.trigger.value for t in transitions if t.from_step == state.step})
        raise InvalidTransitionError(
            f"No valid transition from '{state.step.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    failure = None
    for t in candidates:
        if t.guard is not None:
            result = t.guard(state, ctx)
            if not result.passed:
                failure = result
                continue

        update: dict[str, Any] = {"step": t.to_step}
        if trigger == TransitionTrigger.BACK:
            update.update(_reset_on_back(state, state.step, ctx))
        return state.model_copy(update=update)

    raise ValidationBlocked(failure.violation_type, failure.message)


class QuoteStateMachine:
    """
    Holds the current QuoteState and its step history.

    All state changes go through ``transition`` (step moves) or ``update``
    (selection edits inside the current step). Neither mutates the previous
    value; each replaces it.
    """

    def __init__(self, state: Optional[QuoteState] = None) -> None:
        self._state = state or QuoteState()
        self._history: list[StepEntry] = [
            StepEntry(step=self._state.step, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def state(self) -> QuoteState:
        return self._state

    @property
    def current_step(self) -> WizardStep:
        return self._state.step

    def update(self, **fields: Any) -> QuoteState:
        """Replace selection fields without changing step."""
        if "step" in fields:
            raise ValueError("Use transition() to change steps")
        self._state = self._state.model_copy(update=fields)
        return self._state

    def check(self, guard: Guard, ctx: GuardContext) -> None:
        """Raise ValidationBlocked if a guard fails on the current state."""
        result = guard(self._state, ctx)
        if not result.passed:
            raise ValidationBlocked(result.violation_type, result.message)

    def transition(self, trigger: TransitionTrigger, ctx: GuardContext) -> WizardStep:
        """
        Execute a step transition.

        Returns:
            The new wizard step.

        Raises:
            InvalidTransitionError: if no transition exists.
            ValidationBlocked: if the guard refused it; the step is unchanged.
        """
        old_step = self._state.step
        self._state = reduce(self._state, trigger, ctx)
        self._history.append(StepEntry(
            step=self._state.step,
            entered_at=datetime.now(timezone.utc),
            trigger=trigger,
        ))
        logger.debug(
            "Step transition: %s -> %s (trigger: %s)",
            old_step.value, self._state.step.value, trigger.value,
        )
        return self._state.step

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return the distinct triggers defined from the current step."""
        seen: list[TransitionTrigger] = []
        for t in TRANSITIONS:
            if t.from_step == self._state.step and t.trigger not in seen:
                seen.append(t.trigger)
        return seen

    def get_history(self) -> list[StepEntry]:
        return list(self._history)

    def get_step_trace(self) -> list[str]:
        """Return ordered list of step names visited."""
        return [entry.step.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._state.step in TERMINAL_STEPS

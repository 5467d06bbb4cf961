"""
Step guards for the quote wizard.

Each guard checks one concern and returns a GuardResult. They are pure
functions of the wizard state plus a GuardContext (catalog, pricing, and the
scheduling facts that depend on live lookups), so every guard can be tested
on its own:

1. device_selected    - a device has been chosen
2. has_software_issue - the selection needs an in-store visit
3. issues_ready       - issues, tiers, and back-glass colour are complete
4. schedule_ready     - date, slot, and a validated address are set
5. contact_ready      - name and a valid email for guest bookings
6. phone_valid        - an optional phone number, if given, is a US number
7. code_verified      - the one-time code was confirmed
8. booking_recorded   - the booking record exists
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Callable, Optional

from quote_engine.logging_context import get_session_logger
from quote_engine.tools.availability import AvailabilityMatcher, AvailabilityTable
from quote_engine.tools.catalog import BACK_GLASS_ISSUE_ID, Catalog
from quote_engine.tools.pricing import PricingResolver
from quote_engine.utils import is_valid_email, is_valid_phone

if TYPE_CHECKING:
    from quote_engine.wizard.state_machine import QuoteState

logger = get_session_logger(__name__)


@dataclass(frozen=True)
class GuardResult:
    """Outcome of a single guard check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None


PASSED = GuardResult(passed=True)


@dataclass(frozen=True)
class GuardContext:
    """External facts the guards need but the wizard state does not own."""
    catalog: Catalog
    pricing: PricingResolver
    matcher: AvailabilityMatcher
    minimum_date: date
    table: Optional[AvailabilityTable] = None


Guard = Callable[["QuoteState", GuardContext], GuardResult]


def _fail(violation_type: str, message: str) -> GuardResult:
    return GuardResult(passed=False, violation_type=violation_type, message=message)


def device_selected(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if state.selection.device is None:
        return _fail("no_device", "Select your device to continue.")
    return PASSED


def has_software_issue(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if any(ctx.catalog.is_software_issue(i) for i in state.selection.issues):
        return PASSED
    return _fail("no_software_issue", "No software-only issue selected.")


def issues_ready(state: QuoteState, ctx: GuardContext) -> GuardResult:
    selection = state.selection
    device = selection.device
    if device is None:
        return _fail("no_device", "Select your device to continue.")
    if not selection.issues:
        return _fail("no_issues", "Select at least one issue.")

    for issue_id in selection.issues:
        if not ctx.catalog.is_repair_offered(device, issue_id):
            return _fail("issue_not_offered", f"'{issue_id}' is not offered for {device.name}.")
        tier_id = selection.issue_tiers.get(issue_id)
        if tier_id is None:
            return _fail("tier_missing", f"Choose a parts quality for '{issue_id}'.")
        if tier_id not in ctx.catalog.allowed_tiers(device, issue_id):
            return _fail(
                "tier_not_offered",
                f"The {tier_id.value} tier is not offered for '{issue_id}' on {device.name}.",
            )
        if not ctx.pricing.is_priced(device, issue_id, tier_id):
            return _fail("unpriced", f"'{issue_id}' with {tier_id.value} parts is not priced.")

    if (
        BACK_GLASS_ISSUE_ID in selection.issues
        and ctx.catalog.colors_for(device)
        and not selection.back_glass_color
    ):
        return _fail("color_missing", f"Select the colour of your {device.name}.")
    return PASSED


def schedule_ready(state: QuoteState, ctx: GuardContext) -> GuardResult:
    schedule = state.schedule
    if schedule.date is None:
        return _fail("no_date", "Pick a date.")
    if schedule.date < ctx.minimum_date:
        return _fail(
            "date_too_early",
            f"The earliest available date is {ctx.minimum_date.isoformat()}.",
        )
    if schedule.time_slot is None:
        return _fail("no_time_slot", "Pick a time slot.")
    slots = ctx.matcher.slots_for(schedule.date, ctx.table, ctx.minimum_date)
    if schedule.time_slot not in slots:
        return _fail(
            "slot_unavailable",
            "That time slot is not available on this date. Please pick another.",
        )
    if not schedule.address:
        return _fail("address_not_validated", "Choose a serviceable address from the list.")
    return PASSED


def quote_ready(state: QuoteState, ctx: GuardContext) -> GuardResult:
    """Everything needed to commit, re-checked at review time."""
    for guard in (issues_ready, schedule_ready):
        result = guard(state, ctx)
        if not result.passed:
            return result
    return PASSED


def contact_ready(state: QuoteState, ctx: GuardContext) -> GuardResult:
    contact = state.contact
    if not contact.name.strip():
        return _fail("no_name", "Enter your name.")
    if not is_valid_email(contact.email.strip()):
        return _fail("invalid_email", "Enter a valid email address.")
    return phone_valid(state, ctx)


def phone_valid(state: QuoteState, ctx: GuardContext) -> GuardResult:
    phone = state.contact.phone
    if phone and not is_valid_phone(phone):
        return _fail("invalid_phone", "Enter a valid US phone number.")
    return PASSED


def is_authenticated(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if state.authenticated:
        return PASSED
    return _fail("not_authenticated", "Sign in or verify your email to book.")


def is_guest(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if not state.authenticated:
        return PASSED
    return _fail("already_authenticated", "You are already signed in.")


def code_verified(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if not state.code_verified:
        return _fail("code_not_verified", "Enter the 6-digit code we emailed you.")
    return PASSED


def booking_recorded(state: QuoteState, ctx: GuardContext) -> GuardResult:
    if not state.booking_ref:
        return _fail("booking_missing", "The booking has not been saved yet.")
    return PASSED


def all_of(*guards: Guard) -> Guard:
    """Compose guards; the first failure wins."""

    def combined(state: QuoteState, ctx: GuardContext) -> GuardResult:
        for guard in guards:
            result = guard(state, ctx)
            if not result.passed:
                logger.debug("Guard %s failed: %s", guard.__name__, result.violation_type)
                return result
        return PASSED

    combined.__name__ = "all_of(" + ", ".join(g.__name__ for g in guards) + ")"
    return combined

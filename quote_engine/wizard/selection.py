"""
Pure edit operations on the quote and schedule selections.

Every function takes the current frozen value and returns a new one, or
raises ValidationBlocked when the edit would break an invariant. Callers
never mutate a selection in place.

Usage:
    selection = select_device(QuoteSelection(), catalog, device)
    selection = toggle_issue(selection, catalog, "screen")
    selection = set_tier(selection, catalog, pricing, "screen", TierId.PREMIUM)
"""

from datetime import date
from typing import Optional

from quote_engine.errors import ValidationBlocked
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.catalog_schema import Device, TierId
from quote_engine.schemas.quote_schema import (
    MAX_NOTES_LENGTH,
    ContactInfo,
    QuoteSelection,
    ScheduleSelection,
    TimeSlot,
)
from quote_engine.tools.availability import AvailabilityMatcher, AvailabilityTable
from quote_engine.tools.catalog import BACK_GLASS_ISSUE_ID, Catalog
from quote_engine.tools.pricing import PricingResolver

logger = get_session_logger(__name__)


def prune_for_device(selection: QuoteSelection, catalog: Catalog) -> QuoteSelection:
    """Drop issues not offered for the device and tiers outside each issue's allowed set."""
    device = selection.device
    issues = tuple(i for i in selection.issues if catalog.is_repair_offered(device, i))
    tiers = {
        issue_id: tier_id
        for issue_id, tier_id in selection.issue_tiers.items()
        if issue_id in issues and tier_id in catalog.allowed_tiers(device, issue_id)
    }
    color = selection.back_glass_color
    if BACK_GLASS_ISSUE_ID not in issues or color not in catalog.colors_for(device):
        color = None
    if issues != selection.issues or tiers != selection.issue_tiers:
        logger.debug("Pruned selection for %s: issues=%s", device.name if device else None, issues)
    return selection.model_copy(update={
        "issues": issues,
        "issue_tiers": tiers,
        "back_glass_color": color,
    })


def select_device(selection: QuoteSelection, catalog: Catalog, device: Device) -> QuoteSelection:
    if catalog.get_device(device.id) is None:
        raise ValidationBlocked("unknown_device", f"'{device.name}' is not in our catalog.")
    return prune_for_device(selection.model_copy(update={"device": device}), catalog)


def toggle_issue(selection: QuoteSelection, catalog: Catalog, issue_id: str) -> QuoteSelection:
    """Add an issue at the end, or remove it along with its tier and colour."""
    if issue_id in selection.issues:
        tiers = {k: v for k, v in selection.issue_tiers.items() if k != issue_id}
        update = {
            "issues": tuple(i for i in selection.issues if i != issue_id),
            "issue_tiers": tiers,
        }
        if issue_id == BACK_GLASS_ISSUE_ID:
            update["back_glass_color"] = None
        return selection.model_copy(update=update)

    if not catalog.is_repair_offered(selection.device, issue_id):
        raise ValidationBlocked("issue_not_offered", f"'{issue_id}' is not offered for this device.")
    return selection.model_copy(update={"issues": selection.issues + (issue_id,)})


def set_tier(
    selection: QuoteSelection,
    catalog: Catalog,
    pricing: PricingResolver,
    issue_id: str,
    tier_id: TierId,
) -> QuoteSelection:
    """Choose the parts tier for a selected issue.

    Raises:
        ValidationBlocked: if the issue is not selected or the tier is not offered.
        Unpriced: if the catalog has no price for the combination.
    """
    tier_id = TierId(tier_id)
    if issue_id not in selection.issues:
        raise ValidationBlocked("issue_not_selected", f"Select '{issue_id}' before choosing parts.")
    if tier_id not in catalog.allowed_tiers(selection.device, issue_id):
        raise ValidationBlocked(
            "tier_not_offered", f"The {tier_id.value} tier is not offered for '{issue_id}'."
        )
    # Raises Unpriced rather than letting an unpriced tier through
    pricing.price_for(selection.device, issue_id, tier_id)
    return selection.model_copy(update={
        "issue_tiers": {**selection.issue_tiers, issue_id: tier_id},
    })


def set_back_glass_color(selection: QuoteSelection, catalog: Catalog, color: str) -> QuoteSelection:
    if BACK_GLASS_ISSUE_ID not in selection.issues:
        raise ValidationBlocked("issue_not_selected", "Select back glass before choosing a colour.")
    if color not in catalog.colors_for(selection.device):
        raise ValidationBlocked("unknown_color", f"'{color}' is not a colour for this device.")
    return selection.model_copy(update={"back_glass_color": color})


def set_notes(selection: QuoteSelection, notes: str) -> QuoteSelection:
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationBlocked(
            "notes_too_long", f"Notes are limited to {MAX_NOTES_LENGTH} characters."
        )
    return selection.model_copy(update={"notes": notes})


def choose_date(
    schedule: ScheduleSelection,
    day: date,
    matcher: AvailabilityMatcher,
    table: Optional[AvailabilityTable],
    minimum: date,
) -> ScheduleSelection:
    """Pick a date, clearing the time slot if the new date does not offer it."""
    if day < minimum:
        raise ValidationBlocked(
            "date_too_early", f"The earliest available date is {minimum.isoformat()}."
        )
    time_slot = schedule.time_slot
    if time_slot is not None and time_slot not in matcher.slots_for(day, table, minimum):
        time_slot = None
    return schedule.model_copy(update={"date": day, "time_slot": time_slot})


def choose_time_slot(
    schedule: ScheduleSelection,
    slot: TimeSlot,
    matcher: AvailabilityMatcher,
    table: Optional[AvailabilityTable],
    minimum: date,
) -> ScheduleSelection:
    slot = TimeSlot(slot)
    if schedule.date is None:
        raise ValidationBlocked("no_date", "Select a date to see available time slots.")
    offered = matcher.slots_for(schedule.date, table, minimum)
    if not offered:
        raise ValidationBlocked(
            "no_slots", "No time slots available on this date. Please select a different date."
        )
    if slot not in offered:
        raise ValidationBlocked("slot_unavailable", f"The {slot.value} slot is not available.")
    return schedule.model_copy(update={"time_slot": slot})


def revalidate_schedule(
    schedule: ScheduleSelection,
    matcher: AvailabilityMatcher,
    table: Optional[AvailabilityTable],
    minimum: date,
) -> ScheduleSelection:
    """Drop a date or slot that is no longer allowed, e.g. after tiers change stock."""
    if schedule.date is not None and schedule.date < minimum:
        return schedule.model_copy(update={"date": None, "time_slot": None})
    if schedule.date is not None and schedule.time_slot is not None:
        if schedule.time_slot not in matcher.slots_for(schedule.date, table, minimum):
            return schedule.model_copy(update={"time_slot": None})
    return schedule


def update_contact(
    contact: ContactInfo,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> ContactInfo:
    update = {
        key: value
        for key, value in (("name", name), ("email", email), ("phone", phone))
        if value is not None
    }
    return contact.model_copy(update=update)


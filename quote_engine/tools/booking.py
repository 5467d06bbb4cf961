"""
Booking commit: resolve the customer, snapshot the quote, persist the repair.

The customer write and the booking write are two separate store calls and
are not atomic. A retry after a failed booking write re-resolves the
customer by email, so it never creates a duplicate customer.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from quote_engine.errors import CommitFailed, QuoteEngineError, ValidationBlocked
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.booking_schema import (
    AuthenticatedUser,
    BookingRecord,
    BookingStatus,
    CustomerRecord,
    IssueSnapshot,
    TierSnapshot,
)
from quote_engine.schemas.quote_schema import ContactInfo, QuoteSelection, ScheduleSelection
from quote_engine.tools.catalog import Catalog
from quote_engine.tools.pricing import PricingResolver
from quote_engine.tools.store import PersistenceProvider, SupportsCustomerUpsert
from quote_engine.utils import format_phone_e164

logger = get_session_logger(__name__)


class BookingCommitter:
    """Creates the customer (if needed) and the pending booking record."""

    def __init__(
        self,
        catalog: Catalog,
        pricing: PricingResolver,
        store: PersistenceProvider,
    ) -> None:
        self._catalog = catalog
        self._pricing = pricing
        self._store = store

    async def commit(
        self,
        selection: QuoteSelection,
        schedule: ScheduleSelection,
        contact: Optional[ContactInfo] = None,
        user: Optional[AuthenticatedUser] = None,
        parts_in_stock: bool = False,
    ) -> BookingRecord:
        """
        Persist a booking for a fully validated quote.

        Args:
            selection: Device, issues, and chosen tiers.
            schedule: Date, slot, and an accepted service address.
            contact: Contact details, required when ``user`` is None.
            user: The signed-in customer, if any.
            parts_in_stock: Whether every part was in stock at booking time.

        Raises:
            ValidationBlocked: if the quote or schedule is incomplete.
            Unpriced: if a selected option has no price.
            CommitFailed: if either store write fails.
        """
        self._check_ready(selection, schedule, contact, user)
        total = self._pricing.total_for(selection)
        issues, issue_tiers, overall_tier = self._snapshot(selection)

        try:
            customer = await self._resolve_customer(contact, user)
        except QuoteEngineError:
            raise
        except Exception as e:
            logger.error("Customer write failed: %s", e)
            raise CommitFailed("Failed to save customer profile") from e

        booking = BookingRecord(
            booking_ref=f"RP-{uuid.uuid4().hex[:6].upper()}",
            customer_ref=customer.id,
            device=selection.device.name,
            issues=issues,
            parts_tier=overall_tier,
            issue_tiers=issue_tiers,
            status=BookingStatus.PENDING,
            total_estimate=total,
            labor_fee=self._pricing.labor_fee,
            service_fee=self._pricing.service_fee,
            notes=selection.notes.strip() or None,
            schedule_date=schedule.date,
            schedule_time_slot=schedule.time_slot,
            address=schedule.address,
            device_color=selection.back_glass_color,
            parts_in_stock=parts_in_stock,
            created_at=datetime.now(timezone.utc),
        )

        try:
            saved = await self._store.create_booking(booking)
        except Exception as e:
            logger.error("Booking write failed for customer %s: %s", customer.id, e)
            raise CommitFailed("Failed to save booking") from e

        logger.info("Booking %s committed, total %d", saved.booking_ref, saved.total_estimate)
        return saved

    @staticmethod
    def _check_ready(
        selection: QuoteSelection,
        schedule: ScheduleSelection,
        contact: Optional[ContactInfo],
        user: Optional[AuthenticatedUser],
    ) -> None:
        if selection.device is None or not selection.issues:
            raise ValidationBlocked("quote_incomplete", "Select a device and at least one issue.")
        if schedule.date is None or schedule.time_slot is None:
            raise ValidationBlocked("schedule_incomplete", "Pick a date and time slot.")
        if not schedule.address:
            raise ValidationBlocked("address_not_validated", "Choose a serviceable address.")
        if user is None and (contact is None or not contact.email.strip()):
            raise ValidationBlocked("contact_incomplete", "Enter your name and email.")

    def _snapshot(
        self, selection: QuoteSelection
    ) -> tuple[list[IssueSnapshot], dict[str, TierSnapshot], TierSnapshot]:
        """Copy issue and tier names by value so later catalog edits never alter the booking."""
        issues = []
        issue_tiers = {}
        for issue_id in selection.issues:
            repair = self._catalog.get_repair_type(issue_id)
            issues.append(IssueSnapshot(id=issue_id, name=repair.name if repair else issue_id))
            tier = self._catalog.get_tier(selection.issue_tiers[issue_id])
            issue_tiers[issue_id] = TierSnapshot(id=tier.id, name=tier.name)

        best = max(
            (self._catalog.get_tier(t.id) for t in issue_tiers.values()),
            key=lambda tier: tier.rank,
        )
        return issues, issue_tiers, TierSnapshot(id=best.id, name=best.name)

    async def _resolve_customer(
        self,
        contact: Optional[ContactInfo],
        user: Optional[AuthenticatedUser],
    ) -> CustomerRecord:
        phone = None
        if contact is not None and contact.phone:
            phone = format_phone_e164(contact.phone) or contact.phone

        if user is not None:
            return await self._resolve_signed_in(user, contact, phone)
        return await self._resolve_by_email(contact.name.strip(), contact.email, phone)

    async def _resolve_signed_in(
        self,
        user: AuthenticatedUser,
        contact: Optional[ContactInfo],
        phone: Optional[str],
    ) -> CustomerRecord:
        name = contact.name.strip() if contact is not None else ""

        existing = await self._store.get_customer(user.id)
        if existing is not None:
            if contact is None:
                return existing
            # An empty name leaves the stored profile name alone
            return await self._store.update_customer(existing.id, name, phone)

        # No profile under the account id yet: the email may already belong
        # to a customer from an earlier booking.
        by_email = await self._store.find_customer_by_email(user.email)
        if by_email is not None:
            return await self._store.update_customer(by_email.id, name, phone)
        name = name or user.full_name or user.email.split("@")[0] or "Customer"
        return await self._resolve_by_email(name, user.email, phone, customer_id=user.id)

    async def _resolve_by_email(
        self,
        name: str,
        email: str,
        phone: Optional[str],
        customer_id: Optional[str] = None,
    ) -> CustomerRecord:
        if isinstance(self._store, SupportsCustomerUpsert):
            return await self._store.upsert_customer_by_email(name, email, phone, customer_id)

        # Look-up-then-write: two concurrent bookings for a new email can
        # both miss the lookup and create duplicate customers.
        existing = await self._store.find_customer_by_email(email)
        if existing is not None:
            return await self._store.update_customer(existing.id, name, phone)
        return await self._store.create_customer(name, email, phone, customer_id=customer_id)

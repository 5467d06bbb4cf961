"""
Quote session: one customer's pass through the wizard.

QuoteSession owns the state machine and drives the tools around it. Every
public action is a step boundary: a QuoteEngineError raised inside it is
caught, its user message is stored on ``error``, and the wizard stays on the
current step. Actions return True when they took effect.

Usage:
    session = QuoteSession(store=InMemoryStore(), geocoder=StaticGeocoder({...}))
    await session.select_device("iphone-13")
    await session.next()
    session.toggle_issue("screen")
    session.set_tier("screen", TierId.PREMIUM)
    await session.next()
"""

import uuid
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

from quote_engine.errors import (
    InvalidStepError,
    QuoteEngineError,
    ServiceAreaRejected,
    ValidationBlocked,
)
from quote_engine.logging_context import get_session_logger, session_scope
from quote_engine.schemas.booking_schema import (
    AddressCandidate,
    AuthenticatedUser,
    BookingRecord,
    ServiceAreaResult,
)
from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import ContactInfo, Quote, TimeSlot
from quote_engine.tools.availability import (
    AvailabilityMatcher,
    AvailabilityProvider,
    AvailabilityTable,
    load_table,
)
from quote_engine.tools.booking import BookingCommitter
from quote_engine.tools.catalog import Catalog, default_catalog
from quote_engine.tools.geocoding import Geocoder, NominatimGeocoder
from quote_engine.tools.inventory import InventoryChecker, InventoryProvider, load_inventory
from quote_engine.tools.otp import InMemoryIdentityProvider, IdentityProvider, OTPAuthController, OtpEntry
from quote_engine.tools.pricing import PricingResolver
from quote_engine.tools.service_area import AddressSearch, ServiceAreaValidator
from quote_engine.tools.store import InMemoryStore, PersistenceProvider
from quote_engine.wizard import selection as edits
from quote_engine.wizard.guards import (
    GuardContext,
    all_of,
    contact_ready,
    is_guest,
    phone_valid,
    quote_ready,
)
from quote_engine.wizard.state_machine import (
    QuoteState,
    QuoteStateMachine,
    TransitionTrigger,
    WizardStep,
)

logger = get_session_logger(__name__)

FORWARD_TRIGGERS = {
    WizardStep.DEVICE: TransitionTrigger.DEVICE_CONFIRMED,
    WizardStep.ISSUES: TransitionTrigger.ISSUES_CONFIRMED,
    WizardStep.SCHEDULE: TransitionTrigger.SCHEDULE_CONFIRMED,
}


class QuoteSession:
    """Drives one quote from device choice to a committed booking."""

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        inventory_provider: Optional[InventoryProvider] = None,
        availability_provider: Optional[AvailabilityProvider] = None,
        geocoder: Optional[Geocoder] = None,
        identity: Optional[IdentityProvider] = None,
        store: Optional[PersistenceProvider] = None,
        today: Optional[date] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or f"QS-{uuid.uuid4().hex[:8]}"

        self.catalog = catalog or default_catalog()
        self.pricing = PricingResolver(self.catalog)
        self.today = today or date.today()

        self._inventory_provider = inventory_provider
        self._availability_provider = availability_provider
        self.inventory = InventoryChecker(None)
        self.table: Optional[AvailabilityTable] = None

        self.identity = identity or InMemoryIdentityProvider()
        self.otp = OTPAuthController(self.identity)
        self.otp_entry = OtpEntry()
        self._user: Optional[AuthenticatedUser] = self.identity.current_user()

        self.validator = ServiceAreaValidator(geocoder or NominatimGeocoder())
        self.address_search = AddressSearch(self.validator)

        self.store = store or InMemoryStore()
        self.committer = BookingCommitter(self.catalog, self.pricing, self.store)
        self.machine = QuoteStateMachine(
            QuoteState(authenticated=self.identity.is_authenticated())
        )
        self.error: Optional[str] = None
        self.booking: Optional[BookingRecord] = None
        with session_scope(self.session_id):
            logger.info("Quote session started (authenticated=%s)", self.state.authenticated)

    # ------------------------------------------------------------------ #
    # Derived views
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> QuoteState:
        return self.machine.state

    @property
    def step(self) -> WizardStep:
        return self.machine.current_step

    @property
    def matcher(self) -> AvailabilityMatcher:
        return AvailabilityMatcher(self.inventory)

    @property
    def minimum_date(self) -> date:
        return self.matcher.minimum_date(self.state.selection, self.today)

    def context(self) -> GuardContext:
        return GuardContext(
            catalog=self.catalog,
            pricing=self.pricing,
            matcher=self.matcher,
            minimum_date=self.minimum_date,
            table=self.table,
        )

    def quote(self) -> Quote:
        """Itemized quote for the current selection. Raises Unpriced if incomplete."""
        return self.pricing.quote_for(self.state.selection)

    def selectable_dates(self) -> list[date]:
        return self.matcher.selectable_dates(self.table, self.minimum_date)

    def slots_for(self, day: date) -> list[TimeSlot]:
        return self.matcher.slots_for(day, self.table, self.minimum_date)

    @property
    def address_candidates(self) -> list[AddressCandidate]:
        return self.address_search.candidates

    # ------------------------------------------------------------------ #
    # Step boundary
    # ------------------------------------------------------------------ #

    @contextmanager
    def _boundary(self, action: str) -> Iterator[list[bool]]:
        """Catch domain errors, record the inline message, and flag success."""
        self.error = None
        outcome = [False]
        with session_scope(self.session_id):
            try:
                yield outcome
            except QuoteEngineError as e:
                self.error = e.user_message
                logger.info("%s blocked on %s: %s", action, self.step.value, e)
                return
            outcome[0] = True

    def _require_step(self, *steps: WizardStep) -> None:
        if self.step not in steps:
            raise InvalidStepError(self.step.value, [s.value for s in steps])

    # ------------------------------------------------------------------ #
    # Device and issues
    # ------------------------------------------------------------------ #

    async def select_device(self, device_id: str) -> bool:
        with self._boundary("select_device") as ok:
            self._require_step(WizardStep.DEVICE)
            device = self.catalog.get_device(device_id)
            if device is None:
                raise ValidationBlocked("unknown_device", f"Unknown device '{device_id}'.")
            self.machine.update(
                selection=edits.select_device(self.state.selection, self.catalog, device)
            )
            if self._inventory_provider is not None:
                self.inventory = await load_inventory(self._inventory_provider, device.name)
        return ok[0]

    def toggle_issue(self, issue_id: str) -> bool:
        with self._boundary("toggle_issue") as ok:
            self._require_step(WizardStep.ISSUES)
            self.machine.update(
                selection=edits.toggle_issue(self.state.selection, self.catalog, issue_id)
            )
        return ok[0]

    def set_tier(self, issue_id: str, tier_id: TierId) -> bool:
        with self._boundary("set_tier") as ok:
            self._require_step(WizardStep.ISSUES)
            self.machine.update(selection=edits.set_tier(
                self.state.selection, self.catalog, self.pricing, issue_id, tier_id
            ))
        return ok[0]

    def set_color(self, color: str) -> bool:
        with self._boundary("set_color") as ok:
            self._require_step(WizardStep.ISSUES)
            self.machine.update(
                selection=edits.set_back_glass_color(self.state.selection, self.catalog, color)
            )
        return ok[0]

    def set_notes(self, notes: str) -> bool:
        with self._boundary("set_notes") as ok:
            self._require_step(WizardStep.ISSUES, WizardStep.REVIEW)
            self.machine.update(selection=edits.set_notes(self.state.selection, notes))
        return ok[0]

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    async def next(self) -> bool:
        """Move forward from DEVICE, ISSUES, or SCHEDULE."""
        with self._boundary("next") as ok:
            trigger = FORWARD_TRIGGERS.get(self.step)
            if trigger is None:
                raise InvalidStepError(self.step.value, [s.value for s in FORWARD_TRIGGERS])
            self.machine.transition(trigger, self.context())
            if self.step == WizardStep.SCHEDULE:
                await self._enter_schedule()
            elif self.step == WizardStep.REVIEW:
                await self._enter_review()
        return ok[0]

    def back(self) -> bool:
        with self._boundary("back") as ok:
            if self.step == WizardStep.SCHEDULE:
                self.address_search.cancel()
            if self.step == WizardStep.VERIFY:
                self.otp_entry.clear()
            self.machine.transition(TransitionTrigger.BACK, self.context())
        return ok[0]

    async def _enter_schedule(self) -> None:
        # A failed lookup leaves no table, so the next visit tries again
        if self.table is None and self._availability_provider is not None:
            self.table = await load_table(self._availability_provider, self.today)
        # Tiers may have changed the minimum date since the schedule was last set
        ctx = self.context()
        self.machine.update(schedule=edits.revalidate_schedule(
            self.state.schedule, ctx.matcher, ctx.table, ctx.minimum_date
        ))

    async def _enter_review(self) -> None:
        """Pre-fill blank contact fields from the signed-in customer's profile."""
        if self._user is None:
            return
        try:
            profile = await self.store.get_customer(self._user.id)
            if profile is None:
                profile = await self.store.find_customer_by_email(self._user.email)
        except Exception as e:
            logger.warning("Profile lookup failed for %s: %s", self._user.id, e)
            profile = None

        contact = self.state.contact
        self.machine.update(contact=contact.model_copy(update={
            "name": contact.name or (profile.full_name if profile else self._user.full_name or ""),
            "email": contact.email or (profile.email if profile else self._user.email),
            "phone": contact.phone or (profile.phone if profile else None),
        }))

    # ------------------------------------------------------------------ #
    # Schedule and address
    # ------------------------------------------------------------------ #

    def choose_date(self, day: date) -> bool:
        with self._boundary("choose_date") as ok:
            self._require_step(WizardStep.SCHEDULE)
            ctx = self.context()
            self.machine.update(schedule=edits.choose_date(
                self.state.schedule, day, ctx.matcher, ctx.table, ctx.minimum_date
            ))
        return ok[0]

    def choose_time_slot(self, slot: TimeSlot) -> bool:
        with self._boundary("choose_time_slot") as ok:
            self._require_step(WizardStep.SCHEDULE)
            ctx = self.context()
            self.machine.update(schedule=edits.choose_time_slot(
                self.state.schedule, slot, ctx.matcher, ctx.table, ctx.minimum_date
            ))
        return ok[0]

    def type_address(self, text: str) -> None:
        """Feed a keystroke to the debounced address search."""
        if self.step != WizardStep.SCHEDULE:
            return
        # The debounce task copies the current context, session id included
        with session_scope(self.session_id):
            self.address_search.type(text)
        if not text.strip():
            self.machine.update(schedule=self.state.schedule.model_copy(
                update={"address": "", "service_area_error": None}
            ))

    def select_address(self, candidate: AddressCandidate) -> bool:
        with self._boundary("select_address") as ok:
            self._require_step(WizardStep.SCHEDULE)
            self._apply_address(self.address_search.select(candidate))
        return ok[0]

    async def validate_address(self, text: str) -> bool:
        """Resolve typed text directly, without going through the candidate list."""
        with self._boundary("validate_address") as ok:
            self._require_step(WizardStep.SCHEDULE)
            self.address_search.cancel()
            result = await self.validator.validate(text)
            if not result.accepted and result.rejected_city_label is None:
                raise ValidationBlocked(
                    "address_not_found", "We couldn't find that address. Try adding the city."
                )
            self._apply_address(result)
        return ok[0]

    def _apply_address(self, result: ServiceAreaResult) -> None:
        self.machine.update(schedule=ServiceAreaValidator.apply(self.state.schedule, result))
        if not result.accepted:
            raise ServiceAreaRejected(result.rejected_city_label)

    # ------------------------------------------------------------------ #
    # Review, verification, booking
    # ------------------------------------------------------------------ #

    def update_contact(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> bool:
        with self._boundary("update_contact") as ok:
            self._require_step(WizardStep.REVIEW)
            self.machine.update(
                contact=edits.update_contact(self.state.contact, name, email, phone)
            )
        return ok[0]

    async def submit_review(self) -> bool:
        """Book directly when signed in; otherwise send a verification code."""
        with self._boundary("submit_review") as ok:
            self._require_step(WizardStep.REVIEW)
            ctx = self.context()
            if self.state.authenticated:
                self.machine.check(all_of(quote_ready, phone_valid), ctx)
                await self._commit()
            else:
                self.machine.check(all_of(is_guest, quote_ready, contact_ready), ctx)
                await self.otp.request_code(self.state.contact.email.strip())
                self.otp_entry.clear()
                self.machine.transition(TransitionTrigger.CONTACT_SUBMITTED, ctx)
        return ok[0]

    async def resend_code(self) -> bool:
        with self._boundary("resend_code") as ok:
            self._require_step(WizardStep.VERIFY)
            await self.otp.request_code(self.state.contact.email.strip())
            self.otp_entry.clear()
        return ok[0]

    async def confirm_code(self) -> bool:
        """Confirm the entered code, then commit the booking.

        A confirmed code is kept if the commit fails, so a retry goes
        straight to the commit.
        """
        with self._boundary("confirm_code") as ok:
            self._require_step(WizardStep.VERIFY)
            if not self.state.code_verified:
                self._user = await self.otp.confirm_code(self.otp_entry)
                self.machine.update(code_verified=True, authenticated=True)
            await self._commit()
        return ok[0]

    async def _commit(self) -> None:
        selection = self.state.selection
        contact = self.state.contact
        has_contact = bool(contact.name.strip() or contact.email.strip() or contact.phone)
        if self._user is None:
            self._user = self.identity.current_user()

        self.booking = await self.committer.commit(
            selection,
            self.state.schedule,
            contact=self._contact_for_commit(contact) if has_contact else None,
            user=self._user,
            parts_in_stock=self.inventory.all_in_stock(selection),
        )
        self.machine.update(booking_ref=self.booking.booking_ref)
        self.machine.transition(TransitionTrigger.BOOKING_COMMITTED, self.context())
        logger.info("Session booked %s", self.booking.booking_ref)

    def _contact_for_commit(self, contact: ContactInfo) -> ContactInfo:
        if contact.email.strip() or self._user is None:
            return contact
        return contact.model_copy(update={"email": self._user.email})

"""Integration tests: a QuoteSession driven from device choice to booking."""

import logging
from datetime import timedelta

import pytest

from quote_engine.errors import LookupFailed
from quote_engine.schemas.booking_schema import AuthenticatedUser, BookingStatus
from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import TimeSlot
from quote_engine.tools.availability import MockAvailabilityProvider
from quote_engine.tools.otp import InMemoryIdentityProvider
from quote_engine.tools.store import InMemoryStore
from quote_engine.wizard.session import QuoteSession
from quote_engine.wizard.state_machine import WizardStep
from tests.conftest import AUSTIN, DENTON, TODAY


class _FailingOnceStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.fail_next_booking = True

    async def create_booking(self, booking):
        if self.fail_next_booking:
            self.fail_next_booking = False
            raise ConnectionError("write timed out")
        return await super().create_booking(booking)


class _FlakyAvailability(MockAvailabilityProvider):
    """Fails the first schedule lookup, then serves the given rows."""

    def __init__(self, rows):
        super().__init__(rows=rows)
        self.calls = 0

    async def fetch_schedule_rows(self, start, end):
        self.calls += 1
        if self.calls == 1:
            raise LookupFailed("schedule service timed out")
        return await super().fetch_schedule_rows(start, end)


@pytest.fixture
def make_session(inventory, geocoder, identity, store):
    def factory(**overrides):
        kwargs = dict(
            inventory_provider=inventory,
            geocoder=geocoder,
            identity=identity,
            store=store,
            today=TODAY,
            session_id="QS-test",
        )
        kwargs.update(overrides)
        session = QuoteSession(**kwargs)
        session.address_search._debounce = 0.01
        return session

    return factory


async def _to_schedule(session, tiers=None):
    tiers = tiers or {"screen": TierId.PREMIUM}
    assert await session.select_device("iphone-13")
    assert await session.next()
    for issue_id, tier_id in tiers.items():
        assert session.toggle_issue(issue_id)
        assert session.set_tier(issue_id, tier_id)
    assert await session.next(), session.error
    assert session.step == WizardStep.SCHEDULE


async def _to_review(session, tiers=None):
    await _to_schedule(session, tiers)
    day = session.minimum_date
    assert session.choose_date(day), session.error
    assert session.choose_time_slot(TimeSlot.AFTERNOON), session.error
    assert session.select_address(DENTON), session.error
    assert await session.next(), session.error
    assert session.step == WizardStep.REVIEW


async def _book_as_guest(session, identity, email="sam@example.com", name="Sam Rivera"):
    await _to_review(session)
    assert session.update_contact(name=name, email=email)
    assert await session.submit_review(), session.error
    session.otp_entry.paste(identity.last_code_for(email))
    assert await session.confirm_code(), session.error
    return session.booking


class TestGuestBooking:
    @pytest.mark.asyncio
    async def test_full_guest_flow(self, make_session, identity, store):
        session = make_session()
        await _to_review(session)
        assert session.quote().total == 198

        assert session.update_contact(name="Sam Rivera", email="sam@example.com")
        assert await session.submit_review(), session.error
        assert session.step == WizardStep.VERIFY

        session.otp_entry.paste(identity.last_code_for("sam@example.com"))
        assert await session.confirm_code(), session.error
        assert session.step == WizardStep.BOOKED
        assert session.machine.is_terminal()

        booking = session.booking
        assert booking.status == BookingStatus.PENDING
        assert booking.total_estimate == 198
        assert booking.parts_in_stock
        assert booking.address == DENTON.short_display
        assert store.get_booking(booking.booking_ref) is not None
        assert session.machine.get_step_trace() == [
            "device", "issues", "schedule", "review", "verify", "booked",
        ]

    @pytest.mark.asyncio
    async def test_review_needs_contact(self, make_session, identity):
        session = make_session()
        await _to_review(session)
        assert not await session.submit_review()
        assert session.step == WizardStep.REVIEW
        assert session.error == "Enter your name."
        assert identity.outbox == []

    @pytest.mark.asyncio
    async def test_incomplete_code_stays_on_verify(self, make_session, store):
        session = make_session()
        await _to_review(session)
        session.update_contact(name="Sam", email="sam@example.com")
        await session.submit_review()
        session.otp_entry.paste("123")
        assert not await session.confirm_code()
        assert session.step == WizardStep.VERIFY
        assert "6 digits" in session.error
        assert store.customer_count == 0

    @pytest.mark.asyncio
    async def test_commit_failure_retry_skips_code(self, make_session, identity):
        store = _FailingOnceStore()
        session = make_session(store=store)
        await _to_review(session)
        session.update_contact(name="Sam", email="sam@example.com")
        await session.submit_review()
        session.otp_entry.paste(identity.last_code_for("sam@example.com"))

        assert not await session.confirm_code()
        assert session.step == WizardStep.VERIFY
        assert session.error == "Failed to book your repair. Please try again."
        assert session.state.code_verified

        assert await session.confirm_code(), session.error
        assert session.step == WizardStep.BOOKED
        assert store.customer_count == 1


class TestSignedInBooking:
    @pytest.mark.asyncio
    async def test_skips_verification(self, make_session, signed_in_identity, store):
        session = make_session(identity=signed_in_identity)
        await _to_review(session)
        assert await session.submit_review(), session.error
        assert session.step == WizardStep.BOOKED
        assert session.booking.customer_ref == "user-42"
        assert signed_in_identity.outbox == []


class TestWizardRules:
    @pytest.mark.asyncio
    async def test_unknown_device(self, make_session):
        session = make_session()
        assert not await session.select_device("pixel-9")
        assert session.step == WizardStep.DEVICE
        assert session.error

    @pytest.mark.asyncio
    async def test_actions_outside_their_step(self, make_session):
        session = make_session()
        assert not session.toggle_issue("screen")
        assert session.error == "That isn't available on this step."

    @pytest.mark.asyncio
    async def test_software_goes_to_store(self, make_session):
        session = make_session()
        await session.select_device("iphone-13")
        await session.next()
        session.toggle_issue("software")
        assert await session.next()
        assert session.step == WizardStep.STORE_VISIT_REQUIRED
        assert session.back()
        assert session.step == WizardStep.ISSUES

    @pytest.mark.asyncio
    async def test_software_tier_is_unpriced(self, make_session):
        session = make_session()
        await session.select_device("iphone-13")
        await session.next()
        session.toggle_issue("software")
        assert not session.set_tier("software", TierId.PREMIUM)
        assert "isn't priced" in session.error

    @pytest.mark.asyncio
    async def test_back_glass_colour_required(self, make_session):
        session = make_session()
        await session.select_device("iphone-14")
        await session.next()
        session.toggle_issue("back-glass")
        session.set_tier("back-glass", TierId.PREMIUM)
        assert not await session.next()
        assert session.step == WizardStep.ISSUES
        assert session.set_color("Purple")
        assert await session.next()

    @pytest.mark.asyncio
    async def test_needs_order_pushes_minimum_date(self, make_session):
        session = make_session()
        await _to_schedule(session, {"battery": TierId.GENUINE})
        assert session.minimum_date == TODAY + timedelta(days=3)
        assert not session.choose_date(TODAY)
        assert session.state.schedule.date is None
        assert session.choose_date(TODAY + timedelta(days=3))

    @pytest.mark.asyncio
    async def test_notes_limit(self, make_session):
        session = make_session()
        await session.select_device("iphone-13")
        await session.next()
        assert not session.set_notes("x" * 501)
        assert session.set_notes("x" * 500)

    @pytest.mark.asyncio
    async def test_changing_tier_revalidates_schedule(self, make_session):
        session = make_session()
        await _to_review(session)
        assert session.back()
        assert session.back()
        assert session.step == WizardStep.ISSUES
        # Switch to a part that must be ordered: today is no longer bookable
        assert session.set_tier("screen", TierId.ECONOMY)
        assert await session.next()
        assert session.state.schedule.date is None
        assert session.state.schedule.address == DENTON.short_display


class TestAddressStep:
    @pytest.mark.asyncio
    async def test_outside_area_rejected_and_cleared(self, make_session):
        session = make_session()
        await _to_schedule(session)
        assert session.select_address(DENTON)
        assert not session.select_address(AUSTIN)
        assert session.state.schedule.address == ""
        assert session.state.schedule.service_area_error == "Austin"
        assert session.error == "Not available in Austin"

    @pytest.mark.asyncio
    async def test_typed_search_fills_candidates(self, make_session):
        session = make_session()
        await _to_schedule(session)
        session.type_address("123 Elm")
        await session.address_search.wait_idle()
        assert session.address_candidates == [DENTON]

    @pytest.mark.asyncio
    async def test_clearing_input_clears_address_and_error(self, make_session):
        session = make_session()
        await _to_schedule(session)
        session.select_address(AUSTIN)
        assert session.state.schedule.service_area_error == "Austin"
        session.type_address("")
        assert session.state.schedule.address == ""
        assert session.state.schedule.service_area_error is None
        assert session.address_candidates == []

    @pytest.mark.asyncio
    async def test_free_text_validation(self, make_session):
        session = make_session()
        await _to_schedule(session)
        assert await session.validate_address("123 Elm Street")
        assert session.state.schedule.address == DENTON.short_display
        assert not await session.validate_address("77 Unknown Road")
        assert session.state.schedule.address == DENTON.short_display

    @pytest.mark.asyncio
    async def test_back_cancels_pending_search(self, make_session, geocoder):
        session = make_session()
        await _to_schedule(session)
        session.address_search._debounce = 0.05
        session.type_address("123 Elm")
        assert session.back()
        await session.address_search.wait_idle()
        assert geocoder.calls == []


class TestAvailabilityTable:
    @pytest.mark.asyncio
    async def test_table_limits_slots(self, make_session):
        rows = [{
            "schedule_date": TODAY.isoformat(),
            "time_slots": ["evening"],
            "is_available": True,
        }]
        session = make_session(availability_provider=MockAvailabilityProvider(rows=rows))
        await _to_schedule(session)
        assert session.slots_for(TODAY) == [TimeSlot.EVENING]
        assert session.selectable_dates() == [TODAY]
        session.choose_date(TODAY)
        assert not session.choose_time_slot(TimeSlot.MORNING)
        assert session.choose_time_slot(TimeSlot.EVENING)


class TestCustomerRecords:
    @pytest.mark.asyncio
    async def test_verified_guest_reuses_existing_customer(self, make_session, identity, store):
        existing = await store.create_customer("Sam Rivera", "sam@example.com")
        booking = await _book_as_guest(make_session(), identity, email="Sam@Example.com")
        assert booking.customer_ref == existing.id
        assert store.customer_count == 1

    @pytest.mark.asyncio
    async def test_repeat_guest_bookings_share_one_customer(self, make_session, store):
        refs = []
        for _ in range(2):
            identity = InMemoryIdentityProvider(code_length=6)
            booking = await _book_as_guest(make_session(identity=identity), identity)
            refs.append(booking.customer_ref)
        assert refs[0] == refs[1]
        assert store.customer_count == 1
        assert len(store.bookings_for(refs[0])) == 2

    @pytest.mark.asyncio
    async def test_signed_in_contact_prefilled_from_profile(self, make_session, store):
        await store.create_customer("Sam Rivera", "sam@example.com", customer_id="user-42")
        user = AuthenticatedUser(id="user-42", email="sam@example.com")
        session = make_session(identity=InMemoryIdentityProvider(signed_in=user, code_length=6))
        await _to_review(session)
        assert session.state.contact.name == "Sam Rivera"
        assert session.state.contact.email == "sam@example.com"

        assert session.update_contact(phone="(940) 555-0142")
        assert await session.submit_review(), session.error
        customer = await store.get_customer("user-42")
        assert customer.full_name == "Sam Rivera"
        assert customer.phone == "+19405550142"

    @pytest.mark.asyncio
    async def test_invalid_phone_blocks_booking(self, make_session, signed_in_identity, store):
        session = make_session(identity=signed_in_identity)
        await _to_review(session)
        session.update_contact(phone="911-555-0142")
        assert not await session.submit_review()
        assert session.step == WizardStep.REVIEW
        assert session.error == "Enter a valid US phone number."
        assert store.customer_count == 0


class TestAvailabilityRetry:
    @pytest.mark.asyncio
    async def test_failed_load_retried_on_next_visit(self, make_session):
        rows = [{
            "schedule_date": TODAY.isoformat(),
            "time_slots": ["evening"],
            "is_available": True,
        }]
        provider = _FlakyAvailability(rows)
        session = make_session(availability_provider=provider)
        await _to_schedule(session)
        assert session.table is None
        assert session.slots_for(TODAY) == list(TimeSlot)

        assert session.back()
        assert await session.next()
        assert provider.calls == 2
        assert session.slots_for(TODAY) == [TimeSlot.EVENING]

        assert session.back()
        assert await session.next()
        assert provider.calls == 2


class TestSessionLogging:
    @pytest.mark.asyncio
    async def test_records_tagged_with_acting_session(self, make_session, caplog):
        first = make_session(session_id="QS-A")
        second = make_session(session_id="QS-B")
        caplog.set_level(logging.INFO, logger="quote_engine")
        caplog.clear()

        assert not await first.select_device("pixel-9")
        assert not await second.select_device("pixel-9")
        assert not await first.select_device("pixel-9")

        tags = [r.session_id for r in caplog.records if r.name == "quote_engine.wizard.session"]
        assert tags == ["QS-A", "QS-B", "QS-A"]

    @pytest.mark.asyncio
    async def test_store_records_carry_session_id(self, make_session, identity, caplog):
        caplog.set_level(logging.INFO, logger="quote_engine")
        await _book_as_guest(make_session(), identity)

        store_records = [r for r in caplog.records if r.name == "quote_engine.tools.store"]
        assert store_records
        assert {r.session_id for r in store_records} == {"QS-test"}

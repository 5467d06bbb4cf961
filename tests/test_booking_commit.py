"""Tests for committing a booking and resolving the customer."""

import pytest

from quote_engine.errors import CommitFailed, ValidationBlocked
from quote_engine.schemas.booking_schema import AuthenticatedUser, BookingStatus
from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import ContactInfo, TimeSlot
from quote_engine.tools.booking import BookingCommitter
from quote_engine.tools.store import InMemoryStore, SupportsCustomerUpsert
from tests.conftest import TODAY, make_schedule, make_selection

CONTACT = ContactInfo(name="Sam Rivera", email="Sam@Example.com", phone="(940) 555-0142")


class _LookupOnlyStore:
    """A store without the atomic upsert, delegating to an InMemoryStore."""

    def __init__(self):
        self.inner = InMemoryStore()

    async def find_customer_by_email(self, email):
        return await self.inner.find_customer_by_email(email)

    async def get_customer(self, customer_id):
        return await self.inner.get_customer(customer_id)

    async def create_customer(self, full_name, email, phone=None, customer_id=None):
        return await self.inner.create_customer(full_name, email, phone, customer_id)

    async def update_customer(self, customer_id, full_name, phone=None):
        return await self.inner.update_customer(customer_id, full_name, phone)

    async def create_booking(self, booking):
        return await self.inner.create_booking(booking)


class _FlakyBookingStore(InMemoryStore):
    """Fails the first booking write, then succeeds."""

    def __init__(self):
        super().__init__()
        self.failures_left = 1

    async def create_booking(self, booking):
        if self.failures_left:
            self.failures_left -= 1
            raise ConnectionError("write timed out")
        return await super().create_booking(booking)


class _BrokenCustomerStore(InMemoryStore):
    async def upsert_customer_by_email(self, full_name, email, phone=None, customer_id=None):
        raise ConnectionError("customers table unavailable")


@pytest.fixture
def committer(catalog, pricing, store):
    return BookingCommitter(catalog, pricing, store)


class TestCommit:
    @pytest.mark.asyncio
    async def test_creates_pending_booking_with_total(self, catalog, committer, store):
        booking = await committer.commit(
            make_selection(catalog, tiers={"screen": TierId.PREMIUM}),
            make_schedule(),
            contact=CONTACT,
        )
        assert booking.status == BookingStatus.PENDING
        assert booking.total_estimate == 198
        assert booking.booking_ref.startswith("RP-")
        assert booking.schedule_date == TODAY
        assert booking.schedule_time_slot == TimeSlot.MORNING
        assert store.get_booking(booking.booking_ref) == booking

    @pytest.mark.asyncio
    async def test_snapshots_names_and_best_tier(self, catalog, committer):
        selection = make_selection(
            catalog, tiers={"screen": TierId.ECONOMY, "battery": TierId.GENUINE}
        )
        booking = await committer.commit(selection, make_schedule(), contact=CONTACT)
        assert [i.name for i in booking.issues] == ["Screen Replacement", "Battery Replacement"]
        assert booking.issue_tiers["screen"].name == "Economy"
        assert booking.parts_tier.id == TierId.GENUINE

    @pytest.mark.asyncio
    async def test_notes_and_colour_recorded(self, catalog, committer):
        selection = make_selection(
            catalog, "iphone-14", {"back-glass": TierId.PREMIUM}, color="Purple"
        ).model_copy(update={"notes": "  Gate code 1234  "})
        booking = await committer.commit(selection, make_schedule(), contact=CONTACT)
        assert booking.device_color == "Purple"
        assert booking.notes == "Gate code 1234"

    @pytest.mark.asyncio
    async def test_missing_address_blocked(self, catalog, committer, store):
        with pytest.raises(ValidationBlocked):
            await committer.commit(
                make_selection(catalog), make_schedule(address=""), contact=CONTACT
            )
        assert store.customer_count == 0

    @pytest.mark.asyncio
    async def test_guest_without_email_blocked(self, catalog, committer):
        with pytest.raises(ValidationBlocked):
            await committer.commit(
                make_selection(catalog), make_schedule(), contact=ContactInfo(name="Sam")
            )


class TestCustomerResolution:
    def test_in_memory_store_supports_upsert(self, store):
        assert isinstance(store, SupportsCustomerUpsert)
        assert not isinstance(_LookupOnlyStore(), SupportsCustomerUpsert)

    @pytest.mark.asyncio
    async def test_same_email_reuses_customer(self, catalog, committer, store):
        first = await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)
        again = CONTACT.model_copy(update={"email": "  sam@example.COM "})
        second = await committer.commit(make_selection(catalog), make_schedule(), contact=again)
        assert first.customer_ref == second.customer_ref
        assert store.customer_count == 1

    @pytest.mark.asyncio
    async def test_phone_stored_as_e164(self, catalog, committer, store):
        booking = await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)
        customer = await store.get_customer(booking.customer_ref)
        assert customer.phone == "+19405550142"

    @pytest.mark.asyncio
    async def test_lookup_path_without_upsert(self, catalog, pricing):
        store = _LookupOnlyStore()
        committer = BookingCommitter(catalog, pricing, store)
        first = await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)
        renamed = CONTACT.model_copy(update={"name": "Samantha Rivera"})
        second = await committer.commit(make_selection(catalog), make_schedule(), contact=renamed)
        assert first.customer_ref == second.customer_ref
        customer = await store.get_customer(second.customer_ref)
        assert customer.full_name == "Samantha Rivera"

    @pytest.mark.asyncio
    async def test_signed_in_user_keeps_id(self, catalog, committer, store):
        user = AuthenticatedUser(id="user-42", email="sam@example.com", full_name="Sam Rivera")
        booking = await committer.commit(make_selection(catalog), make_schedule(), user=user)
        assert booking.customer_ref == "user-42"
        customer = await store.get_customer("user-42")
        assert customer.full_name == "Sam Rivera"

    @pytest.mark.asyncio
    async def test_signed_in_profile_updated_with_contact(self, catalog, committer, store):
        user = AuthenticatedUser(id="user-42", email="sam@example.com")
        await committer.commit(make_selection(catalog), make_schedule(), user=user)
        await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT, user=user)
        customer = await store.get_customer("user-42")
        assert customer.full_name == "Sam Rivera"
        assert customer.phone == "+19405550142"
        assert store.customer_count == 1

    @pytest.mark.asyncio
    async def test_new_account_id_resolves_by_email(self, catalog, committer, store):
        existing = await store.create_customer("Sam Rivera", "sam@example.com")
        user = AuthenticatedUser(id="user-77", email="Sam@Example.com")
        booking = await committer.commit(make_selection(catalog), make_schedule(), user=user)
        assert booking.customer_ref == existing.id
        assert store.customer_count == 1

    @pytest.mark.asyncio
    async def test_new_account_id_resolves_by_email_without_upsert(self, catalog, pricing):
        store = _LookupOnlyStore()
        existing = await store.create_customer("Sam Rivera", "sam@example.com")
        committer = BookingCommitter(catalog, pricing, store)
        user = AuthenticatedUser(id="user-77", email="sam@example.com")
        booking = await committer.commit(make_selection(catalog), make_schedule(), user=user)
        assert booking.customer_ref == existing.id
        customer = await store.get_customer(existing.id)
        assert customer.full_name == "Sam Rivera"

    @pytest.mark.asyncio
    async def test_blank_contact_name_keeps_profile_name(self, catalog, committer, store):
        await store.create_customer("Sam Rivera", "sam@example.com", customer_id="user-42")
        user = AuthenticatedUser(id="user-42", email="sam@example.com")
        contact = ContactInfo(phone="(940) 555-0142")
        await committer.commit(make_selection(catalog), make_schedule(), contact=contact, user=user)
        customer = await store.get_customer("user-42")
        assert customer.full_name == "Sam Rivera"
        assert customer.phone == "+19405550142"


class TestCommitFailures:
    @pytest.mark.asyncio
    async def test_booking_write_failure_raises_commit_failed(self, catalog, pricing):
        store = _FlakyBookingStore()
        committer = BookingCommitter(catalog, pricing, store)
        with pytest.raises(CommitFailed):
            await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)

    @pytest.mark.asyncio
    async def test_retry_does_not_duplicate_customer(self, catalog, pricing):
        store = _FlakyBookingStore()
        committer = BookingCommitter(catalog, pricing, store)
        with pytest.raises(CommitFailed):
            await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)
        booking = await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)
        assert store.customer_count == 1
        assert store.bookings_for(booking.customer_ref) == [booking]

    @pytest.mark.asyncio
    async def test_customer_write_failure_raises_commit_failed(self, catalog, pricing):
        committer = BookingCommitter(catalog, pricing, _BrokenCustomerStore())
        with pytest.raises(CommitFailed, match="customer"):
            await committer.commit(make_selection(catalog), make_schedule(), contact=CONTACT)

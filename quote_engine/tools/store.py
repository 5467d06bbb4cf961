"""
In-memory customer and booking store.

In production this is the backing database (customers and repairs tables).
The persistence protocol below is what the booking committer depends on.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.booking_schema import BookingRecord, CustomerRecord
from quote_engine.utils import normalize_email

logger = get_session_logger(__name__)


class PersistenceProvider(Protocol):
    async def find_customer_by_email(self, email: str) -> Optional[CustomerRecord]: ...

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]: ...

    async def create_customer(
        self, full_name: str, email: str, phone: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> CustomerRecord: ...

    async def update_customer(
        self, customer_id: str, full_name: str, phone: Optional[str] = None,
    ) -> CustomerRecord:
        """Overwrite name and phone; empty values keep what is stored."""
        ...

    async def create_booking(self, booking: BookingRecord) -> BookingRecord: ...


@runtime_checkable
class SupportsCustomerUpsert(Protocol):
    """A store that can insert-or-update a customer by email in one step.

    ``customer_id`` is only used when a new record is created.
    """

    async def upsert_customer_by_email(
        self, full_name: str, email: str, phone: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> CustomerRecord: ...


class InMemoryStore:
    """Dict-backed store. Customers are keyed by normalized email."""

    def __init__(self) -> None:
        self._customers: dict[str, CustomerRecord] = {}
        self._by_email: dict[str, str] = {}
        self._bookings: dict[str, BookingRecord] = {}

    async def find_customer_by_email(self, email: str) -> Optional[CustomerRecord]:
        customer_id = self._by_email.get(normalize_email(email))
        return self._customers.get(customer_id) if customer_id else None

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        return self._customers.get(customer_id)

    async def create_customer(
        self, full_name: str, email: str, phone: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> CustomerRecord:
        customer = CustomerRecord(
            id=customer_id or f"CU-{uuid.uuid4().hex[:8].upper()}",
            full_name=full_name,
            email=email.strip(),
            phone=phone,
            created_at=datetime.now(timezone.utc),
        )
        self._customers[customer.id] = customer
        self._by_email[normalize_email(email)] = customer.id
        logger.info("New customer created: %s (%s)", customer.full_name, customer.id)
        return customer

    async def update_customer(
        self, customer_id: str, full_name: str, phone: Optional[str] = None,
    ) -> CustomerRecord:
        existing = self._customers.get(customer_id)
        if existing is None:
            raise KeyError(f"Customer {customer_id} not found")
        updated = existing.model_copy(update={
            "full_name": full_name or existing.full_name,
            "phone": phone or existing.phone,
        })
        self._customers[customer_id] = updated
        logger.debug("Customer updated: %s", customer_id)
        return updated

    async def upsert_customer_by_email(
        self, full_name: str, email: str, phone: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> CustomerRecord:
        # No await between lookup and write, so this is atomic on one event loop.
        existing_id = self._by_email.get(normalize_email(email))
        if existing_id is None:
            return await self.create_customer(full_name, email, phone, customer_id)
        return await self.update_customer(existing_id, full_name, phone)

    async def create_booking(self, booking: BookingRecord) -> BookingRecord:
        self._bookings[booking.booking_ref] = booking
        logger.info(
            "Booking created: %s for %s on %s (%s)",
            booking.booking_ref, booking.customer_ref,
            booking.schedule_date, booking.schedule_time_slot.value,
        )
        return booking

    def get_booking(self, booking_ref: str) -> Optional[BookingRecord]:
        return self._bookings.get(booking_ref)

    def bookings_for(self, customer_id: str) -> list[BookingRecord]:
        return [b for b in self._bookings.values() if b.customer_ref == customer_id]

    @property
    def customer_count(self) -> int:
        return len(self._customers)

    def reset(self) -> None:
        """Clear all records. Used by test fixtures for isolation."""
        self._customers.clear()
        self._by_email.clear()
        self._bookings.clear()

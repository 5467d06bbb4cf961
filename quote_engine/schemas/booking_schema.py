"""Booking, customer, and address lookup data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import TimeSlot


class BookingStatus(str, Enum):
    """Repair lifecycle. New bookings always start as PENDING."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PARTS_ORDERED = "parts_ordered"
    PARTS_RECEIVED = "parts_received"
    SCHEDULED = "scheduled"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class IssueSnapshot(BaseModel):
    """Repair type frozen by value at booking time."""
    id: str
    name: str


class TierSnapshot(BaseModel):
    """Parts tier frozen by value at booking time."""
    id: TierId
    name: str


class CustomerRecord(BaseModel):
    """Durable customer row. Email is the natural key."""
    id: str
    full_name: str
    email: str
    phone: Optional[str] = None
    created_at: datetime


class BookingRecord(BaseModel):
    """Persisted repair booking."""
    booking_ref: str
    customer_ref: str
    device: str
    issues: list[IssueSnapshot]
    parts_tier: TierSnapshot
    issue_tiers: dict[str, TierSnapshot] = Field(default_factory=dict)
    status: BookingStatus = BookingStatus.PENDING
    total_estimate: int
    labor_fee: int
    service_fee: int
    notes: Optional[str] = None
    schedule_date: date
    schedule_time_slot: TimeSlot
    address: str
    device_color: Optional[str] = None
    parts_in_stock: bool = False
    created_at: datetime


class AuthenticatedUser(BaseModel):
    """A signed-in customer as reported by the identity provider."""
    id: str
    email: str
    full_name: Optional[str] = None


class AddressCandidate(BaseModel):
    """One geocoder search result."""
    display: str
    city: str = ""
    state: str = ""

    @property
    def short_display(self) -> str:
        """First four comma-separated parts, used as the stored address."""
        return ",".join(self.display.split(",")[:4])


class ServiceAreaResult(BaseModel):
    """Outcome of checking an address against the service area."""
    accepted: bool
    address: str = ""
    resolved_city: Optional[str] = None
    rejected_city_label: Optional[str] = None

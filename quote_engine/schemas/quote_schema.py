"""Session-scoped quote and schedule selections.

Both selection models are frozen: every edit produces a new value through
``model_copy(update=...)`` so the wizard reducer can compare and replace them
without hidden mutation.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from quote_engine.schemas.catalog_schema import Device, TierId

MAX_NOTES_LENGTH = 500


class TimeSlot(str, Enum):
    """Fixed daily appointment windows."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


TIME_SLOT_DETAILS: dict[TimeSlot, dict[str, str]] = {
    TimeSlot.MORNING: {"label": "Morning", "range": "8:00 AM - 12:00 PM"},
    TimeSlot.AFTERNOON: {"label": "Afternoon", "range": "12:00 PM - 4:00 PM"},
    TimeSlot.EVENING: {"label": "Evening", "range": "4:00 PM - 7:00 PM"},
}


class QuoteSelection(BaseModel):
    """What the customer wants repaired and with which parts."""

    model_config = ConfigDict(frozen=True)

    device: Optional[Device] = None
    issues: tuple[str, ...] = ()
    issue_tiers: dict[str, TierId] = Field(default_factory=dict)
    back_glass_color: Optional[str] = None
    notes: str = Field(default="", max_length=MAX_NOTES_LENGTH)


class ScheduleSelection(BaseModel):
    """When and where the technician should come."""

    model_config = ConfigDict(frozen=True)

    date: Optional[dt.date] = None
    time_slot: Optional[TimeSlot] = None
    address: str = ""
    service_area_error: Optional[str] = None


class ContactInfo(BaseModel):
    """Contact details collected from customers who are not signed in."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: str = ""
    phone: Optional[str] = None


class QuoteLine(BaseModel):
    """Priced line item for one selected issue."""
    issue_id: str
    issue_name: str
    tier_id: TierId
    tier_name: str
    price: int


class Quote(BaseModel):
    """Full price breakdown shown on the review step."""
    device_name: str
    lines: list[QuoteLine]
    parts_subtotal: int
    labor_fee: int
    service_fee: int
    total: int

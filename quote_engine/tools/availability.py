"""
Technician availability and appointment date rules.

In production the schedule rows come from the technicians' schedule table.
The mock provider generates a deterministic schedule for tests and the
console demo.
"""

import random
from datetime import date, timedelta
from typing import Iterable, Mapping, Optional, Protocol, TypedDict

from quote_engine.config import settings
from quote_engine.errors import LookupFailed
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.quote_schema import QuoteSelection, TimeSlot
from quote_engine.tools.inventory import InventoryChecker

logger = get_session_logger(__name__)

ALL_SLOTS: tuple[TimeSlot, ...] = tuple(TimeSlot)

# Mock schedule generation parameters
AVAILABILITY_PROBABILITY = 0.7
SCHEDULE_SEED = 42


class ScheduleRow(TypedDict):
    """One technician's availability for one day."""

    schedule_date: str
    time_slots: list[str]
    is_available: bool


class AvailabilityProvider(Protocol):
    async def fetch_schedule_rows(self, start: date, end: date) -> list[ScheduleRow]: ...


class AvailabilityTable:
    """Bookable slots per date, merged across technicians."""

    def __init__(self, slots_by_date: Mapping[date, Iterable[TimeSlot]]) -> None:
        self._slots: dict[date, tuple[TimeSlot, ...]] = {
            day: tuple(s for s in ALL_SLOTS if s in set(slots))
            for day, slots in slots_by_date.items()
        }

    @classmethod
    def from_rows(cls, rows: Iterable[ScheduleRow]) -> "AvailabilityTable":
        merged: dict[date, set[TimeSlot]] = {}
        for row in rows:
            if not row.get("is_available", True):
                continue
            day = date.fromisoformat(row["schedule_date"])
            bucket = merged.setdefault(day, set())
            for raw in row.get("time_slots") or []:
                try:
                    bucket.add(TimeSlot(raw))
                except ValueError:
                    logger.warning("Ignoring unknown time slot %r on %s", raw, day)
        return cls(merged)

    def available_dates(self) -> list[date]:
        return sorted(self._slots)

    def slots_by_date(self, day: date) -> Optional[tuple[TimeSlot, ...]]:
        """Slots listed for a date, or None when the date has no entry."""
        return self._slots.get(day)

    def __len__(self) -> int:
        return len(self._slots)


class AvailabilityMatcher:
    """
    Decides which dates and slots a customer may book.

    The earliest date depends on stock: if any chosen part must be ordered,
    the customer has to book at least ``lead_days`` out. Parts with unknown
    stock do not push the date back.
    """

    def __init__(self, inventory: InventoryChecker, lead_days: Optional[int] = None) -> None:
        self._inventory = inventory
        self.lead_days = (
            settings.scheduling.parts_order_lead_days if lead_days is None else lead_days
        )

    def minimum_date(self, selection: QuoteSelection, today: Optional[date] = None) -> date:
        today = today or date.today()
        if self._inventory.needs_order(selection):
            return today + timedelta(days=self.lead_days)
        return today

    def slots_for(
        self,
        day: date,
        table: Optional[AvailabilityTable],
        minimum: Optional[date] = None,
    ) -> list[TimeSlot]:
        """Slots bookable on ``day``.

        With no table loaded every fixed slot is offered. A date before
        ``minimum`` never has slots, whatever the table claims.
        """
        if minimum is not None and day < minimum:
            return []
        if table is None:
            return list(ALL_SLOTS)
        return list(table.slots_by_date(day) or ())

    def is_selectable(
        self,
        day: date,
        table: Optional[AvailabilityTable],
        minimum: date,
    ) -> bool:
        if day < minimum:
            return False
        if table is None:
            return True
        return table.slots_by_date(day) is not None

    def selectable_dates(
        self,
        table: Optional[AvailabilityTable],
        minimum: date,
        window_days: Optional[int] = None,
    ) -> list[date]:
        """Dates from ``minimum`` through the scheduling window that have slots."""
        window_days = settings.scheduling.window_days if window_days is None else window_days
        days = [minimum + timedelta(days=offset) for offset in range(window_days + 1)]
        return [d for d in days if self.slots_for(d, table, minimum)]


async def load_table(
    provider: AvailabilityProvider,
    today: Optional[date] = None,
) -> Optional[AvailabilityTable]:
    """Fetch technician schedules for the booking window.

    Returns None when the lookup fails or finds nothing, which leaves every
    slot presumptively offered.
    """
    today = today or date.today()
    start = today
    end = today + timedelta(days=settings.scheduling.window_days)
    try:
        rows = await provider.fetch_schedule_rows(start, end)
    except LookupFailed:
        logger.warning("Availability lookup failed for %s..%s", start, end)
        return None
    if not rows:
        return None
    table = AvailabilityTable.from_rows(rows)
    logger.debug("Availability loaded: %d dates", len(table))
    return table


def _generate_schedule(start: date, days: int, rng: random.Random) -> list[ScheduleRow]:
    """Generate a schedule with ~70% slot availability, closed Sundays."""
    rows: list[ScheduleRow] = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        if day.weekday() == 6:  # Sunday closed
            continue
        slots = [s.value for s in ALL_SLOTS if rng.random() < AVAILABILITY_PROBABILITY]
        if slots:
            rows.append({
                "schedule_date": day.isoformat(),
                "time_slots": slots,
                "is_available": True,
            })
    return rows


class MockAvailabilityProvider:
    """Deterministic in-memory technician schedule."""

    def __init__(self, rows: Optional[list[ScheduleRow]] = None, seed: int = SCHEDULE_SEED) -> None:
        self._rows = rows
        self._seed = seed

    async def fetch_schedule_rows(self, start: date, end: date) -> list[ScheduleRow]:
        if self._rows is None:
            rng = random.Random(self._seed)
            return _generate_schedule(start, (end - start).days + 1, rng)
        return [
            row for row in self._rows
            if start <= date.fromisoformat(row["schedule_date"]) <= end
        ]

    async def available_dates(self, start: date, end: date) -> list[date]:
        table = AvailabilityTable.from_rows(await self.fetch_schedule_rows(start, end))
        return table.available_dates()

    async def slots_by_date(self, day: date) -> list[TimeSlot]:
        table = AvailabilityTable.from_rows(await self.fetch_schedule_rows(day, day))
        return list(table.slots_by_date(day) or ())

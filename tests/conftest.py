"""Shared test fixtures and helpers."""

from datetime import date, timedelta
from typing import Optional

import pytest

from quote_engine.schemas.booking_schema import AddressCandidate, AuthenticatedUser
from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import QuoteSelection, ScheduleSelection, TimeSlot
from quote_engine.tools.availability import AvailabilityMatcher, AvailabilityTable
from quote_engine.tools.catalog import Catalog
from quote_engine.tools.geocoding import StaticGeocoder
from quote_engine.tools.inventory import InMemoryInventory, InventoryChecker
from quote_engine.tools.otp import InMemoryIdentityProvider
from quote_engine.tools.pricing import PricingResolver
from quote_engine.tools.store import InMemoryStore
from quote_engine.wizard.guards import GuardContext

# A Monday, so TODAY + 6 is the first Sunday
TODAY = date(2026, 3, 2)

DENTON = AddressCandidate(
    display="123 Elm Street, Denton, Denton County, Texas, 76201, United States",
    city="Denton",
    state="Texas",
)
AUSTIN = AddressCandidate(
    display="500 Congress Avenue, Austin, Travis County, Texas, 78701, United States",
    city="Austin",
    state="Texas",
)
SHREVEPORT = AddressCandidate(
    display="1 Texas Street, Shreveport, Caddo Parish, Louisiana, 71101, United States",
    city="Shreveport",
    state="Louisiana",
)


@pytest.fixture
def catalog():
    return Catalog()


@pytest.fixture
def pricing(catalog):
    return PricingResolver(catalog, labor_fee=40, service_fee=29)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def identity():
    return InMemoryIdentityProvider(code_length=6)


@pytest.fixture
def signed_in_identity():
    user = AuthenticatedUser(id="user-42", email="sam@example.com", full_name="Sam Rivera")
    return InMemoryIdentityProvider(signed_in=user, code_length=6)


class RecordingGeocoder(StaticGeocoder):
    """StaticGeocoder that remembers every query it was asked."""

    def __init__(self, candidates):
        super().__init__(candidates)
        self.calls: list[str] = []

    async def search_address(self, text):
        self.calls.append(text)
        return await super().search_address(text)


@pytest.fixture
def geocoder():
    return RecordingGeocoder({
        "123 elm": [DENTON],
        "500 congress": [AUSTIN],
        "1 texas": [SHREVEPORT],
    })


@pytest.fixture
def inventory():
    stock = InMemoryInventory()
    stock.set_quantity("iPhone 13", "screen", TierId.PREMIUM, 3)
    stock.set_quantity("iPhone 13", "battery", TierId.GENUINE, 0)
    return stock


def make_selection(
    catalog: Catalog,
    device_id: str = "iphone-13",
    tiers: Optional[dict[str, TierId]] = None,
    color: Optional[str] = None,
) -> QuoteSelection:
    """Build a selection with the given issues and tiers, in insertion order."""
    tiers = {"screen": TierId.PREMIUM} if tiers is None else tiers
    return QuoteSelection(
        device=catalog.get_device(device_id),
        issues=tuple(tiers),
        issue_tiers={k: v for k, v in tiers.items() if v is not None},
        back_glass_color=color,
    )


def make_schedule(
    day: Optional[date] = TODAY,
    slot: Optional[TimeSlot] = TimeSlot.MORNING,
    address: str = "123 Elm Street, Denton, Denton County, Texas",
) -> ScheduleSelection:
    return ScheduleSelection(date=day, time_slot=slot, address=address)


def make_context(
    catalog: Catalog,
    pricing: PricingResolver,
    inventory: Optional[InventoryChecker] = None,
    minimum: date = TODAY,
    table: Optional[AvailabilityTable] = None,
) -> GuardContext:
    return GuardContext(
        catalog=catalog,
        pricing=pricing,
        matcher=AvailabilityMatcher(inventory or InventoryChecker(None), lead_days=3),
        minimum_date=minimum,
        table=table,
    )


def week_table(start: date = TODAY, days: int = 7) -> AvailabilityTable:
    """Every slot open on every day from ``start``."""
    return AvailabilityTable({
        start + timedelta(days=i): list(TimeSlot) for i in range(days)
    })

"""
Offline console demo: walks a repair quote through the wizard without any
network access.

Uses the real catalog, pricing, state machine, and booking commit against
in-memory providers and a canned geocoder. Designed for demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario signed-in
    python console_demo.py --scenario outside-area
"""

import argparse
import asyncio
from datetime import date
from typing import Optional

from quote_engine.config import settings
from quote_engine.schemas.booking_schema import AddressCandidate, AuthenticatedUser
from quote_engine.schemas.catalog_schema import TierId
from quote_engine.schemas.quote_schema import TIME_SLOT_DETAILS
from quote_engine.tools.availability import MockAvailabilityProvider
from quote_engine.tools.geocoding import StaticGeocoder
from quote_engine.tools.inventory import InMemoryInventory
from quote_engine.tools.otp import InMemoryIdentityProvider
from quote_engine.tools.store import InMemoryStore
from quote_engine.wizard.session import QuoteSession
from quote_engine.wizard.state_machine import WizardStep

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_ADDRESSES = {
    "123 elm": [AddressCandidate(
        display="123 Elm Street, Denton, Denton County, Texas, 76201, United States",
        city="Denton",
        state="Texas",
    )],
    "500 congress": [AddressCandidate(
        display="500 Congress Avenue, Austin, Travis County, Texas, 78701, United States",
        city="Austin",
        state="Texas",
    )],
}

DEMO_EMAIL = "jordan@example.com"


def _demo_inventory() -> InMemoryInventory:
    inventory = InMemoryInventory()
    inventory.set_quantity("iPhone 13", "screen", TierId.PREMIUM, 4)
    inventory.set_quantity("iPhone 13", "battery", TierId.GENUINE, 0)
    return inventory


class ConsoleWizard:
    """Runs one QuoteSession in the terminal."""

    def __init__(self, signed_in: bool = False, today: Optional[date] = None) -> None:
        user = AuthenticatedUser(id="user-demo", email=DEMO_EMAIL, full_name="Jordan Lee")
        self.identity = InMemoryIdentityProvider(signed_in=user if signed_in else None)
        self.store = InMemoryStore()
        self.session = QuoteSession(
            inventory_provider=_demo_inventory(),
            availability_provider=MockAvailabilityProvider(),
            geocoder=StaticGeocoder(DEMO_ADDRESSES),
            identity=self.identity,
            store=self.store,
            today=today,
        )

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def customer(self, text: str) -> None:
        print(f"\n{BLUE}[Customer] {RESET}{text}")

    def check(self, ok: bool) -> bool:
        if not ok:
            print(f"{RED}  ! {self.session.error}{RESET}")
        self.system_log(f"Step: {self.session.step.value}")
        return ok

    # ------------------------------------------------------------------ #
    # Scripted flow
    # ------------------------------------------------------------------ #

    async def run(
        self,
        device_id: str,
        issues: list[tuple[str, Optional[TierId]]],
        address: str,
    ) -> None:
        s = self.session
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  REPAIR QUOTE - {settings.app_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        self.customer(f"Device: {device_id}")
        self.check(await s.select_device(device_id))
        self.check(await s.next())

        for issue_id, tier_id in issues:
            self.customer(f"Issue: {issue_id}" + (f" ({tier_id.value})" if tier_id else ""))
            self.check(s.toggle_issue(issue_id))
            if tier_id is not None:
                self.check(s.set_tier(issue_id, tier_id))
        if not self.check(await s.next()):
            return
        if s.step == WizardStep.STORE_VISIT_REQUIRED:
            self.say("Software issues need a visit to our store. We'll see you there.")
            self._summary()
            return

        quote = s.quote()
        for line in quote.lines:
            self.say(f"  {line.issue_name:<24} {line.tier_name:<10} ${line.price}")
        self.say(f"  Labor ${quote.labor_fee}, service fee ${quote.service_fee}")
        self.say(f"  Total ${quote.total}")
        self.system_log(f"Earliest date: {s.minimum_date.isoformat()}")

        day = s.selectable_dates()[0]
        slot = s.slots_for(day)[0]
        self.customer(f"{day.isoformat()}, {TIME_SLOT_DETAILS[slot]['label']}")
        self.check(s.choose_date(day))
        self.check(s.choose_time_slot(slot))

        self.customer(f"Address: {address}")
        s.type_address(address)
        await s.address_search.wait_idle()
        candidates = s.address_candidates
        if not candidates:
            self.say("No matching address found.")
            self._summary()
            return
        if not self.check(s.select_address(candidates[0])):
            self._summary()
            return
        self.system_log(f"Address: {s.state.schedule.address}")
        self.check(await s.next())

        if not s.state.authenticated:
            self.customer(f"Jordan Lee, {DEMO_EMAIL}")
            self.check(s.update_contact(name="Jordan Lee", email=DEMO_EMAIL, phone="9405550142"))
        if not self.check(await s.submit_review()):
            return

        if s.step == WizardStep.VERIFY:
            code = self.identity.last_code_for(DEMO_EMAIL)
            self.system_log(f"Code emailed: {code}")
            self.customer(f"Pastes {code}")
            s.otp_entry.paste(code)
            self.check(await s.confirm_code())

        if s.booking is not None:
            self.say(f"Booked! Reference {s.booking.booking_ref}, total ${s.booking.total_estimate}")
        self._summary()

    def _summary(self) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Step trace: {' -> '.join(self.session.machine.get_step_trace())}{RESET}")
        print(f"{DIM}  Customers: {self.store.customer_count}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


SCENARIOS = {
    "booking": dict(
        signed_in=False,
        device_id="iphone-13",
        issues=[("screen", TierId.PREMIUM), ("battery", TierId.GENUINE)],
        address="123 Elm",
    ),
    "signed-in": dict(
        signed_in=True,
        device_id="iphone-13",
        issues=[("screen", TierId.PREMIUM)],
        address="123 Elm",
    ),
    "outside-area": dict(
        signed_in=False,
        device_id="iphone-13",
        issues=[("screen", TierId.ECONOMY)],
        address="500 Congress",
    ),
    "store-visit": dict(
        signed_in=False,
        device_id="iphone-14",
        issues=[("software", None)],
        address="123 Elm",
    ),
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline quote wizard demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(SCENARIOS),
        default="booking",
        help="Pre-scripted scenario to play",
    )
    args = parser.parse_args()

    scenario = dict(SCENARIOS[args.scenario])
    wizard = ConsoleWizard(signed_in=scenario.pop("signed_in"))
    asyncio.run(wizard.run(**scenario))


if __name__ == "__main__":
    main()

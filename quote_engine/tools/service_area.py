"""
Service area validation and search-as-you-type address lookup.

Addresses are resolved through a geocoder and accepted only when the
resolved city is on the configured allow-list within the service state.

Usage:
    validator = ServiceAreaValidator(NominatimGeocoder())
    search = AddressSearch(validator)
    search.type("123 Elm St, Den")
    await search.wait_idle()
    result = search.select(search.candidates[0])
"""

import asyncio
from typing import Optional

from quote_engine.config import ServiceAreaConfig, settings
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.booking_schema import AddressCandidate, ServiceAreaResult
from quote_engine.schemas.quote_schema import ScheduleSelection
from quote_engine.tools.geocoding import Geocoder

logger = get_session_logger(__name__)

UNKNOWN_CITY_LABEL = "this city"


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class ServiceAreaValidator:
    """Checks resolved localities against the service area allow-list."""

    def __init__(self, geocoder: Geocoder, config: Optional[ServiceAreaConfig] = None) -> None:
        self.geocoder = geocoder
        self._config = config or settings.service_area
        self._states = {_normalize(self._config.state_code), _normalize(self._config.state_name)}

    def is_city_supported(self, city: Optional[str], state: Optional[str]) -> bool:
        return (
            _normalize(state) in self._states
            and _normalize(city) in self._config.cities
        )

    def select_candidate(self, candidate: AddressCandidate) -> ServiceAreaResult:
        """Accept or reject a geocoder candidate the customer picked."""
        if self.is_city_supported(candidate.city, candidate.state):
            logger.info("Address accepted in %s, %s", candidate.city, candidate.state)
            return ServiceAreaResult(
                accepted=True,
                address=candidate.short_display,
                resolved_city=candidate.city.strip(),
            )

        label = candidate.city.strip() or UNKNOWN_CITY_LABEL
        logger.info("Address rejected: %s, %s is outside the service area", label, candidate.state)
        return ServiceAreaResult(accepted=False, rejected_city_label=label)

    async def validate(self, address: str) -> ServiceAreaResult:
        """Resolve free text and check the best match.

        An address the geocoder cannot resolve is not accepted but carries
        no rejected city either; the customer can keep typing and retry.
        """
        candidates = await self.geocoder.search_address(address)
        if not candidates:
            logger.debug("No geocoder match for '%s'", address)
            return ServiceAreaResult(accepted=False)
        return self.select_candidate(candidates[0])

    @staticmethod
    def apply(schedule: ScheduleSelection, result: ServiceAreaResult) -> ScheduleSelection:
        """Fold a validation result into the schedule.

        Rejection always clears any previously accepted address.
        """
        if result.accepted:
            return schedule.model_copy(update={"address": result.address, "service_area_error": None})
        return schedule.model_copy(update={
            "address": "",
            "service_area_error": result.rejected_city_label,
        })


class AddressSearch:
    """
    Debounced search-as-you-type over a geocoder.

    Every keystroke bumps a request counter and restarts the debounce timer.
    Only a query that survives ``debounce_sec`` of inactivity is dispatched,
    and a response is applied only if its request number is still current.
    """

    def __init__(
        self,
        validator: ServiceAreaValidator,
        debounce_sec: Optional[float] = None,
        min_query_length: Optional[int] = None,
    ) -> None:
        self._validator = validator
        self._debounce = settings.geocoding.debounce_sec if debounce_sec is None else debounce_sec
        self._min_length = (
            settings.geocoding.min_query_length if min_query_length is None else min_query_length
        )
        self._request_seq = 0
        self._timer: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self.query = ""
        self.candidates: list[AddressCandidate] = []
        self.is_searching = False

    @property
    def request_seq(self) -> int:
        return self._request_seq

    def type(self, text: str) -> None:
        """Record a keystroke. Must be called from a running event loop."""
        self.query = text
        self._request_seq += 1
        self._cancel_timer()

        if len(text.strip()) < self._min_length:
            self.candidates = []
            self.is_searching = False
            return

        self._timer = asyncio.create_task(self._wait_then_search(self._request_seq, text))

    def select(self, candidate: AddressCandidate) -> ServiceAreaResult:
        """Pick a candidate; closes the result list and discards pending lookups."""
        result = self._validator.select_candidate(candidate)
        self._request_seq += 1
        self._cancel_timer()
        self.query = candidate.short_display
        self.candidates = []
        self.is_searching = False
        return result

    def cancel(self) -> None:
        """Abandon the pending timer and any in-flight lookup."""
        self._request_seq += 1
        self._cancel_timer()
        self.is_searching = False

    async def wait_idle(self) -> None:
        """Wait for the pending timer and in-flight lookups to settle."""
        while True:
            pending = [t for t in (self._timer, *self._inflight) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_then_search(self, seq: int, text: str) -> None:
        await asyncio.sleep(self._debounce)
        if seq != self._request_seq:
            return
        lookup = asyncio.create_task(self._search(seq, text))
        self._inflight.add(lookup)
        lookup.add_done_callback(self._inflight.discard)

    async def _search(self, seq: int, text: str) -> None:
        self.is_searching = True
        results = await self._validator.geocoder.search_address(text)
        if seq != self._request_seq:
            logger.debug("Dropping stale address results for '%s' (request %d)", text, seq)
            return
        self.candidates = results
        self.is_searching = False

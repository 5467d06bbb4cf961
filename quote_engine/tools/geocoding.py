"""
Address search against OpenStreetMap Nominatim.

Free, no API key required, rate limited to about one request per second,
which is why callers debounce keystrokes before searching.

Usage:
    geocoder = NominatimGeocoder()
    candidates = await geocoder.search_address("123 Elm St, Denton")
"""

from typing import Any, Optional, Protocol

import httpx

from quote_engine.config import settings
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.booking_schema import AddressCandidate

logger = get_session_logger(__name__)

MAX_QUERY_LENGTH = 300
FALLBACK_RESULT_COUNT = 5

_STREET_LEVEL_TYPES = frozenset({"house", "residential"})
_STREET_LEVEL_CLASSES = frozenset({"place", "building", "highway"})
_CITY_KEYS = ("city", "town", "village", "hamlet", "county")


class Geocoder(Protocol):
    async def search_address(self, text: str) -> list[AddressCandidate]: ...


def _city_of(address: dict[str, Any]) -> str:
    for key in _CITY_KEYS:
        if address.get(key):
            return address[key]
    return ""


def _to_candidate(result: dict[str, Any]) -> AddressCandidate:
    address = result.get("address") or {}
    return AddressCandidate(
        display=result.get("display_name", ""),
        city=_city_of(address),
        state=address.get("state", ""),
    )


def _is_street_level(result: dict[str, Any]) -> bool:
    address = result.get("address")
    if not address:
        return False
    return (
        result.get("type") in _STREET_LEVEL_TYPES
        or result.get("class") in _STREET_LEVEL_CLASSES
        or bool(address.get("road"))
    )


def parse_results(data: list[dict[str, Any]]) -> list[AddressCandidate]:
    """Keep street-level matches, falling back to the first few raw results."""
    street_level = [_to_candidate(r) for r in data if _is_street_level(r)]
    if street_level:
        return street_level
    return [_to_candidate(r) for r in data[:FALLBACK_RESULT_COUNT]]


class NominatimGeocoder:
    """Searches US addresses, biased toward the service region."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client
        self._config = settings.geocoding

    async def search_address(self, text: str) -> list[AddressCandidate]:
        """
        Search for addresses matching free text.

        Returns an empty list on any network or decoding failure so the
        caller can simply let the customer keep typing.
        """
        query = (text or "").strip()[:MAX_QUERY_LENGTH]
        if len(query) < self._config.min_query_length:
            return []

        params = {
            "q": query,
            "format": "json",
            "countrycodes": "us",
            "addressdetails": 1,
            "limit": self._config.result_limit,
            "viewbox": self._config.viewbox,
            "bounded": 0,
        }
        headers = {
            "Accept": "application/json",
            "User-Agent": self._config.user_agent,  # Required by Nominatim
        }

        try:
            if self._client is not None:
                response = await self._client.get(
                    self._config.nominatim_url, params=params, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_sec) as client:
                    response = await client.get(
                        self._config.nominatim_url, params=params, headers=headers
                    )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Nominatim search error for '%s': %s", query, e)
            return []

        if not isinstance(data, list):
            logger.warning("Nominatim: unexpected payload for '%s'", query)
            return []

        candidates = parse_results(data)
        logger.debug("Nominatim: %d candidates for '%s'", len(candidates), query)
        return candidates


class StaticGeocoder:
    """Geocoder returning canned candidates, for the console demo and tests."""

    def __init__(self, candidates: dict[str, list[AddressCandidate]]) -> None:
        self._candidates = {k.lower(): v for k, v in candidates.items()}

    async def search_address(self, text: str) -> list[AddressCandidate]:
        needle = text.strip().lower()
        for prefix, candidates in self._candidates.items():
            if needle.startswith(prefix) or prefix.startswith(needle):
                return list(candidates)
        return []

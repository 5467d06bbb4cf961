"""
Parts inventory lookup.

Stock is read from a per-device snapshot of (repair_type, parts_tier,
quantity) rows. In production the snapshot comes from the parts inventory
table; the in-memory provider below stands in for it in tests and the demo.
"""

from typing import Iterable, Optional, Protocol, TypedDict

from quote_engine.errors import LookupFailed
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.catalog_schema import StockStatus, TierId
from quote_engine.schemas.quote_schema import QuoteSelection

logger = get_session_logger(__name__)


class InventoryRow(TypedDict):
    """One stocked part for a device."""

    repair_type: str
    parts_tier: str
    quantity: int


class InventoryProvider(Protocol):
    async def fetch_inventory(self, device_name: str) -> list[InventoryRow]: ...


class InventoryChecker:
    """
    Answers stock questions for the current selection.

    ``rows=None`` means no snapshot is loaded, and every pair is UNKNOWN.
    With a snapshot, a missing row means the part must be ordered.
    """

    def __init__(self, rows: Optional[Iterable[InventoryRow]] = None) -> None:
        self._loaded = rows is not None
        self._stock: dict[tuple[str, str], int] = {}
        for row in rows or []:
            key = (row["repair_type"], TierId(row["parts_tier"]).value)
            self._stock[key] = self._stock.get(key, 0) + int(row["quantity"])

    @property
    def loaded(self) -> bool:
        return self._loaded

    def stock_for(self, issue_id: str, tier_id: TierId) -> StockStatus:
        if not self._loaded:
            return StockStatus.UNKNOWN
        quantity = self._stock.get((issue_id, TierId(tier_id).value), 0)
        return StockStatus.IN_STOCK if quantity > 0 else StockStatus.NEEDS_ORDER

    # Provider-style alias
    stock_status = stock_for

    def _chosen_statuses(self, selection: QuoteSelection) -> list[Optional[StockStatus]]:
        statuses: list[Optional[StockStatus]] = []
        for issue_id in selection.issues:
            tier_id = selection.issue_tiers.get(issue_id)
            statuses.append(None if tier_id is None else self.stock_for(issue_id, tier_id))
        return statuses

    def all_in_stock(self, selection: QuoteSelection) -> bool:
        """True only when every selected issue has a chosen tier that is in stock."""
        statuses = self._chosen_statuses(selection)
        if not statuses:
            return False
        return all(status == StockStatus.IN_STOCK for status in statuses)

    def needs_order(self, selection: QuoteSelection) -> bool:
        """True when at least one chosen part must be ordered. UNKNOWN does not count."""
        return any(status == StockStatus.NEEDS_ORDER for status in self._chosen_statuses(selection))


class InMemoryInventory:
    """Inventory provider backed by a dict of device name -> rows."""

    def __init__(self, stock: Optional[dict[str, list[InventoryRow]]] = None) -> None:
        self._stock: dict[str, list[InventoryRow]] = {
            name: list(rows) for name, rows in (stock or {}).items()
        }

    async def fetch_inventory(self, device_name: str) -> list[InventoryRow]:
        return list(self._stock.get(device_name, []))

    def set_quantity(self, device_name: str, repair_type: str, tier_id: TierId, quantity: int) -> None:
        rows = self._stock.setdefault(device_name, [])
        for row in rows:
            if row["repair_type"] == repair_type and row["parts_tier"] == TierId(tier_id).value:
                row["quantity"] = quantity
                return
        rows.append({
            "repair_type": repair_type,
            "parts_tier": TierId(tier_id).value,
            "quantity": quantity,
        })


async def load_inventory(provider: InventoryProvider, device_name: str) -> InventoryChecker:
    """Fetch a device's stock snapshot.

    A failed lookup or an empty snapshot yields an unloaded checker, so every
    part reads UNKNOWN rather than crashing the wizard.
    """
    try:
        rows = await provider.fetch_inventory(device_name)
    except LookupFailed:
        logger.warning("Inventory lookup failed for %s; stock unknown", device_name)
        return InventoryChecker(None)
    if not rows:
        logger.debug("No inventory rows for %s; stock unknown", device_name)
        return InventoryChecker(None)
    logger.debug("Inventory loaded for %s: %d rows", device_name, len(rows))
    return InventoryChecker(rows)

"""Quote pricing: per-issue prices and the fee-inclusive total."""

from typing import Optional

from quote_engine.config import settings
from quote_engine.errors import Unpriced
from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.catalog_schema import Device, TierId
from quote_engine.schemas.quote_schema import Quote, QuoteLine, QuoteSelection
from quote_engine.tools.catalog import Catalog

logger = get_session_logger(__name__)


class PricingResolver:
    """
    Resolves prices from a catalog snapshot.

    Lookup order is the device-specific entry, then the generic
    (issue, tier) matrix. A missing price raises ``Unpriced``; it is never
    treated as free.
    """

    def __init__(
        self,
        catalog: Catalog,
        labor_fee: Optional[int] = None,
        service_fee: Optional[int] = None,
    ) -> None:
        self._catalog = catalog
        self.labor_fee = settings.pricing.labor_fee if labor_fee is None else labor_fee
        self.service_fee = settings.pricing.service_fee if service_fee is None else service_fee

    def price_for(self, device: Optional[Device], issue_id: str, tier_id: TierId) -> int:
        tier_id = TierId(tier_id)
        if device is not None:
            price = self._catalog.device_pricing.get((device.name, issue_id, tier_id))
            if price is not None:
                return price

        generic = self._catalog.generic_pricing.get(issue_id, {})
        price = generic.get(tier_id)
        if price is not None:
            return price

        device_name = device.name if device else None
        logger.warning("Unpriced combination: %s / %s / %s", device_name, issue_id, tier_id.value)
        raise Unpriced(device_name, issue_id, tier_id.value)

    def is_priced(self, device: Optional[Device], issue_id: str, tier_id: TierId) -> bool:
        try:
            self.price_for(device, issue_id, tier_id)
        except Unpriced:
            return False
        return True

    def total_for(self, selection: QuoteSelection) -> int:
        """Sum of issue prices plus the labor and service fees.

        Raises:
            Unpriced: if any selected issue has no tier or no price.
        """
        parts = sum(self._line_price(selection, issue_id) for issue_id in selection.issues)
        return parts + self.labor_fee + self.service_fee

    def quote_for(self, selection: QuoteSelection) -> Quote:
        """Build the itemized quote shown on the review step."""
        lines = []
        for issue_id in selection.issues:
            tier_id = selection.issue_tiers.get(issue_id)
            price = self._line_price(selection, issue_id)
            repair = self._catalog.get_repair_type(issue_id)
            tier = self._catalog.get_tier(tier_id)
            lines.append(QuoteLine(
                issue_id=issue_id,
                issue_name=repair.name if repair else issue_id,
                tier_id=tier.id,
                tier_name=tier.name,
                price=price,
            ))

        subtotal = sum(line.price for line in lines)
        quote = Quote(
            device_name=selection.device.name if selection.device else "",
            lines=lines,
            parts_subtotal=subtotal,
            labor_fee=self.labor_fee,
            service_fee=self.service_fee,
            total=subtotal + self.labor_fee + self.service_fee,
        )
        logger.debug("Quote for %s: %d lines, total %d", quote.device_name, len(lines), quote.total)
        return quote

    def _line_price(self, selection: QuoteSelection, issue_id: str) -> int:
        tier_id = selection.issue_tiers.get(issue_id)
        if tier_id is None:
            device_name = selection.device.name if selection.device else None
            raise Unpriced(device_name, issue_id, "<none>")
        return self.price_for(selection.device, issue_id, tier_id)

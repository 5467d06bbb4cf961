"""Catalog reference data models: devices, repair types, and parts tiers."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class RepairCategory(str, Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"


class TierId(str, Enum):
    """Parts quality levels, cheapest first."""
    ECONOMY = "economy"
    PREMIUM = "premium"
    GENUINE = "genuine"


class StockStatus(str, Enum):
    """Stock state of one (issue, tier) part."""
    IN_STOCK = "in_stock"
    NEEDS_ORDER = "needs_order"
    UNKNOWN = "unknown"


class Device(BaseModel):
    """A repairable phone model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    generation: str
    year: int


class RepairType(BaseModel):
    """A kind of repair a customer can select as an issue."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    description: str
    category: RepairCategory = RepairCategory.HARDWARE


class PartsTier(BaseModel):
    """A parts quality level. Higher rank means better (and pricier) parts."""

    model_config = ConfigDict(frozen=True)

    id: TierId
    name: str
    label: str
    color: str
    description: str
    rank: int

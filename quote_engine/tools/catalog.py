"""Static repair catalog: devices, repair types, parts tiers, and prices.

The catalog is loaded once and passed around as an immutable value. Pricing
and inventory checks read from it; nothing writes to it during a session.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from quote_engine.logging_context import get_session_logger
from quote_engine.schemas.catalog_schema import (
    Device,
    PartsTier,
    RepairCategory,
    RepairType,
    TierId,
)

logger = get_session_logger(__name__)

BACK_GLASS_ISSUE_ID = "back-glass"
SOFTWARE_ISSUE_ID = "software"

DEVICES: tuple[Device, ...] = tuple(
    Device(id=did, name=name, year=year, generation=gen)
    for did, name, year, gen in [
        ("iphone-11", "iPhone 11", 2019, "11"),
        ("iphone-11-pro", "iPhone 11 Pro", 2019, "11"),
        ("iphone-11-pro-max", "iPhone 11 Pro Max", 2019, "11"),
        ("iphone-se-2nd", "iPhone SE (2nd gen)", 2020, "SE"),
        ("iphone-12-mini", "iPhone 12 mini", 2020, "12"),
        ("iphone-12", "iPhone 12", 2020, "12"),
        ("iphone-12-pro", "iPhone 12 Pro", 2020, "12"),
        ("iphone-12-pro-max", "iPhone 12 Pro Max", 2020, "12"),
        ("iphone-13-mini", "iPhone 13 mini", 2021, "13"),
        ("iphone-13", "iPhone 13", 2021, "13"),
        ("iphone-13-pro", "iPhone 13 Pro", 2021, "13"),
        ("iphone-13-pro-max", "iPhone 13 Pro Max", 2021, "13"),
        ("iphone-se-3rd", "iPhone SE (3rd gen)", 2022, "SE"),
        ("iphone-14", "iPhone 14", 2022, "14"),
        ("iphone-14-plus", "iPhone 14 Plus", 2022, "14"),
        ("iphone-14-pro", "iPhone 14 Pro", 2022, "14"),
        ("iphone-14-pro-max", "iPhone 14 Pro Max", 2022, "14"),
        ("iphone-15", "iPhone 15", 2023, "15"),
        ("iphone-15-plus", "iPhone 15 Plus", 2023, "15"),
        ("iphone-15-pro", "iPhone 15 Pro", 2023, "15"),
        ("iphone-15-pro-max", "iPhone 15 Pro Max", 2023, "15"),
        ("iphone-16", "iPhone 16", 2024, "16"),
        ("iphone-16-plus", "iPhone 16 Plus", 2024, "16"),
        ("iphone-16-pro", "iPhone 16 Pro", 2024, "16"),
        ("iphone-16-pro-max", "iPhone 16 Pro Max", 2024, "16"),
        ("iphone-16e", "iPhone 16e", 2025, "16"),
        ("iphone-17", "iPhone 17", 2025, "17"),
        ("iphone-17-air", "iPhone 17 Air", 2025, "17"),
        ("iphone-17-pro", "iPhone 17 Pro", 2025, "17"),
        ("iphone-17-pro-max", "iPhone 17 Pro Max", 2025, "17"),
    ]
)

REPAIR_TYPES: tuple[RepairType, ...] = (
    RepairType(id="screen", name="Screen Replacement", icon="📱",
               description="Cracked, shattered, or unresponsive display"),
    RepairType(id="battery", name="Battery Replacement", icon="🔋",
               description="Poor battery life or swollen battery"),
    RepairType(id="charging", name="Charging Port", icon="🔌",
               description="Won't charge or loose connection"),
    RepairType(id=BACK_GLASS_ISSUE_ID, name="Back Glass", icon="🪟",
               description="Cracked or shattered back panel"),
    RepairType(id="camera-rear", name="Rear Camera", icon="📸",
               description="Blurry, cracked, or non-functional rear camera"),
    RepairType(id="camera-front", name="Front Camera", icon="🤳",
               description="Blurry or non-functional front camera / Face ID"),
    RepairType(id="speaker", name="Speaker / Microphone", icon="🔊",
               description="Low volume, distorted, or no sound"),
    RepairType(id="water-damage", name="Water Damage", icon="💧",
               description="Liquid exposure diagnosis and repair"),
    RepairType(id="buttons", name="Button Repair", icon="⏏️",
               description="Power, volume, or mute switch issues"),
    RepairType(id=SOFTWARE_ISSUE_ID, name="Software Issues", icon="⚙️",
               description="Restore, update, or performance problems",
               category=RepairCategory.SOFTWARE),
)

PARTS_TIERS: tuple[PartsTier, ...] = (
    PartsTier(id=TierId.ECONOMY, rank=1, name="Economy", label="Budget-Friendly",
              color="#22C55E",
              description="Functional aftermarket parts. Gets the job done at the lowest cost."),
    PartsTier(id=TierId.PREMIUM, rank=2, name="Premium", label="Recommended",
              color="#7C3AED",
              description="High-quality parts with reliable performance and durability."),
    PartsTier(id=TierId.GENUINE, rank=3, name="Genuine Apple", label="Best Quality",
              color="#F59E0B",
              description="Apple-certified OEM parts. Original quality guaranteed."),
)

# Fallback matrix used when a device has no specific price.
# Software has no parts, so it is deliberately absent.
GENERIC_PRICING: dict[str, dict[TierId, int]] = {
    "screen": {TierId.ECONOMY: 49, TierId.PREMIUM: 89, TierId.GENUINE: 179},
    "battery": {TierId.ECONOMY: 29, TierId.PREMIUM: 49, TierId.GENUINE: 89},
    "charging": {TierId.ECONOMY: 39, TierId.PREMIUM: 59, TierId.GENUINE: 99},
    BACK_GLASS_ISSUE_ID: {TierId.ECONOMY: 39, TierId.PREMIUM: 69, TierId.GENUINE: 149},
    "camera-rear": {TierId.ECONOMY: 49, TierId.PREMIUM: 79, TierId.GENUINE: 159},
    "camera-front": {TierId.ECONOMY: 39, TierId.PREMIUM: 69, TierId.GENUINE: 129},
    "speaker": {TierId.ECONOMY: 29, TierId.PREMIUM: 49, TierId.GENUINE: 79},
    "water-damage": {TierId.ECONOMY: 59, TierId.PREMIUM: 99, TierId.GENUINE: 149},
    "buttons": {TierId.ECONOMY: 29, TierId.PREMIUM: 49, TierId.GENUINE: 79},
}

DEVICE_REPAIR_PRICING: dict[tuple[str, str, TierId], int] = {
    ("iPhone 13", "screen", TierId.ECONOMY): 79,
    ("iPhone 13", "screen", TierId.PREMIUM): 129,
    ("iPhone 13", "screen", TierId.GENUINE): 229,
    ("iPhone 13", "battery", TierId.PREMIUM): 69,
    ("iPhone 14", "screen", TierId.PREMIUM): 149,
    ("iPhone 14", "screen", TierId.GENUINE): 259,
    ("iPhone 14", BACK_GLASS_ISSUE_ID, TierId.PREMIUM): 99,
    ("iPhone 15 Pro", "screen", TierId.PREMIUM): 199,
    ("iPhone 15 Pro", "screen", TierId.GENUINE): 329,
    ("iPhone 16 Pro Max", "screen", TierId.GENUINE): 379,
    ("iPhone 17 Pro", "screen", TierId.GENUINE): 399,
}

# Only these tiers are stocked for the listed (device, issue) pairs.
TIER_AVAILABILITY: dict[tuple[str, str], tuple[TierId, ...]] = {
    ("iPhone 15 Pro", "screen"): (TierId.PREMIUM, TierId.GENUINE),
    ("iPhone 16 Pro Max", "screen"): (TierId.GENUINE,),
    ("iPhone 17", "screen"): (TierId.GENUINE,),
    ("iPhone 17 Pro", "screen"): (TierId.GENUINE,),
    ("iPhone 17 Pro", "battery"): (TierId.PREMIUM, TierId.GENUINE),
}

ALWAYS_AVAILABLE_REPAIRS: frozenset[str] = frozenset(
    {"screen", "battery", "camera-rear", "camera-front", SOFTWARE_ISSUE_ID}
)

BACK_GLASS_COLORS: dict[str, tuple[str, ...]] = {
    "iphone-14": ("Midnight", "Starlight", "Blue", "Purple", "Red", "Yellow"),
    "iphone-14-plus": ("Midnight", "Starlight", "Blue", "Purple", "Red", "Yellow"),
    "iphone-15": ("Black", "Blue", "Green", "Yellow", "Pink"),
    "iphone-15-plus": ("Black", "Blue", "Green", "Yellow", "Pink"),
    "iphone-15-pro": ("Black Titanium", "White Titanium", "Blue Titanium", "Natural Titanium"),
    "iphone-15-pro-max": ("Black Titanium", "White Titanium", "Blue Titanium", "Natural Titanium"),
    "iphone-16": ("Black", "White", "Pink", "Teal", "Ultramarine"),
    "iphone-16-plus": ("Black", "White", "Pink", "Teal", "Ultramarine"),
    "iphone-16-pro": ("Black Titanium", "White Titanium", "Natural Titanium", "Desert Titanium"),
    "iphone-16-pro-max": ("Black Titanium", "White Titanium", "Natural Titanium", "Desert Titanium"),
    "iphone-16e": ("Black", "White"),
    "iphone-17": ("Black", "White", "Lavender", "Mist Blue", "Sage"),
    "iphone-17-air": ("Space Black", "Cloud White", "Light Gold", "Sky Blue"),
    "iphone-17-pro": ("Silver", "Cosmic Orange", "Deep Blue"),
    "iphone-17-pro-max": ("Silver", "Cosmic Orange", "Deep Blue"),
}


@dataclass(frozen=True)
class Catalog:
    """Immutable snapshot of all reference data needed to quote a repair."""

    devices: tuple[Device, ...] = DEVICES
    repair_types: tuple[RepairType, ...] = REPAIR_TYPES
    parts_tiers: tuple[PartsTier, ...] = PARTS_TIERS
    generic_pricing: Mapping[str, Mapping[TierId, int]] = field(
        default_factory=lambda: MappingProxyType(GENERIC_PRICING)
    )
    device_pricing: Mapping[tuple[str, str, TierId], int] = field(
        default_factory=lambda: MappingProxyType(DEVICE_REPAIR_PRICING)
    )
    tier_restrictions: Mapping[tuple[str, str], tuple[TierId, ...]] = field(
        default_factory=lambda: MappingProxyType(TIER_AVAILABILITY)
    )
    back_glass_colors: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(BACK_GLASS_COLORS)
    )
    always_available_repairs: frozenset[str] = ALWAYS_AVAILABLE_REPAIRS

    # -- provider interface ------------------------------------------------

    def list_devices(self) -> list[Device]:
        return list(self.devices)

    def list_repair_types(self) -> list[RepairType]:
        return list(self.repair_types)

    def price_table(self) -> Mapping[tuple[str, str, TierId], int]:
        return self.device_pricing

    def tier_availability(self) -> Mapping[tuple[str, str], tuple[TierId, ...]]:
        return self.tier_restrictions

    # -- lookups -----------------------------------------------------------

    def get_device(self, device_id: str) -> Optional[Device]:
        return next((d for d in self.devices if d.id == device_id), None)

    def get_repair_type(self, issue_id: str) -> Optional[RepairType]:
        return next((r for r in self.repair_types if r.id == issue_id), None)

    def get_tier(self, tier_id: TierId) -> PartsTier:
        for tier in self.parts_tiers:
            if tier.id == tier_id:
                return tier
        raise KeyError(f"Unknown parts tier: {tier_id}")

    def generations(self) -> list[str]:
        """Distinct device generations in catalog order."""
        return list(dict.fromkeys(d.generation for d in self.devices))

    def devices_by_generation(self, generation: str) -> list[Device]:
        return [d for d in self.devices if d.generation == generation]

    def repair_types_for(self, device: Optional[Device]) -> list[RepairType]:
        """Repair types offered for a device.

        Before a device is chosen only the always-available repairs are shown.
        Back glass is offered only on devices with a colour list.
        """
        offered = []
        for repair in self.repair_types:
            if repair.id in self.always_available_repairs:
                offered.append(repair)
            elif (
                device is not None
                and repair.id == BACK_GLASS_ISSUE_ID
                and device.id in self.back_glass_colors
            ):
                offered.append(repair)
        return offered

    def is_repair_offered(self, device: Optional[Device], issue_id: str) -> bool:
        return any(r.id == issue_id for r in self.repair_types_for(device))

    def allowed_tiers(self, device: Optional[Device], issue_id: str) -> tuple[TierId, ...]:
        """Tiers a customer may pick for an issue on a device."""
        if device is not None:
            restricted = self.tier_restrictions.get((device.name, issue_id))
            if restricted is not None:
                return restricted
        return tuple(t.id for t in self.parts_tiers)

    def colors_for(self, device: Optional[Device]) -> tuple[str, ...]:
        if device is None:
            return ()
        return self.back_glass_colors.get(device.id, ())

    def is_software_issue(self, issue_id: str) -> bool:
        repair = self.get_repair_type(issue_id)
        return repair is not None and repair.category == RepairCategory.SOFTWARE


_default_catalog: Optional[Catalog] = None


def default_catalog() -> Catalog:
    """Return the shared catalog snapshot, building it on first use."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = Catalog()
        logger.debug(
            "Catalog loaded: %d devices, %d repair types",
            len(_default_catalog.devices), len(_default_catalog.repair_types),
        )
    return _default_catalog

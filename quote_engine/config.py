"""
Centralized configuration with environment variable overrides.

Fees, scheduling lead times, the service area allow-list, and geocoder
settings are configurable here. Nothing is hardcoded in pricing, scheduling,
or validation logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_CITIES = (
    "denton,lewisville,corinth,lake dallas,plano,frisco,grapevine,southlake,"
    "trophy club,justin,northlake,north lake,argyle,lantana,the colony"
)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _csv_set(env_var: str, default: str) -> frozenset[str]:
    """Parse a comma-separated env var into a lowercased, trimmed set."""
    raw = os.getenv(env_var, default)
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class PricingConfig:
    """Fixed fees added to every quote."""

    labor_fee: int = _safe_int("LABOR_FEE", "40")
    service_fee: int = _safe_int("SERVICE_FEE", "29")


@dataclass(frozen=True)
class SchedulingConfig:
    """Appointment window and parts lead time."""

    parts_order_lead_days: int = _safe_int("PARTS_ORDER_LEAD_DAYS", "3")
    window_days: int = _safe_int("SCHEDULING_WINDOW_DAYS", "30")


@dataclass(frozen=True)
class ServiceAreaConfig:
    """Localities technicians are dispatched to, restricted to one state."""

    state_code: str = os.getenv("SERVICE_STATE", "TX")
    state_name: str = os.getenv("SERVICE_STATE_NAME", "Texas")
    cities: frozenset[str] = _csv_set("SERVICE_CITIES", DEFAULT_SERVICE_CITIES)


@dataclass(frozen=True)
class GeocodingConfig:
    """Address search provider settings."""

    nominatim_url: str = os.getenv(
        "NOMINATIM_URL", "https://nominatim.openstreetmap.org/search"
    )
    user_agent: str = os.getenv("GEOCODER_USER_AGENT", "RepairQuoteEngine/1.0")
    viewbox: str = os.getenv("GEOCODER_VIEWBOX", "-97.5,33.4,-96.5,32.5")
    timeout_sec: float = _safe_float("GEOCODER_TIMEOUT", "10.0")
    result_limit: int = _safe_int("GEOCODER_RESULT_LIMIT", "6")
    debounce_sec: float = _safe_float("ADDRESS_DEBOUNCE_SECONDS", "0.5")
    min_query_length: int = _safe_int("ADDRESS_MIN_QUERY_LENGTH", "3")


@dataclass(frozen=True)
class OtpConfig:
    """One-time code verification settings."""

    code_length: int = _safe_int("OTP_CODE_LENGTH", "6")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    pricing: PricingConfig = field(default_factory=PricingConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    service_area: ServiceAreaConfig = field(default_factory=ServiceAreaConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    otp: OtpConfig = field(default_factory=OtpConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "repair-quote-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.pricing.labor_fee < 0:
        raise ValueError(f"LABOR_FEE must be >= 0, got {config.pricing.labor_fee}")
    if config.pricing.service_fee < 0:
        raise ValueError(f"SERVICE_FEE must be >= 0, got {config.pricing.service_fee}")
    if config.scheduling.parts_order_lead_days < 0:
        raise ValueError(
            "PARTS_ORDER_LEAD_DAYS must be >= 0, "
            f"got {config.scheduling.parts_order_lead_days}"
        )
    if config.scheduling.window_days < 1:
        raise ValueError(
            f"SCHEDULING_WINDOW_DAYS must be >= 1, got {config.scheduling.window_days}"
        )
    if not config.service_area.cities:
        raise ValueError("SERVICE_CITIES must list at least one city")
    if config.geocoding.timeout_sec <= 0:
        raise ValueError(
            f"GEOCODER_TIMEOUT must be > 0, got {config.geocoding.timeout_sec}"
        )
    if config.geocoding.result_limit < 1:
        raise ValueError(
            f"GEOCODER_RESULT_LIMIT must be >= 1, got {config.geocoding.result_limit}"
        )
    if config.geocoding.debounce_sec < 0:
        raise ValueError(
            f"ADDRESS_DEBOUNCE_SECONDS must be >= 0, got {config.geocoding.debounce_sec}"
        )
    if config.otp.code_length < 4:
        raise ValueError(f"OTP_CODE_LENGTH must be >= 4, got {config.otp.code_length}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()

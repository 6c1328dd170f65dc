"""Central configuration for quote_integrations."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Set

logger = logging.getLogger(__name__)

DEFAULT_GEONAMES_BASE_URL = "http://api.geonames.org"


def _split_codes(s: str) -> Set[str]:
    """Parse comma-separated country codes into an upper-cased set.

    Example:
        >>> sorted(_split_codes("us, ca,,mx"))
        ['CA', 'MX', 'US']
    """
    return {p.strip().upper() for p in (s or "").split(",") if p.strip()}


def _float_env(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw) if raw.strip() else default
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("%s=%r is below %s, using %s", name, raw, minimum, default)
        return default
    return value


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class Settings:
    """Configuration settings for quote_integrations.

    All settings are loaded from environment variables with sensible defaults.
    Credentials default to None; the clients refuse to make calls without them.
    """

    S2P_LOGIN_URL: str | None
    S2P_USERNAME: str | None
    S2P_PASSWORD: str | None
    S2P_RATES_URL: str | None
    S2P_TOKEN_TTL_S: float
    S2P_GUARD_BAND_S: float
    GEONAMES_USERNAME: str | None
    GEONAMES_BASE_URL: str
    GEONAMES_MAX_RETRIES: int
    GEONAMES_BACKOFF_BASE_S: float
    GEONAMES_BACKOFF_CAP_S: float
    GEONAMES_CACHE_TTL_S: float
    SUPPORTED_COUNTRIES: Set[str]
    LENIENT_COUNTRIES: Set[str]
    HTTP_TIMEOUT_S: float


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Note:
        Invalid numeric values fall back to the defaults with a warning.
    """
    return Settings(
        S2P_LOGIN_URL=os.environ.get("SHIP2PRIMUS_LOGIN_URL") or None,
        S2P_USERNAME=os.environ.get("SHIP2PRIMUS_USERNAME") or None,
        S2P_PASSWORD=os.environ.get("SHIP2PRIMUS_PASSWORD") or None,
        S2P_RATES_URL=os.environ.get("SHIP2PRIMUS_RATES_URL") or None,
        # Provider grants roughly an hour; refresh ten minutes early.
        S2P_TOKEN_TTL_S=_float_env("SHIP2PRIMUS_TOKEN_TTL_S", 60 * 60),
        S2P_GUARD_BAND_S=_float_env("SHIP2PRIMUS_GUARD_BAND_S", 10 * 60, minimum=0),
        GEONAMES_USERNAME=os.environ.get("GEONAMES_USERNAME") or None,
        GEONAMES_BASE_URL=(
            os.environ.get("GEONAMES_BASE_URL") or DEFAULT_GEONAMES_BASE_URL
        ).rstrip("/"),
        GEONAMES_MAX_RETRIES=max(1, _int_env("GEONAMES_MAX_RETRIES", 3)),
        GEONAMES_BACKOFF_BASE_S=_float_env("GEONAMES_BACKOFF_BASE_S", 1.0, minimum=0),
        GEONAMES_BACKOFF_CAP_S=_float_env("GEONAMES_BACKOFF_CAP_S", 10.0, minimum=0),
        GEONAMES_CACHE_TTL_S=_float_env(
            "GEONAMES_CACHE_TTL_S", 7 * 24 * 60 * 60, minimum=0
        ),
        SUPPORTED_COUNTRIES=_split_codes(
            os.environ.get("GEONAMES_SUPPORTED_COUNTRIES", "US,CA")
        ),
        LENIENT_COUNTRIES=_split_codes(
            os.environ.get("GEONAMES_LENIENT_COUNTRIES", "CA")
        ),
        HTTP_TIMEOUT_S=_float_env("HTTP_TIMEOUT_S", 15.0),
    )


def validate_settings(settings: Settings) -> None:
    """Log warnings for integrations that cannot work with this config."""
    missing = [
        name
        for name, value in (
            ("SHIP2PRIMUS_LOGIN_URL", settings.S2P_LOGIN_URL),
            ("SHIP2PRIMUS_USERNAME", settings.S2P_USERNAME),
            ("SHIP2PRIMUS_PASSWORD", settings.S2P_PASSWORD),
        )
        if not value
    ]
    if missing:
        logger.warning("Ship2Primus auth not configured; missing %s", ", ".join(missing))
    if settings.S2P_RATES_URL is None:
        logger.warning("SHIP2PRIMUS_RATES_URL is not set; rate quotes unavailable.")
    if settings.GEONAMES_USERNAME is None:
        logger.warning("GEONAMES_USERNAME is not set; location lookups will fail.")
    if settings.S2P_GUARD_BAND_S >= settings.S2P_TOKEN_TTL_S:
        logger.warning(
            "SHIP2PRIMUS_GUARD_BAND_S >= token TTL; every call will log in again."
        )


def load_settings() -> Settings:
    settings = _read_settings()
    validate_settings(settings)
    return settings


__all__ = ["Settings", "load_settings", "validate_settings"]

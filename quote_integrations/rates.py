"""Ship2Primus rate quotes, fetched through the authenticated session."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .config import Settings
from .errors import ConfigurationError, ProtocolError
from .models.rate import NormalizedRate
from .session import AuthenticatedSessionClient

logger = logging.getLogger(__name__)

# Normalized field -> upstream names accepted for it, in priority order.
RATE_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "rate_id": ("id", "rateId", "rate_id"),
    "carrier_name": ("carrier", "carrierName", "carrier_name"),
    "service_name": ("service", "serviceName", "service_name"),
    "transit_days": ("transitDays", "transit_days"),
    "total_cost": ("cost", "totalCost", "total_cost", "total"),
    "currency": ("currency",),
}


def _pick(rate: Mapping[str, Any], field: str) -> Any:
    for alias in RATE_FIELD_ALIASES[field]:
        value = rate.get(alias)
        if value not in (None, ""):
            return value
    return None


def normalize_rate(rate: Mapping[str, Any]) -> NormalizedRate:
    """Map one upstream rate object onto NormalizedRate.

    Raises:
        ProtocolError: If the rate has no id or no parseable total cost.
    """
    rate_id = _pick(rate, "rate_id")
    if rate_id is None:
        raise ProtocolError("Rate without an id in Ship2Primus response")
    try:
        total = float(_pick(rate, "total_cost"))
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Rate {rate_id} has no usable total cost") from exc
    transit = _pick(rate, "transit_days")
    try:
        transit_days = int(transit) if transit is not None else None
    except (TypeError, ValueError):
        transit_days = None
    return NormalizedRate(
        rate_id=str(rate_id),
        carrier_name=str(_pick(rate, "carrier_name") or "Unknown"),
        service_name=str(_pick(rate, "service_name") or "Standard"),
        transit_days=transit_days,
        total_cost=total,
        currency=str(_pick(rate, "currency") or "USD"),
        raw=dict(rate),
    )


def extract_rates(data: Any) -> list[NormalizedRate]:
    """Normalize a rates response.

    Accepts ``{"rates": [...]}`` or a single rate object; any other shape is
    a ProtocolError.
    """
    if isinstance(data, Mapping):
        rates = data.get("rates")
        if isinstance(rates, list):
            return [normalize_rate(r) for r in rates if isinstance(r, Mapping)]
        if _pick(data, "rate_id") is not None and (
            data.get("carrierName") or data.get("carrier") or data.get("rateId")
        ):
            return [normalize_rate(data)]
    logger.warning("Unexpected Ship2Primus rates response: %.200r", data)
    raise ProtocolError("Unrecognized Ship2Primus rates response shape")


class RateQuoteClient:
    def __init__(self, session: AuthenticatedSessionClient, rates_url: str | None) -> None:
        self.session = session
        self.rates_url = rates_url

    @classmethod
    def from_settings(
        cls, settings: Settings, session: AuthenticatedSessionClient
    ) -> "RateQuoteClient":
        return cls(session, settings.S2P_RATES_URL)

    async def fetch_rates(self, request: Mapping[str, Any]) -> list[NormalizedRate]:
        if not self.rates_url:
            raise ConfigurationError("SHIP2PRIMUS_RATES_URL is not configured")
        data = await self.session.request_json("POST", self.rates_url, json=dict(request))
        rates = extract_rates(data)
        logger.info("Ship2Primus returned %d rate(s)", len(rates))
        return rates


__all__ = ["RATE_FIELD_ALIASES", "RateQuoteClient", "extract_rates", "normalize_rate"]

"""Wiring for the integration clients.

The route layer builds one `Integrations` at startup and closes it at
shutdown. All clients share a single httpx connection pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .clock import Clock
from .config import Settings, load_settings
from .geonames import LocationDirectory
from .models.location import City, Country, PostalLocation, State
from .models.rate import NormalizedRate
from .rates import RateQuoteClient
from .session import AuthenticatedSessionClient

logger = logging.getLogger(__name__)


@dataclass
class Integrations:
    http: httpx.AsyncClient
    locations: LocationDirectory
    session: AuthenticatedSessionClient
    rates: RateQuoteClient

    async def aclose(self) -> None:
        await self.locations.aclose()
        await self.session.aclose()
        await self.http.aclose()

    async def __aenter__(self) -> "Integrations":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_integrations(
    settings: Settings | None = None,
    *,
    http: httpx.AsyncClient | None = None,
    clock: Clock | None = None,
) -> Integrations:
    settings = settings or load_settings()
    http = http or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_S)
    session = AuthenticatedSessionClient.from_settings(settings, http=http, clock=clock)
    return Integrations(
        http=http,
        locations=LocationDirectory.from_settings(settings, http=http, clock=clock),
        session=session,
        rates=RateQuoteClient.from_settings(settings, session),
    )


# Thin async helpers for the route layer.


async def countries(integrations: Integrations) -> list[Country]:
    return await integrations.locations.countries()


async def states(integrations: Integrations, country: str) -> list[State]:
    return await integrations.locations.states(country)


async def cities(integrations: Integrations, country: str, state: str) -> list[City]:
    return await integrations.locations.cities(country, state)


async def postal_codes(
    integrations: Integrations, country: str, state: str, city: str
) -> list[str]:
    return await integrations.locations.postal_codes(country, state, city)


async def lookup_postal_code(
    integrations: Integrations, country: str, postal_code: str
) -> PostalLocation | None:
    return await integrations.locations.lookup_postal_code(country, postal_code)


async def quote_rates(
    integrations: Integrations, request: Mapping[str, Any]
) -> list[NormalizedRate]:
    return await integrations.rates.fetch_rates(request)

"""GeoNames location lookups (countries, states, cities, postal codes)."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import httpx

from .clock import Clock
from .config import Settings
from .errors import (
    FatalUpstreamError,
    IntegrationError,
    NotFoundError,
    ProtocolError,
    TransientNetworkError,
)
from .lookup import Degrade, LookupPolicy, ResilientLookupClient
from .matching import (
    MatchPolicy,
    order_by_name,
    order_by_weight,
    unique,
    unique_sorted,
)
from .models.location import City, Country, PostalLocation, State
from .models.result import LookupResult
from .retry import RetryPolicy

__all__ = [
    "LocationDirectory",
    "COUNTRIES",
    "STATES",
    "CITIES",
    "POSTAL_CODES",
    "POSTAL_LOOKUP",
    "POSTAL_MATCH",
    "check_status_payload",
]

logger = logging.getLogger(__name__)

# GeoNames reports some failures as HTTP 200 with a "status" object.
# 13: database timeout, 18-20: daily/hourly/weekly credit limit,
# 22: server overloaded.
TRANSIENT_STATUS_VALUES = frozenset({13, 18, 19, 20, 22})

COUNTRIES: LookupPolicy[list[Country]] = LookupPolicy("countries")
STATES: LookupPolicy[list[State]] = LookupPolicy("states")
CITIES: LookupPolicy[list[City]] = LookupPolicy("cities")
# An empty list still lets the user type a postal code by hand.
POSTAL_CODES: LookupPolicy[list[str]] = LookupPolicy(
    "postal codes", degrade=Degrade.EMPTY, empty=list
)
POSTAL_LOOKUP: LookupPolicy[PostalLocation | None] = LookupPolicy(
    "postal code lookup", degrade=Degrade.EMPTY, empty=lambda: None
)

# Upstream returns codes for neighbouring places too; keep the named one.
POSTAL_MATCH = MatchPolicy(fields=("placeName", "adminName2"))


def check_status_payload(payload: Any) -> None:
    """Raise for GeoNames error bodies delivered with HTTP 200."""
    if not isinstance(payload, Mapping):
        raise ProtocolError("GeoNames response is not a JSON object")
    status = payload.get("status")
    if not isinstance(status, Mapping):
        return
    message = str(status.get("message") or "unknown error")
    try:
        value = int(status.get("value"))
    except (TypeError, ValueError):
        value = -1
    if value in TRANSIENT_STATUS_VALUES:
        raise TransientNetworkError(f"GeoNames status {value}: {message}")
    raise FatalUpstreamError(f"GeoNames status {value}: {message}", body=message)


def _collection(payload: Mapping[str, Any], field: str) -> list[Mapping[str, Any]]:
    items = payload.get(field, [])
    if items is None:
        return []
    if not isinstance(items, list):
        raise ProtocolError(f"GeoNames field {field!r} is not a list")
    return [i for i in items if isinstance(i, Mapping)]


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _country_code(value: str) -> str:
    return (value or "").strip().upper()


class LocationDirectory:
    """Location reference data for the quote form, backed by GeoNames."""

    def __init__(
        self,
        client: ResilientLookupClient,
        *,
        supported_countries: Iterable[str] = ("US", "CA"),
        lenient_countries: Iterable[str] = ("CA",),
    ) -> None:
        self.client = client
        self.supported_countries = {_country_code(c) for c in supported_countries}
        self.lenient_countries = {_country_code(c) for c in lenient_countries}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> "LocationDirectory":
        client = ResilientLookupClient(
            settings.GEONAMES_BASE_URL,
            settings.GEONAMES_USERNAME,
            http=http,
            clock=clock,
            retry=RetryPolicy(
                max_attempts=settings.GEONAMES_MAX_RETRIES,
                base_delay_s=settings.GEONAMES_BACKOFF_BASE_S,
                max_delay_s=settings.GEONAMES_BACKOFF_CAP_S,
            ),
            ttl_s=settings.GEONAMES_CACHE_TTL_S,
            timeout_s=settings.HTTP_TIMEOUT_S,
            validate=check_status_payload,
            name="GeoNames",
        )
        return cls(
            client,
            supported_countries=settings.SUPPORTED_COUNTRIES,
            lenient_countries=settings.LENIENT_COUNTRIES,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def match_policy(self, country_code: str) -> MatchPolicy:
        lenient = _country_code(country_code) in self.lenient_countries
        return POSTAL_MATCH.with_leniency(lenient)

    def _parse_countries(self, payload: Mapping[str, Any]) -> list[Country]:
        countries = [
            Country(
                geoname_id=_int(c.get("geonameId")),
                country_code=str(c.get("countryCode") or ""),
                country_name=str(c.get("countryName") or ""),
            )
            for c in _collection(payload, "geonames")
            if c.get("countryCode") in self.supported_countries
        ]
        return order_by_name(
            unique(countries, key=lambda c: c.country_code),
            lambda c: c.country_name,
        )

    async def countries_result(self) -> LookupResult[list[Country]]:
        return await self.client.fetch_result(
            "countries",
            "/countryInfoJSON",
            {},
            parse=self._parse_countries,
            policy=COUNTRIES,
        )

    async def countries(self) -> list[Country]:
        return (await self.countries_result()).unwrap()

    async def country_geoname_id(self, country_code: str) -> int:
        code = _country_code(country_code)
        for country in await self.countries():
            if country.country_code == code:
                return country.geoname_id
        raise NotFoundError(f"Country not found: {code}")

    async def states(self, country_code: str) -> list[State]:
        code = _country_code(country_code)
        key = f"states:{code}"
        try:
            geoname_id = await self.country_geoname_id(code)
        except IntegrationError:
            stale = self.client.cache.get(key)
            if stale is None:
                raise
            logger.warning("Country lookup failed; serving cached %s", key)
            return stale.value

        def parse(payload: Mapping[str, Any]) -> list[State]:
            states = []
            for s in _collection(payload, "geonames"):
                codes = s.get("adminCodes1")
                admin = s.get("adminCode1") or (
                    codes.get("ISO3166_2", "") if isinstance(codes, Mapping) else ""
                )
                states.append(
                    State(
                        geoname_id=_int(s.get("geonameId")),
                        admin_code1=str(admin or ""),
                        name=str(s.get("name") or ""),
                        country_code=str(s.get("countryCode") or code),
                    )
                )
            return order_by_name(
                unique(states, key=lambda s: s.geoname_id), lambda s: s.name
            )

        result = await self.client.fetch_result(
            key,
            "/childrenJSON",
            {"geonameId": geoname_id},
            parse=parse,
            policy=STATES,
        )
        return result.unwrap()

    async def cities(self, country_code: str, admin_code1: str) -> list[City]:
        code = _country_code(country_code)
        admin = (admin_code1 or "").strip().upper()

        def parse(payload: Mapping[str, Any]) -> list[City]:
            cities = [
                City(
                    geoname_id=_int(c.get("geonameId")),
                    name=str(c.get("name") or ""),
                    admin_code1=str(c.get("adminCode1") or admin),
                    country_code=str(c.get("countryCode") or code),
                    population=_int(c.get("population")),
                    lat=str(c.get("lat") or ""),
                    lng=str(c.get("lng") or ""),
                )
                for c in _collection(payload, "geonames")
            ]
            return order_by_weight(
                unique(cities, key=lambda c: c.geoname_id),
                weight=lambda c: c.population,
                name=lambda c: c.name,
            )

        result = await self.client.fetch_result(
            f"cities:{code}:{admin}",
            "/searchJSON",
            {
                "country": code,
                "adminCode1": admin,
                "featureClass": "P",
                "maxRows": 1000,
                "orderby": "population",
            },
            parse=parse,
            policy=CITIES,
        )
        return result.unwrap()

    async def postal_codes_result(
        self, country_code: str, admin_code1: str, place_name: str
    ) -> LookupResult[list[str]]:
        code = _country_code(country_code)
        admin = (admin_code1 or "").strip().upper()
        place = " ".join((place_name or "").split())
        matcher = self.match_policy(code)

        def parse(payload: Mapping[str, Any]) -> list[str]:
            matches = matcher.select(_collection(payload, "postalCodes"), place)
            return unique_sorted(str(p.get("postalCode") or "") for p in matches)

        return await self.client.fetch_result(
            f"postal:{code}:{admin}:{place.casefold()}",
            "/postalCodeSearchJSON",
            {"country": code, "adminCode1": admin, "placeName": place, "maxRows": 100},
            parse=parse,
            policy=POSTAL_CODES,
        )

    async def postal_codes(
        self, country_code: str, admin_code1: str, place_name: str
    ) -> list[str]:
        """Postal codes for a place; an empty list when none can be found."""
        result = await self.postal_codes_result(country_code, admin_code1, place_name)
        return result.unwrap()

    async def lookup_postal_code(
        self, country_code: str, postal_code: str
    ) -> PostalLocation | None:
        """Reverse lookup of a postal code; None when unknown or unavailable."""
        code = _country_code(country_code)
        postal = (postal_code or "").strip().upper()

        def parse(payload: Mapping[str, Any]) -> PostalLocation | None:
            results = _collection(payload, "postalCodes")
            if not results:
                return None
            r = results[0]
            return PostalLocation(
                postal_code=str(r.get("postalCode") or postal),
                place_name=str(r.get("placeName") or ""),
                admin_name1=str(r.get("adminName1") or ""),
                admin_code1=str(r.get("adminCode1") or ""),
                country_code=str(r.get("countryCode") or code),
                lat=_float(r.get("lat")),
                lng=_float(r.get("lng")),
            )

        result = await self.client.fetch_result(
            f"postal-lookup:{code}:{postal}",
            "/postalCodeLookupJSON",
            {"postalcode": postal, "country": code},
            parse=parse,
            policy=POSTAL_LOOKUP,
        )
        return result.unwrap()

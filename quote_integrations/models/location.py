"""Location reference-data dataclasses."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Country:
    geoname_id: int
    country_code: str
    country_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class State:
    geoname_id: int
    admin_code1: str
    name: str
    country_code: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class City:
    geoname_id: int
    name: str
    admin_code1: str
    country_code: str
    population: int
    lat: str
    lng: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PostalLocation:
    """Result of a reverse postal-code lookup."""

    postal_code: str
    place_name: str
    admin_name1: str
    admin_code1: str
    country_code: str
    lat: float
    lng: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

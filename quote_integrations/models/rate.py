"""Normalized rate quote dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NormalizedRate:
    rate_id: str
    carrier_name: str
    service_name: str
    transit_days: int | None
    total_cost: float
    currency: str = "USD"
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

"""Explicit lookup outcome types."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..errors import IntegrationError

T = TypeVar("T")


class ResultSource(enum.Enum):
    UPSTREAM = "upstream"
    CACHE = "cache"
    # Expired cache entry served because the upstream failed.
    STALE = "stale"
    # Policy-defined empty value served because nothing else was available.
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Value of a lookup together with where it came from.

    ``error`` is set whenever the upstream call failed, including the
    STALE and DEGRADED cases where a usable value is still returned.
    """

    value: T | None
    source: ResultSource
    error: IntegrationError | None = None

    @property
    def ok(self) -> bool:
        return self.source is not ResultSource.FAILED

    @property
    def degraded(self) -> bool:
        return self.source in (ResultSource.STALE, ResultSource.DEGRADED)

    def unwrap(self) -> T:
        if self.source is ResultSource.FAILED:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def failed(cls, error: IntegrationError) -> "LookupResult[Any]":
        return cls(value=None, source=ResultSource.FAILED, error=error)


class AttemptOutcome(enum.Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class RequestAttempt(Generic[T]):
    """One try inside a retried call; never outlives that call."""

    attempt_number: int
    outcome: AttemptOutcome
    value: T | None = None
    delay_s: float = 0.0
    error: BaseException | None = None

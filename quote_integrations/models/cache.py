"""Lookup cache dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Cached value with the time it was fetched."""

    value: T
    fetched_at: float

    def is_fresh(self, now: float, ttl_s: float) -> bool:
        return (now - self.fetched_at) < ttl_s


class CacheStore:
    """Keyed lookup cache.

    Entries are never evicted on expiry; staleness is judged by the reader so
    an old entry can still be served when the upstream is down.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheEntry[Any] | None:
        return self._entries.get(key)

    def put(self, key: str, value: Any, fetched_at: float) -> CacheEntry[Any]:
        entry = CacheEntry(value=value, fetched_at=fetched_at)
        self._entries[key] = entry
        return entry

    def pop(self, key: str) -> CacheEntry[Any] | None:
        return self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

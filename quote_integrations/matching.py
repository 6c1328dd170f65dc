"""Result filtering, de-duplication and ordering for lookup payloads."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence, TypeVar

T = TypeVar("T")

_WS_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


def normalize(value: object) -> str:
    """Collapse whitespace and case-fold; ``None`` becomes an empty string."""
    if value is None:
        return ""
    return _WS_RE.sub(" ", str(value)).strip().casefold()


def sort_key(value: str) -> tuple[str, str]:
    """Accent- and case-insensitive collation key.

    "Québec" sorts next to "Quebec" rather than after "Z". The original
    string is the tiebreaker so the order is total.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    folded = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (folded.casefold(), value)


def tokens(value: object, min_length: int = 3) -> set[str]:
    return {t for t in _TOKEN_RE.findall(normalize(value)) if len(t) >= min_length}


@dataclass(frozen=True)
class MatchPolicy:
    """How lookup records are matched against the requested name.

    Records match exactly when any of ``fields`` equals the query after
    normalisation. When nothing matches exactly and ``lenient`` is set, a
    fuzzy pass accepts containment in either direction or a shared
    significant token. Some upstream partitions carry sparse metadata and
    would otherwise produce false negatives.
    """

    fields: tuple[str, ...]
    lenient: bool = False
    min_token_length: int = 3

    def _values(self, record: Mapping[str, Any]) -> list[str]:
        return [v for v in (normalize(record.get(f)) for f in self.fields) if v]

    def is_exact(self, record: Mapping[str, Any], query: str) -> bool:
        q = normalize(query)
        return bool(q) and q in self._values(record)

    def is_fuzzy(self, record: Mapping[str, Any], query: str) -> bool:
        q = normalize(query)
        if not q:
            return False
        q_tokens = tokens(q, self.min_token_length)
        for value in self._values(record):
            if q in value or value in q:
                return True
            if q_tokens & tokens(value, self.min_token_length):
                return True
        return False

    def select(
        self, records: Iterable[Mapping[str, Any]], query: str
    ) -> list[Mapping[str, Any]]:
        records = [r for r in records if isinstance(r, Mapping)]
        exact = [r for r in records if self.is_exact(r, query)]
        if exact or not self.lenient:
            return exact
        return [r for r in records if self.is_fuzzy(r, query)]

    def with_leniency(self, lenient: bool) -> "MatchPolicy":
        return MatchPolicy(self.fields, lenient, self.min_token_length)


def unique(items: Iterable[T], key: Callable[[T], Hashable] | None = None) -> list[T]:
    """Drop repeats, keeping the first occurrence."""
    seen: set[Hashable] = set()
    out: list[T] = []
    for item in items:
        k = key(item) if key else item
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def unique_sorted(values: Iterable[str]) -> list[str]:
    cleaned = (v.strip() for v in values if v and v.strip())
    return sorted(set(cleaned), key=sort_key)


def order_by_name(items: Sequence[T], name: Callable[[T], str]) -> list[T]:
    return sorted(items, key=lambda item: sort_key(name(item)))


def order_by_weight(
    items: Sequence[T],
    weight: Callable[[T], float],
    name: Callable[[T], str] | None = None,
) -> list[T]:
    """Heaviest first; equal weights fall back to name order when given."""
    if name is None:
        return sorted(items, key=weight, reverse=True)
    return sorted(items, key=lambda item: (-weight(item), sort_key(name(item))))


__all__ = [
    "MatchPolicy",
    "normalize",
    "order_by_name",
    "order_by_weight",
    "sort_key",
    "tokens",
    "unique",
    "unique_sorted",
]

"""Cached, retried client for read-only reference-data upstreams.

Values are cached for a long TTL because the data rarely changes. A miss
goes to the upstream with bounded exponential-backoff retry; when that fails
any cached value for the key is served even if expired, and otherwise the
lookup's degrade policy decides between raising and returning an empty value.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, TypeVar

import httpx

from .clock import Clock, SystemClock
from .errors import (
    ConfigurationError,
    ErrorClass,
    FatalUpstreamError,
    IntegrationError,
    NotFoundError,
    ProtocolError,
    TransientNetworkError,
    classify_status,
)
from .models.cache import CacheStore
from .models.result import LookupResult, ResultSource
from .retry import RetriesExhausted, RetryPolicy, call_with_retry
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_S = 7 * 24 * 60 * 60
_BODY_SNIPPET = 500


class Degrade(enum.Enum):
    RAISE = "raise"
    EMPTY = "empty"


@dataclass(frozen=True)
class LookupPolicy(Generic[T]):
    """What a lookup type returns when the upstream and the cache both fail."""

    name: str
    degrade: Degrade = Degrade.RAISE
    empty: Callable[[], T] = field(default=list)  # type: ignore[assignment]


def _identity(payload: Any) -> Any:
    return payload


class ResilientLookupClient:
    """GET-only client with caching, retry and stale fallback."""

    def __init__(
        self,
        base_url: str,
        client_id: str | None,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        retry: RetryPolicy | None = None,
        ttl_s: float = DEFAULT_TTL_S,
        timeout_s: float = 15.0,
        identity_param: str = "username",
        validate: Callable[[Any], None] | None = None,
        name: str = "lookup",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.clock = clock or SystemClock()
        self.retry = retry or RetryPolicy()
        self.ttl_s = ttl_s
        self.identity_param = identity_param
        self.name = name
        self._validate = validate
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self._store = CacheStore()
        self._flights: SingleFlight[LookupResult[Any]] = SingleFlight()

    async def __aenter__(self) -> "ResilientLookupClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._flights.cancel_all()
        self._store.clear()
        if self._owns_http:
            await self._http.aclose()

    @property
    def cache(self) -> CacheStore:
        return self._store

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._store.clear()
        else:
            self._store.pop(key)

    def _check_config(self) -> None:
        if not self.client_id:
            raise ConfigurationError(
                f"{self.name} client identifier is not configured"
            )

    async def _get_once(self, endpoint: str, params: Mapping[str, Any]) -> Any:
        url = f"{self.base_url}{endpoint}"
        query = {**params, self.identity_param: self.client_id}
        logger.debug("%s GET %s %s", self.name, endpoint, dict(params))
        try:
            resp = await self._http.get(url, params=query)
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"{self.name} {endpoint}: {type(exc).__name__}: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            # Undecodable body, redirect loop and the like.
            raise ProtocolError(
                f"{self.name} {endpoint}: {type(exc).__name__}: {exc}"
            ) from exc

        if not resp.is_success:
            snippet = resp.text[:_BODY_SNIPPET].replace("\n", " ")
            if classify_status(resp.status_code) is ErrorClass.TRANSIENT:
                raise TransientNetworkError(
                    f"{self.name} {endpoint}: HTTP {resp.status_code}",
                    status_code=resp.status_code,
                )
            raise FatalUpstreamError(
                f"{self.name} {endpoint}: HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=snippet,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProtocolError(
                f"{self.name} {endpoint}: response is not JSON",
                status_code=resp.status_code,
                body=resp.text[:_BODY_SNIPPET],
            ) from exc
        if self._validate is not None:
            self._validate(payload)
        return payload

    async def request(self, endpoint: str, params: Mapping[str, Any]) -> Any:
        """One retried GET, bypassing the cache.

        Raises:
            ConfigurationError: No client identifier.
            FatalUpstreamError / ProtocolError: Non-retryable failure.
            RetriesExhausted: Every attempt failed transiently.
        """
        self._check_config()
        return await call_with_retry(
            lambda: self._get_once(endpoint, params),
            self.retry,
            self.clock,
            label=f"{self.name} {endpoint}",
        )

    async def fetch_result(
        self,
        key: str,
        endpoint: str,
        params: Mapping[str, Any],
        *,
        parse: Callable[[Any], T] = _identity,
        policy: LookupPolicy[T] | None = None,
    ) -> LookupResult[T]:
        """Resolve ``key`` from cache or upstream without raising lookup errors.

        ConfigurationError is still raised; it is a setup problem, not an
        outcome a caller can degrade from.
        """
        policy = policy or LookupPolicy(name=key)
        entry = self._store.get(key)
        if entry is not None and entry.is_fresh(self.clock.now(), self.ttl_s):
            logger.debug("%s cache hit: %s", self.name, key)
            return LookupResult(value=entry.value, source=ResultSource.CACHE)
        if entry is not None:
            logger.debug("%s cache expired: %s", self.name, key)

        self._check_config()
        return await self._flights.do(
            key, lambda: self._refresh(key, endpoint, params, parse, policy)
        )

    async def fetch(
        self,
        key: str,
        endpoint: str,
        params: Mapping[str, Any],
        *,
        parse: Callable[[Any], T] = _identity,
        policy: LookupPolicy[T] | None = None,
    ) -> T:
        result = await self.fetch_result(
            key, endpoint, params, parse=parse, policy=policy
        )
        return result.unwrap()

    async def _refresh(
        self,
        key: str,
        endpoint: str,
        params: Mapping[str, Any],
        parse: Callable[[Any], T],
        policy: LookupPolicy[T],
    ) -> LookupResult[T]:
        try:
            payload = await self.request(endpoint, params)
            value = parse(payload)
        except RetriesExhausted as exc:
            error: IntegrationError = NotFoundError(
                f"Failed to fetch {policy.name}: upstream unavailable after "
                f"{exc.attempts} attempts"
            )
            error.__cause__ = exc.last_error
            return self._fallback(key, policy, error)
        except IntegrationError as exc:
            return self._fallback(key, policy, exc)

        self._store.put(key, value, self.clock.now())
        logger.debug("%s cached %s (%d entries)", self.name, key, len(self._store))
        return LookupResult(value=value, source=ResultSource.UPSTREAM)

    def _fallback(
        self, key: str, policy: LookupPolicy[T], error: IntegrationError
    ) -> LookupResult[T]:
        entry = self._store.get(key)
        if entry is not None:
            age_h = (self.clock.now() - entry.fetched_at) / 3600
            logger.warning(
                "%s serving stale %s (%.1fh old) after error: %s",
                self.name,
                key,
                age_h,
                error,
            )
            return LookupResult(
                value=entry.value, source=ResultSource.STALE, error=error
            )
        if policy.degrade is Degrade.EMPTY:
            logger.warning(
                "%s degrading %s to empty result after error: %s",
                self.name,
                policy.name,
                error,
            )
            return LookupResult(
                value=policy.empty(), source=ResultSource.DEGRADED, error=error
            )
        logger.error("%s failed to fetch %s: %s", self.name, policy.name, error)
        return LookupResult.failed(error)


__all__ = [
    "DEFAULT_TTL_S",
    "Degrade",
    "LookupPolicy",
    "ResilientLookupClient",
]

"""Bearer-token session client for the login-gated Ship2Primus upstream.

The client logs in on demand, caches the token for the provider's stated
lifetime minus a guard band, and recovers from a single 401 by logging in
again and replaying the request once.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from .clock import Clock, SystemClock
from .config import Settings
from .errors import (
    AuthError,
    ConfigurationError,
    FatalUpstreamError,
    ProtocolError,
    TransientNetworkError,
)
from .models.credential import CachedCredential, CredentialStore
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

# Paths tried in order when reading the login response.
TOKEN_FIELD_ALIASES: tuple[tuple[str, ...], ...] = (
    ("token",),
    ("access_token",),
    ("authToken",),
    ("data", "accessToken"),
)
EXPIRY_FIELD_ALIASES: tuple[tuple[str, ...], ...] = (
    ("expires_in",),
    ("expiresIn",),
    ("data", "expiresIn"),
)

_LOGIN_KEY = "login"
_BODY_SNIPPET = 500


def _dig(data: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = data
    for part in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def resolve_token(data: Any) -> str:
    """Return the bearer token from a login response body.

    Raises:
        ProtocolError: If the body is not an object or carries no token under
            any known alias.
    """
    if not isinstance(data, Mapping):
        raise ProtocolError("Login response is not a JSON object")
    for path in TOKEN_FIELD_ALIASES:
        value = _dig(data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ProtocolError(
        "No authentication token in login response (keys: %s)"
        % ", ".join(sorted(map(str, data.keys())))
    )


def resolve_lifetime(data: Mapping[str, Any], default_s: float) -> float:
    for path in EXPIRY_FIELD_ALIASES:
        value = _dig(data, path)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
        if isinstance(value, str) and value.strip().isdigit():
            return float(value.strip())
    return default_s


def _snippet(resp: httpx.Response) -> str:
    try:
        text = resp.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""
    return text[:_BODY_SNIPPET].replace("\n", " ")


class AuthenticatedSessionClient:
    """Issues requests to a login-gated upstream with a cached bearer token."""

    def __init__(
        self,
        login_url: str | None,
        username: str | None,
        password: str | None,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        provider_ttl_s: float = 60 * 60,
        guard_band_s: float = 10 * 60,
        timeout_s: float = 15.0,
    ) -> None:
        self.login_url = login_url
        self.username = username
        self.password = password
        self.provider_ttl_s = provider_ttl_s
        self.guard_band_s = guard_band_s
        self.clock = clock or SystemClock()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_s)
        self._store = CredentialStore()
        self._logins: SingleFlight[CachedCredential] = SingleFlight()
        self.login_count = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        http: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> "AuthenticatedSessionClient":
        return cls(
            settings.S2P_LOGIN_URL,
            settings.S2P_USERNAME,
            settings.S2P_PASSWORD,
            http=http,
            clock=clock,
            provider_ttl_s=settings.S2P_TOKEN_TTL_S,
            guard_band_s=settings.S2P_GUARD_BAND_S,
            timeout_s=settings.HTTP_TIMEOUT_S,
        )

    async def __aenter__(self) -> "AuthenticatedSessionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._logins.cancel_all()
        self._store.invalidate()
        if self._owns_http:
            await self._http.aclose()

    @property
    def credential(self) -> CachedCredential | None:
        return self._store.credential

    def invalidate(self) -> None:
        """Forget the cached token; the next call logs in again."""
        if self._store.invalidate():
            logger.info("Ship2Primus credential invalidated")

    def _check_config(self) -> None:
        missing = [
            name
            for name, value in (
                ("login URL", self.login_url),
                ("username", self.username),
                ("password", self.password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Ship2Primus authentication not configured (missing %s). Set "
                "SHIP2PRIMUS_LOGIN_URL, SHIP2PRIMUS_USERNAME and "
                "SHIP2PRIMUS_PASSWORD." % ", ".join(missing)
            )

    async def token(self) -> str:
        """Return a token that is valid now, logging in if needed."""
        self._check_config()
        cred = self._store.valid(self.clock.now())
        if cred is not None:
            return cred.token
        cred = await self._logins.do(_LOGIN_KEY, self._login)
        return cred.token

    async def _login(self) -> CachedCredential:
        # A concurrent flight may have finished while we were scheduled.
        now = self.clock.now()
        cred = self._store.valid(now)
        if cred is not None:
            return cred

        logger.info("Logging in to Ship2Primus")
        try:
            resp = await self._http.post(
                self.login_url,  # type: ignore[arg-type]
                json={"username": self.username, "password": self.password},
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Ship2Primus login failed: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProtocolError(
                f"Ship2Primus login response unreadable: {type(exc).__name__}: {exc}"
            ) from exc

        if not resp.is_success:
            raise AuthError(
                f"Ship2Primus login failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=_snippet(resp),
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProtocolError(
                "Ship2Primus login response is not JSON",
                status_code=resp.status_code,
                body=_snippet(resp),
            ) from exc

        token = resolve_token(data)
        lifetime = resolve_lifetime(data, self.provider_ttl_s)
        acquired = self.clock.now()
        cred = CachedCredential(
            token=token,
            acquired_at=acquired,
            valid_until=acquired + max(0.0, lifetime - self.guard_band_s),
        )
        self._store.replace(cred)
        self.login_count += 1
        logger.info(
            "Ship2Primus login ok; token cached for %.0fs",
            cred.valid_until - cred.acquired_at,
        )
        return cred

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        headers: Mapping[str, str] | None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged = {"Accept": "application/json", **(headers or {})}
        merged["Authorization"] = f"Bearer {token}"
        try:
            return await self._http.request(method, url, headers=merged, **kwargs)
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Ship2Primus {method} {url} failed: {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProtocolError(
                f"Ship2Primus {method} {url} response unreadable: "
                f"{type(exc).__name__}: {exc}"
            ) from exc

    async def authorized_request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        content: bytes | str | None = None,
    ) -> httpx.Response:
        """Send a request with the bearer token attached.

        A 401 triggers exactly one fresh login and one replay of the request.

        Raises:
            ConfigurationError: Login URL or credentials are not set.
            AuthError: The login endpoint rejected the credentials.
            ProtocolError: The login response carried no token.
            TransientNetworkError: The transport failed.
            FatalUpstreamError: Any other non-2xx answer, including a second 401.
        """
        kwargs: dict[str, Any] = {"params": params}
        if json is not None:
            kwargs["json"] = json
        if content is not None:
            kwargs["content"] = content

        token = await self.token()
        resp = await self._send(method, url, token, headers, **kwargs)

        if resp.status_code == 401:
            logger.warning("Ship2Primus returned 401; refreshing credential")
            self._store.invalidate(token)
            token = await self.token()
            resp = await self._send(method, url, token, headers, **kwargs)
            if not resp.is_success:
                raise FatalUpstreamError(
                    f"Ship2Primus request failed after re-login with status "
                    f"{resp.status_code}",
                    status_code=resp.status_code,
                    body=_snippet(resp),
                )
            return resp

        if not resp.is_success:
            raise FatalUpstreamError(
                f"Ship2Primus request failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=_snippet(resp),
            )
        return resp

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = await self.authorized_request(method, url, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise ProtocolError(
                "Ship2Primus response is not JSON",
                status_code=resp.status_code,
                body=_snippet(resp),
            ) from exc


__all__ = [
    "AuthenticatedSessionClient",
    "EXPIRY_FIELD_ALIASES",
    "TOKEN_FIELD_ALIASES",
    "resolve_lifetime",
    "resolve_token",
]

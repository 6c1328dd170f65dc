"""Bearer credential dataclass and its single-slot store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CachedCredential:
    """Bearer token plus the window in which it may be presented."""

    token: str
    acquired_at: float
    valid_until: float

    def is_valid(self, now: float) -> bool:
        return now < self.valid_until


class CredentialStore:
    """Holds at most one credential; replaced wholesale, never edited."""

    def __init__(self) -> None:
        self._credential: CachedCredential | None = None

    @property
    def credential(self) -> CachedCredential | None:
        return self._credential

    def valid(self, now: float) -> CachedCredential | None:
        cred = self._credential
        if cred is not None and cred.is_valid(now):
            return cred
        return None

    def replace(self, credential: CachedCredential) -> None:
        self._credential = credential

    def invalidate(self, token: str | None = None) -> bool:
        """Drop the credential.

        When ``token`` is given, only drop it if it is still the cached one,
        so a caller holding an old token cannot discard a newer login.
        """
        cred = self._credential
        if cred is None:
            return False
        if token is not None and cred.token != token:
            return False
        self._credential = None
        return True

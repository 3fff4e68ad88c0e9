"""Token refresh with one in-flight refresh per credential.

Proactive refresh (:meth:`TokenRefresher.get_valid_token`) runs before a
request when the token is close to expiry. Reactive refresh
(:meth:`TokenRefresher.refresh_if_needed`) runs after a 401 and uses
double-checked locking so that concurrent 401s collapse into a single call to
the OAuth endpoint.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta

import anyio

from .credentials import Credential, CredentialStore, sanitize_token, utcnow
from .errors import LinearError, NoRefreshTokenError, RefreshFailedError, TokenError

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


class OAuthRefresher(ABC):
    """Exchanges a refresh token for a new credential."""

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> Credential:
        ...


class TokenRefresher:
    """Owns one credential and serializes every refresh of it."""

    def __init__(
        self,
        store: CredentialStore,
        oauth: OAuthRefresher,
        *,
        refresh_buffer: timedelta = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.oauth = oauth
        self.refresh_buffer = refresh_buffer
        self._clock = clock
        self._lock = anyio.Lock()
        self._refreshing = False

    @property
    def refreshing(self) -> bool:
        """Whether a refresh call is currently in flight."""

        return self._refreshing

    def _load(self) -> Credential:
        try:
            return self.store.load()
        except TokenError:
            raise
        except Exception as exc:
            raise TokenError(f"failed to load token: {exc}") from exc

    async def get_valid_token(self) -> str:
        """Return an access token, refreshing first when it is about to expire."""

        credential = self._load()

        if credential.expires_at is None:
            return credential.access_token

        now = self._clock()
        if not credential.needs_refresh(self.refresh_buffer, now):
            return credential.access_token

        logger.debug("Access token expires at %s; refreshing proactively", credential.expires_at.isoformat())
        try:
            return await self._refresh(credential)
        except LinearError as exc:
            if not credential.is_expired(self._clock()):
                logger.warning("Proactive token refresh failed, using current token: %s", exc)
                return credential.access_token
            raise

    async def refresh_if_needed(self, last_known_token: str) -> str:
        """Refresh after ``last_known_token`` was rejected.

        Returns the newer stored token without a network call when another
        caller already refreshed it.

        Raises:
            NoRefreshTokenError: If the credential has no refresh token
            RefreshFailedError: If the OAuth endpoint rejected the refresh
        """
        last_known_token = sanitize_token(last_known_token)

        current = self._load()
        if current.access_token != last_known_token:
            return current.access_token

        async with self._lock:
            current = self._load()
            if current.access_token != last_known_token:
                logger.debug("Token already refreshed by a concurrent caller")
                return current.access_token
            return await self._refresh_locked(current)

    async def _refresh(self, stale: Credential) -> str:
        async with self._lock:
            current = self._load()
            if current.access_token != stale.access_token and not current.needs_refresh(
                self.refresh_buffer, self._clock()
            ):
                return current.access_token
            return await self._refresh_locked(current)

    async def _refresh_locked(self, credential: Credential) -> str:
        # Caller holds self._lock.
        if not credential.refresh_token:
            raise NoRefreshTokenError()

        self._refreshing = True
        try:
            try:
                refreshed = await self.oauth.refresh_access_token(credential.refresh_token)
            except Exception as exc:
                raise RefreshFailedError(exc) from exc

            if not refreshed.refresh_token:
                refreshed = refreshed.model_copy(update={"refresh_token": credential.refresh_token})

            try:
                self.store.save(refreshed)
            except TokenError:
                raise
            except Exception as exc:
                raise TokenError(f"failed to save refreshed token: {exc}") from exc
        finally:
            self._refreshing = False

        logger.info("Access token refreshed")
        return refreshed.access_token


class TokenProvider(ABC):
    """Source of bearer tokens for the executor."""

    @abstractmethod
    async def get_token(self) -> str:
        """Return a token to send, refreshing proactively where supported."""
        ...

    @abstractmethod
    async def refresh_if_needed(self, failed_token: str) -> str:
        """Return a replacement for ``failed_token`` after a 401."""
        ...


class StaticTokenProvider(TokenProvider):
    """Personal API keys and legacy tokens that cannot be refreshed."""

    def __init__(self, token: str) -> None:
        self._token = sanitize_token(token)

    async def get_token(self) -> str:
        return self._token

    async def refresh_if_needed(self, failed_token: str) -> str:
        raise NoRefreshTokenError()


class RefreshingTokenProvider(TokenProvider):
    """OAuth tokens with expiry, refreshed through a :class:`TokenRefresher`."""

    def __init__(self, refresher: TokenRefresher) -> None:
        self.refresher = refresher

    async def get_token(self) -> str:
        return await self.refresher.get_valid_token()

    async def refresh_if_needed(self, failed_token: str) -> str:
        return await self.refresher.refresh_if_needed(failed_token)

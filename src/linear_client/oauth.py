"""OAuth refresh-token grant against Linear's token endpoint."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import httpx

from .credentials import Credential, utcnow
from .errors import AuthenticationError, NetworkError, ResponseDecodeError
from .token import OAuthRefresher

logger = logging.getLogger(__name__)

LINEAR_TOKEN_URL = "https://api.linear.app/oauth/token"


class LinearOAuthClient(OAuthRefresher):
    """Refresh collaborator for :class:`~linear_client.token.TokenRefresher`."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | None = None,
        *,
        token_url: str = LINEAR_TOKEN_URL,
        http_client: httpx.AsyncClient | None = None,
        http_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.http_timeout = http_timeout
        self._http_client = http_client
        self._clock = clock

    async def refresh_access_token(self, refresh_token: str) -> Credential:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.token_url, data=form)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.http_timeout)) as client:
                    response = await client.post(self.token_url, data=form)
        except httpx.TransportError as exc:
            raise NetworkError(str(exc) or type(exc).__name__) from exc

        if response.status_code in (400, 401):
            payload = _safe_json(response)
            raise AuthenticationError(
                str(payload.get("error_description") or payload.get("error") or response.text),
                str(payload["error"]) if payload.get("error") else None,
            )
        if response.status_code >= 300:
            raise NetworkError(f"token endpoint returned HTTP {response.status_code}: {response.text}")

        payload = _safe_json(response)
        access_token = payload.get("access_token")
        if not access_token:
            raise ResponseDecodeError("token endpoint response is missing access_token")

        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in:
            expires_at = self._clock() + timedelta(seconds=int(expires_in))

        logger.debug("Token endpoint issued a new access token (expires_in=%s)", expires_in)
        return Credential(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
        )


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}

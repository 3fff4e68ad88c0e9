"""Linear GraphQL API client with retry, backoff, and token refresh."""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
import httpx
from pydantic import ValidationError as PydanticValidationError

from .base_client import JsonDict, LinearClient, ModelT
from .credentials import format_auth_header
from .errors import (
    AuthenticationError,
    ClientError,
    GraphQLError,
    LinearError,
    NetworkError,
    NoRefreshTokenError,
    RateLimitError,
    RefreshFailedError,
    ResponseDecodeError,
    RetryExhaustedError,
    ServerError,
    SessionExpiredError,
    ValidationError,
)
from .token import TokenProvider

logger = logging.getLogger(__name__)

LINEAR_API_URL = "https://api.linear.app/graphql"

DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY = 0.1
RATE_LIMIT_MULTIPLIER = 10
QUERY_EXCERPT_LENGTH = 100

_OPERATION_PATTERN = re.compile(r"^\s*(?:query|mutation|subscription)\s+(?P<name>[_A-Za-z][_0-9A-Za-z]*)")
_TRANSIENT_MARKERS = ("timeout", "timed out", "connection reset", "broken pipe", "eof")
_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)

SleepFunc = Callable[[float], Awaitable[Any]]


class LinearGraphQLClient(LinearClient):
    """Executes GraphQL operations over one pooled HTTP client.

    Network errors with transient markers, HTTP 429, and HTTP 5xx are retried
    with exponential backoff (``base_delay * 2**attempt``) for up to
    ``max_retries`` retries. A 401 triggers one reactive token refresh. Other
    4xx responses and GraphQL errors are raised immediately.
    """

    def __init__(
        self,
        api_url: str,
        token_provider: TokenProvider,
        *,
        http_client: httpx.AsyncClient | None = None,
        http_timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        rate_limit_multiplier: float = RATE_LIMIT_MULTIPLIER,
        max_retry_after: float = 60.0,
        user_agent: str = "linear-client/0.1.0",
        sleep: SleepFunc = anyio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.api_url = api_url
        self.token_provider = token_provider
        self.http_timeout = http_timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.rate_limit_multiplier = rate_limit_multiplier
        self.max_retry_after = max_retry_after
        self.user_agent = user_agent
        self._sleep = sleep
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "LinearGraphQLClient":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.http_timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=10, keepalive_expiry=90.0),
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        query: str,
        variables: JsonDict | None = None,
        *,
        result_model: type[ModelT] | None = None,
    ) -> JsonDict | ModelT:
        """Execute a GraphQL query/mutation and return its ``data``."""
        operation = operation_name(query)

        payload: JsonDict = {"query": query}
        if variables is not None:
            payload["variables"] = variables

        try:
            # Encoded once so every retry replays identical bytes.
            body = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise ValidationError("variables", variables, f"must be JSON serializable ({exc})") from exc

        response = await self._send_with_retry(body, operation)
        envelope = self._decode_envelope(response, query, operation)
        data = envelope.get("data") or {}

        if result_model is None:
            return data

        try:
            return result_model.model_validate(data)
        except PydanticValidationError as exc:
            raise ResponseDecodeError(f"failed to decode response data: {exc}", operation=operation) from exc

    async def _send_with_retry(self, body: bytes, operation: str | None) -> httpx.Response:
        client = self._require_client()
        token = await self.token_provider.get_token()

        refreshed = False
        attempts = 0
        attempt = 0
        last_error: LinearError

        while True:
            attempts += 1
            try:
                response = await client.post(self.api_url, content=body, headers=self._headers(token))
            except httpx.TransportError as exc:
                network_error = NetworkError(
                    str(exc) or type(exc).__name__,
                    transient=is_transient_transport_error(exc),
                    operation=operation,
                )
                if not network_error.transient:
                    raise network_error from exc
                network_error.__cause__ = exc
                last_error = network_error
                delay = self._backoff(attempt)
            else:
                status = response.status_code
                if 200 <= status < 300:
                    return response

                if status == 401:
                    if refreshed:
                        raise SessionExpiredError(operation=operation)
                    token = await self._refresh_after_unauthorized(token, response, operation)
                    refreshed = True
                    logger.debug("Replaying %s with refreshed token", operation or "request")
                    continue

                if status == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    last_error = RateLimitError(retry_after, operation=operation)
                    if retry_after is not None:
                        delay = min(retry_after, self.max_retry_after)
                    else:
                        delay = self._backoff(attempt) * self.rate_limit_multiplier
                elif status >= 500:
                    last_error = ServerError(status, response.text, operation=operation)
                    delay = self._backoff(attempt)
                else:
                    raise ClientError(status, response.text, operation=operation)

            if attempt >= self.max_retries:
                logger.warning(
                    "Giving up on %s after %d attempts: %s", operation or "request", attempts, last_error.message
                )
                raise RetryExhaustedError(attempts, last_error, operation=operation) from last_error

            logger.debug(
                "Attempt %d for %s failed (%s); retrying in %.2fs",
                attempts,
                operation or "request",
                last_error.message,
                delay,
            )
            await self._sleep(delay)
            attempt += 1

    async def _refresh_after_unauthorized(
        self, token: str, response: httpx.Response, operation: str | None
    ) -> str:
        try:
            return await self.token_provider.refresh_if_needed(token)
        except NoRefreshTokenError as exc:
            message, code = _auth_error_details(response)
            raise AuthenticationError(message, code, operation=operation) from exc
        except RefreshFailedError as exc:
            if exc.operation is None:
                exc.operation = operation
            raise

    def _decode_envelope(self, response: httpx.Response, query: str, operation: str | None) -> JsonDict:
        try:
            envelope = response.json()
        except ValueError as exc:
            raise ResponseDecodeError(f"failed to decode response: {exc}", operation=operation) from exc

        if not isinstance(envelope, dict):
            raise ResponseDecodeError(f"unexpected response shape: {envelope!r}", operation=operation)

        errors = envelope.get("errors") or []
        if isinstance(errors, dict):
            errors = [errors]
        elif not isinstance(errors, list):
            raise ResponseDecodeError(f"unexpected errors shape: {errors!r}", operation=operation)
        if errors:
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            raise GraphQLError(
                str(first.get("message", "unknown error")),
                extensions=first.get("extensions"),
                query=query_excerpt(query),
                operation=operation,
            )

        if "data" not in envelope:
            raise ResponseDecodeError(f"No data in response: {envelope}", operation=operation)

        return envelope

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": format_auth_header(token),
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    def _backoff(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise LinearError("Client not initialized - use async context manager")
        return self._client


def operation_name(query: str) -> str | None:
    """Name of the first operation in ``query``, if it has one."""

    match = _OPERATION_PATTERN.match(query)
    return match.group("name") if match else None


def query_excerpt(query: str, limit: int = QUERY_EXCERPT_LENGTH) -> str:
    compact = " ".join(query.split())
    if len(compact) > limit:
        return compact[:limit] + "..."
    return compact


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""

    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


def is_transient_transport_error(exc: httpx.TransportError) -> bool:
    if isinstance(exc, _TRANSIENT_TRANSPORT_ERRORS):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def _auth_error_details(response: httpx.Response) -> tuple[str, str | None]:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        errors = payload.get("errors") or []
        if errors and isinstance(errors[0], dict):
            extensions = errors[0].get("extensions") or {}
            code = extensions.get("code")
            return str(errors[0].get("message", "invalid or expired token")), str(code) if code else None

    return "invalid or expired token", None

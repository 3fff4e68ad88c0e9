"""Error taxonomy shared by the executor, token refresher, and resolver.

Callers branch on the exception class, never on message text. Transient
kinds (:class:`NetworkError`, :class:`RateLimitError`, :class:`ServerError`)
are retried inside the executor; everything else is terminal.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any


class LinearError(RuntimeError):
    """Base class for all Linear client failures."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class NetworkError(LinearError):
    """Transport-level failure before an HTTP response was received."""

    def __init__(self, message: str, *, transient: bool = False, operation: str | None = None) -> None:
        super().__init__(f"network error: {message}", operation=operation)
        self.transient = transient


class RateLimitError(LinearError):
    """HTTP 429 from the API."""

    def __init__(self, retry_after: float | None = None, *, operation: str | None = None) -> None:
        self.retry_after = retry_after
        message = "rate limit exceeded"
        if retry_after:
            message = f"{message}, retry after {_format_seconds(retry_after)}"
        super().__init__(message, operation=operation)


class HTTPStatusError(LinearError):
    """Non-2xx HTTP response."""

    def __init__(self, status_code: int, body: str = "", *, operation: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        message = f"HTTP {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message, operation=operation)


class ServerError(HTTPStatusError):
    """HTTP 5xx, usually transient."""


class ClientError(HTTPStatusError):
    """HTTP 4xx other than 401 and 429; never retried."""


class ResponseDecodeError(LinearError):
    """The response body was not a valid GraphQL envelope."""


class GraphQLError(LinearError):
    """Application error reported in the ``errors`` array of a 2xx response."""

    def __init__(
        self,
        message: str,
        *,
        extensions: dict[str, Any] | None = None,
        query: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.graphql_message = message
        self.extensions = extensions or {}
        self.query = query

        text = f"GraphQL error: {message}"
        code = self.extensions.get("code")
        if code:
            text = f"{text} (code: {code})"
        if query:
            text = f"{text} (query: {query})"
        super().__init__(text, operation=operation)

    @property
    def code(self) -> str | None:
        code = self.extensions.get("code")
        return str(code) if code else None


class AuthenticationError(LinearError):
    """The current token was rejected."""

    def __init__(self, message: str, code: str | None = None, *, operation: str | None = None) -> None:
        self.auth_message = message
        self.code = code
        text = f"authentication failed: {message}"
        if code:
            text = f"{text} (code: {code})"
        super().__init__(text, operation=operation)


class SessionExpiredError(AuthenticationError):
    """Both the access and refresh tokens are unusable; re-authenticate interactively."""

    def __init__(self, *, operation: str | None = None) -> None:
        super().__init__(
            "session expired - both access and refresh tokens are invalid",
            "SESSION_EXPIRED",
            operation=operation,
        )


class TokenError(LinearError):
    """Credential storage or refresh failure."""


class NoRefreshTokenError(TokenError):
    def __init__(self) -> None:
        super().__init__("no refresh token available - token cannot be refreshed")


class RefreshFailedError(TokenError):
    """The refresh collaborator rejected or failed the refresh call."""

    def __init__(self, reason: BaseException | str) -> None:
        self.reason = reason
        super().__init__(f"token refresh failed: {reason}")


class CredentialNotFoundError(TokenError):
    """No stored credential exists (user not authenticated)."""


class ValidationError(LinearError):
    """Caller supplied an unusable argument."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        rendered = "<nil>" if value is None else value
        super().__init__(f"validation error: field '{field}' with value '{rendered}' {reason}")


class NotFoundError(LinearError):
    """Nothing matched the requested identifier."""

    def __init__(self, resource_type: str, resource_id: str = "", *, detail: str = "") -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{message}: {resource_id}"
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)


class AmbiguousIdentifierError(LinearError):
    """Several records matched a human-readable name."""

    def __init__(self, kind: str, value: str, candidates: Sequence[str]) -> None:
        self.kind = kind
        self.value = value
        self.candidates = list(candidates)
        options = "\n".join(f"  - {candidate}" for candidate in self.candidates)
        super().__init__(
            f"ambiguous {kind} '{value}' matches {len(self.candidates)} records. "
            f"Please use a more specific identifier:\n{options}"
        )


class RetryExhaustedError(LinearError):
    """All attempts failed with transient errors."""

    def __init__(self, attempts: int, last_error: LinearError, *, operation: str | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"request failed after {attempts} attempts: {last_error.message}", operation=operation)


TRANSIENT_ERRORS: tuple[type[LinearError], ...] = (RateLimitError, ServerError)


def iter_error_chain(err: BaseException | None) -> Iterator[BaseException]:
    """Yield ``err`` followed by everything it wraps."""

    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        if isinstance(err, RetryExhaustedError):
            err = err.last_error
        else:
            err = err.__cause__


def find_error(err: BaseException | None, kind: type[BaseException]) -> BaseException | None:
    for item in iter_error_chain(err):
        if isinstance(item, kind):
            return item
    return None


def is_rate_limit_error(err: BaseException | None) -> bool:
    return find_error(err, RateLimitError) is not None


def is_authentication_error(err: BaseException | None) -> bool:
    return find_error(err, AuthenticationError) is not None


def is_not_found_error(err: BaseException | None) -> bool:
    return find_error(err, NotFoundError) is not None


def is_transient_error(err: BaseException | None) -> bool:
    """Whether ``err`` or anything it wraps is a kind the executor retries."""

    for item in iter_error_chain(err):
        if isinstance(item, NetworkError):
            if item.transient:
                return True
        elif isinstance(item, TRANSIENT_ERRORS):
            return True
    return False


def _format_seconds(seconds: float) -> str:
    total = int(seconds)
    if total >= 60:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m{secs}s"
    if seconds == total:
        return f"{total}s"
    return f"{seconds:g}s"

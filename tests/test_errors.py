import pytest

from linear_client.errors import (
    AmbiguousIdentifierError,
    AuthenticationError,
    GraphQLError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RetryExhaustedError,
    ServerError,
    SessionExpiredError,
    ValidationError,
    is_authentication_error,
    is_not_found_error,
    is_rate_limit_error,
    is_transient_error,
)


@pytest.mark.parametrize(
    ("retry_after", "expected"),
    [
        (5, "rate limit exceeded, retry after 5s"),
        (60, "rate limit exceeded, retry after 1m0s"),
        (None, "rate limit exceeded"),
    ],
)
def test_rate_limit_message(retry_after, expected: str) -> None:
    assert str(RateLimitError(retry_after)) == expected


def test_authentication_error_message() -> None:
    assert (
        str(AuthenticationError("Invalid API token", "INVALID_TOKEN"))
        == "authentication failed: Invalid API token (code: INVALID_TOKEN)"
    )
    assert str(AuthenticationError("Authentication required")) == "authentication failed: Authentication required"


def test_session_expired_is_an_authentication_error() -> None:
    err = SessionExpiredError()
    assert isinstance(err, AuthenticationError)
    assert err.code == "SESSION_EXPIRED"


def test_validation_error_message() -> None:
    assert (
        str(ValidationError("teamID", "invalid-uuid", "must be a valid UUID"))
        == "validation error: field 'teamID' with value 'invalid-uuid' must be a valid UUID"
    )
    assert str(ValidationError("data", None, "cannot be nil")) == "validation error: field 'data' with value '<nil>' cannot be nil"


def test_not_found_message() -> None:
    assert str(NotFoundError("issue", "ISS-123")) == "issue not found: ISS-123"
    assert str(NotFoundError("comment")) == "comment not found"


def test_graphql_error_message_includes_code() -> None:
    err = GraphQLError("Unauthorized access", extensions={"code": "UNAUTHORIZED"})
    assert str(err) == "GraphQL error: Unauthorized access (code: UNAUTHORIZED)"


def test_operation_prefixes_message() -> None:
    err = ServerError(502, "bad gateway", operation="IssueCreate")
    assert str(err) == "IssueCreate: HTTP 502: bad gateway"


def test_ambiguous_error_lists_candidates() -> None:
    err = AmbiguousIdentifierError("user", "John", ["John Doe (a@x.com)", "John Smith (b@x.com)"])
    assert "a@x.com" in str(err)
    assert "b@x.com" in str(err)


def test_predicates_walk_cause_chain() -> None:
    rate_limited = RateLimitError(5)
    exhausted = RetryExhaustedError(6, rate_limited)

    try:
        try:
            raise AuthenticationError("Invalid")
        except AuthenticationError as inner:
            raise RuntimeError("during API call") from inner
    except RuntimeError as outer:
        wrapped_auth = outer

    assert is_rate_limit_error(rate_limited)
    assert is_rate_limit_error(exhausted)
    assert is_authentication_error(wrapped_auth)
    assert not is_not_found_error(wrapped_auth)
    assert is_not_found_error(NotFoundError("issue", "1"))
    assert not is_rate_limit_error(None)


def test_is_transient_error() -> None:
    assert is_transient_error(ServerError(500))
    assert is_transient_error(RateLimitError())
    assert is_transient_error(NetworkError("reset", transient=True))
    assert not is_transient_error(NetworkError("refused"))
    assert not is_transient_error(NotFoundError("user"))


def test_is_transient_error_walks_wrapped_errors() -> None:
    assert is_transient_error(RetryExhaustedError(3, ServerError(502)))
    assert is_transient_error(RetryExhaustedError(6, NetworkError("connection reset", transient=True)))

    try:
        try:
            raise NetworkError("refused")
        except NetworkError as inner:
            raise RuntimeError("during API call") from inner
    except RuntimeError as outer:
        assert not is_transient_error(outer)

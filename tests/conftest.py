from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from linear_client.graphql_client import LinearGraphQLClient
from linear_client.token import StaticTokenProvider, TokenProvider

API_URL = "https://api.linear.test/graphql"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class SleepRecorder:
    """Stands in for ``anyio.sleep`` so backoff delays are recorded, not slept."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport:
    """Replays a fixed sequence of responses (or exceptions) and records requests."""

    def __init__(self, outcomes: list[httpx.Response | Exception]) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.outcomes:
            raise AssertionError("unexpected extra request")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


def graphql_response(data: dict[str, Any], status_code: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, json={"data": data}, **kwargs)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(sleeps: SleepRecorder) -> Callable[..., LinearGraphQLClient]:
    def _make(handler: Handler, *, token_provider: TokenProvider | None = None, **kwargs: Any) -> LinearGraphQLClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return LinearGraphQLClient(
            API_URL,
            token_provider or StaticTokenProvider("test-token"),
            http_client=http_client,
            sleep=sleeps,
            **kwargs,
        )

    return _make

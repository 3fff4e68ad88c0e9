from __future__ import annotations

from datetime import datetime, timedelta, timezone

import anyio
import pytest

from linear_client.credentials import Credential, MemoryCredentialStore
from linear_client.errors import NoRefreshTokenError, RefreshFailedError
from linear_client.token import (
    OAuthRefresher,
    RefreshingTokenProvider,
    StaticTokenProvider,
    TokenRefresher,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

pytestmark = pytest.mark.anyio


class FakeOAuth(OAuthRefresher):
    def __init__(self, *, fail: bool = False, rotate_refresh_token: bool = False) -> None:
        self.calls: list[str] = []
        self.fail = fail
        self.rotate_refresh_token = rotate_refresh_token

    async def refresh_access_token(self, refresh_token: str) -> Credential:
        self.calls.append(refresh_token)
        # Yield so concurrent callers pile up on the lock.
        await anyio.sleep(0.01)
        if self.fail:
            raise RuntimeError("invalid_grant")
        return Credential(
            access_token=f"access-{len(self.calls)}",
            refresh_token=f"refresh-{len(self.calls) + 1}" if self.rotate_refresh_token else None,
            expires_at=NOW + timedelta(hours=24),
        )


def make_refresher(credential: Credential, oauth: FakeOAuth) -> tuple[TokenRefresher, MemoryCredentialStore]:
    store = MemoryCredentialStore(credential)
    return TokenRefresher(store, oauth, refresh_buffer=timedelta(minutes=5), clock=lambda: NOW), store


async def test_legacy_token_without_expiry_is_returned_as_is() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(Credential(access_token="legacy", refresh_token="r"), oauth)

    assert await refresher.get_valid_token() == "legacy"
    assert oauth.calls == []


async def test_token_far_from_expiry_is_not_refreshed() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(
        Credential(access_token="current", refresh_token="r", expires_at=NOW + timedelta(hours=1)), oauth
    )

    assert await refresher.get_valid_token() == "current"
    assert oauth.calls == []


async def test_token_inside_buffer_is_refreshed_once() -> None:
    oauth = FakeOAuth()
    refresher, store = make_refresher(
        Credential(access_token="current", refresh_token="r-1", expires_at=NOW + timedelta(minutes=2)), oauth
    )

    token = await refresher.get_valid_token()

    assert token == "access-1"
    assert oauth.calls == ["r-1"]
    assert store.load().access_token == "access-1"


async def test_concurrent_proactive_refreshes_collapse() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(
        Credential(access_token="current", refresh_token="r-1", expires_at=NOW + timedelta(minutes=2)), oauth
    )
    results: list[str] = []

    async def worker() -> None:
        results.append(await refresher.get_valid_token())

    async with anyio.create_task_group() as tg:
        for _ in range(4):
            tg.start_soon(worker)

    assert len(oauth.calls) == 1
    assert results == ["access-1"] * 4


async def test_failed_proactive_refresh_falls_back_to_unexpired_token() -> None:
    oauth = FakeOAuth(fail=True)
    refresher, _ = make_refresher(
        Credential(access_token="current", refresh_token="r-1", expires_at=NOW + timedelta(minutes=2)), oauth
    )

    assert await refresher.get_valid_token() == "current"
    assert len(oauth.calls) == 1


async def test_failed_refresh_of_expired_token_propagates() -> None:
    oauth = FakeOAuth(fail=True)
    refresher, _ = make_refresher(
        Credential(access_token="current", refresh_token="r-1", expires_at=NOW - timedelta(minutes=1)), oauth
    )

    with pytest.raises(RefreshFailedError) as excinfo:
        await refresher.get_valid_token()

    assert "invalid_grant" in str(excinfo.value)
    assert isinstance(excinfo.value.reason, RuntimeError)


async def test_concurrent_reactive_refreshes_make_one_network_call() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(
        Credential(access_token="stale", refresh_token="r-1", expires_at=NOW + timedelta(hours=1)), oauth
    )
    results: list[str] = []

    async def worker() -> None:
        results.append(await refresher.refresh_if_needed("stale"))

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(worker)

    assert len(oauth.calls) == 1
    assert results == ["access-1"] * 5
    assert not refresher.refreshing


async def test_already_refreshed_token_skips_network() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(
        Credential(access_token="newer", refresh_token="r-1", expires_at=NOW + timedelta(hours=1)), oauth
    )

    assert await refresher.refresh_if_needed("stale") == "newer"
    assert oauth.calls == []


async def test_missing_refresh_token_is_distinct_error() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(Credential(access_token="stale", expires_at=NOW + timedelta(hours=1)), oauth)

    with pytest.raises(NoRefreshTokenError):
        await refresher.refresh_if_needed("stale")

    assert oauth.calls == []


async def test_refresh_keeps_old_refresh_token_when_response_omits_it() -> None:
    oauth = FakeOAuth()
    refresher, store = make_refresher(
        Credential(access_token="stale", refresh_token="r-1", expires_at=NOW + timedelta(hours=1)), oauth
    )

    await refresher.refresh_if_needed("stale")

    saved = store.load()
    assert saved.access_token == "access-1"
    assert saved.refresh_token == "r-1"


async def test_refresh_stores_rotated_refresh_token() -> None:
    oauth = FakeOAuth(rotate_refresh_token=True)
    refresher, store = make_refresher(
        Credential(access_token="stale", refresh_token="r-1", expires_at=NOW + timedelta(hours=1)), oauth
    )

    await refresher.refresh_if_needed("stale")

    assert store.load().refresh_token == "refresh-2"


async def test_static_provider_cannot_refresh() -> None:
    provider = StaticTokenProvider(" api-key\n")

    assert await provider.get_token() == "api-key"
    with pytest.raises(NoRefreshTokenError):
        await provider.refresh_if_needed("api-key")


async def test_refreshing_provider_delegates() -> None:
    oauth = FakeOAuth()
    refresher, _ = make_refresher(
        Credential(access_token="stale", refresh_token="r-1", expires_at=NOW + timedelta(hours=1)), oauth
    )
    provider = RefreshingTokenProvider(refresher)

    assert await provider.get_token() == "stale"
    assert await provider.refresh_if_needed("stale") == "access-1"

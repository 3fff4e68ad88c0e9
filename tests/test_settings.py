from datetime import timedelta
from pathlib import Path

import pytest

from linear_client.client_factory import create_session, create_token_provider
from linear_client.credentials import Credential, FileCredentialStore
from linear_client.settings import LinearAPIConfig
from linear_client.token import RefreshingTokenProvider, StaticTokenProvider


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep developer env vars and any local .env out of these tests.
    monkeypatch.chdir(tmp_path)
    for name in ("ACCESS_TOKEN", "TOKEN_PATH", "CREDENTIALS_PATH", "OAUTH_CLIENT_ID", "MAX_RETRIES"):
        monkeypatch.delenv(f"LINEAR_API_{name}", raising=False)


def test_config_reads_token_from_path(tmp_path: Path) -> None:
    token_file = tmp_path / "token"
    token_file.write_text("secret-token\n", encoding="utf-8")

    config = LinearAPIConfig(token_path=token_file)

    assert config.access_token == "secret-token"


def test_config_requires_a_token_source() -> None:
    with pytest.raises(ValueError):
        LinearAPIConfig()


def test_config_reads_retry_policy_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINEAR_API_ACCESS_TOKEN", "tok")
    monkeypatch.setenv("LINEAR_API_MAX_RETRIES", "2")

    config = LinearAPIConfig()

    assert config.max_retries == 2
    assert config.refresh_window == timedelta(minutes=5)


def test_static_provider_for_plain_token() -> None:
    provider = create_token_provider(LinearAPIConfig(access_token="tok"))

    assert isinstance(provider, StaticTokenProvider)


def test_refreshing_provider_for_credential_file_with_oauth_app(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"
    FileCredentialStore(path).save(Credential(access_token="a", refresh_token="r"))

    provider = create_token_provider(LinearAPIConfig(credentials_path=path, oauth_client_id="client"))

    assert isinstance(provider, RefreshingTokenProvider)


def test_credential_file_without_oauth_app_is_static(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"
    FileCredentialStore(path).save(Credential(access_token="a"))

    provider = create_token_provider(LinearAPIConfig(credentials_path=path))

    assert isinstance(provider, StaticTokenProvider)


def test_session_shares_client_with_resolver() -> None:
    config = LinearAPIConfig(access_token="tok", cache_ttl=42, max_retries=3)

    session = create_session(config)

    assert session.resolver.client is session.client
    assert session.resolver.cache.default_ttl == 42
    assert session.client.max_retries == 3

"""Factory for wiring credential storage, token providers, and clients from configuration."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from .credentials import FileCredentialStore
from .graphql_client import LinearGraphQLClient
from .oauth import LinearOAuthClient
from .resolver import IdentifierResolver
from .settings import LinearAPIConfig
from .token import RefreshingTokenProvider, StaticTokenProvider, TokenProvider, TokenRefresher


@dataclass(slots=True)
class LinearSession:
    """One executor and the resolver that shares it."""

    client: LinearGraphQLClient
    resolver: IdentifierResolver

    async def __aenter__(self) -> "LinearSession":
        await self.client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.client.__aexit__(exc_type, exc, tb)


def create_token_provider(
    config: LinearAPIConfig, *, http_client: httpx.AsyncClient | None = None
) -> TokenProvider:
    """Pick a token provider for the configured credential source.

    A credential file plus an OAuth client ID gives a refreshing provider;
    anything else is a static token.

    Raises:
        TokenError: If the credential file cannot be read
        ValueError: If no token source is configured
    """
    if config.credentials_path is not None:
        store = FileCredentialStore(config.credentials_path)
        if config.oauth_client_id:
            oauth = LinearOAuthClient(
                config.oauth_client_id,
                config.oauth_client_secret,
                token_url=config.oauth_token_url,
                http_client=http_client,
                http_timeout=config.http_timeout,
            )
            refresher = TokenRefresher(store, oauth, refresh_buffer=config.refresh_window)
            return RefreshingTokenProvider(refresher)
        return StaticTokenProvider(store.load().access_token)

    if not config.access_token:
        raise ValueError("No access token configured")
    return StaticTokenProvider(config.access_token)


def create_client(
    config: LinearAPIConfig,
    *,
    token_provider: TokenProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> LinearGraphQLClient:
    """Create a GraphQL client with the configured retry policy."""

    return LinearGraphQLClient(
        api_url=config.api_url,
        token_provider=token_provider or create_token_provider(config, http_client=http_client),
        http_client=http_client,
        http_timeout=config.http_timeout,
        max_retries=config.max_retries,
        base_delay=config.base_delay,
        max_retry_after=config.max_retry_after,
    )


def create_session(
    config: LinearAPIConfig,
    *,
    token_provider: TokenProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> LinearSession:
    """Create a client and a resolver bound to it."""

    client = create_client(config, token_provider=token_provider, http_client=http_client)
    resolver = IdentifierResolver(client, ttl=config.cache_ttl)
    return LinearSession(client=client, resolver=resolver)

"""Resilient, authenticated request pipeline for the Linear GraphQL API."""

from .cache import TTLCache
from .client_factory import LinearSession, create_client, create_session
from .credentials import Credential, FileCredentialStore, MemoryCredentialStore
from .graphql_client import LinearGraphQLClient
from .resolver import IdentifierKind, IdentifierResolver
from .settings import LinearAPIConfig
from .token import RefreshingTokenProvider, StaticTokenProvider, TokenRefresher

__all__ = [
    "Credential",
    "FileCredentialStore",
    "IdentifierKind",
    "IdentifierResolver",
    "LinearAPIConfig",
    "LinearGraphQLClient",
    "LinearSession",
    "MemoryCredentialStore",
    "RefreshingTokenProvider",
    "StaticTokenProvider",
    "TTLCache",
    "TokenRefresher",
    "create_client",
    "create_session",
]

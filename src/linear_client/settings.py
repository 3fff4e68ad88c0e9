"""Configuration helpers for the Linear GraphQL client."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LinearAPIConfig(BaseSettings):
    """Settings for direct Linear GraphQL API access."""

    api_url: str = Field(
        "https://api.linear.app/graphql",
        description="Linear GraphQL API endpoint.",
    )
    access_token: str | None = Field(
        default=None,
        description="Linear Personal API Key or OAuth access token.",
    )
    token_path: Path | None = Field(
        default=None,
        description="Optional path to a file that contains the API token.",
    )
    credentials_path: Path | None = Field(
        default=None,
        description="JSON credential file holding access/refresh tokens and expiry.",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout (seconds) for each request attempt.",
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        description="Retries after the first attempt for transient failures.",
    )
    base_delay: float = Field(
        default=0.1,
        ge=0,
        description="Backoff base delay (seconds); attempt i waits base_delay * 2**i.",
    )
    max_retry_after: float = Field(
        default=60.0,
        ge=0,
        description="Upper bound (seconds) on a single Retry-After sleep.",
    )
    refresh_buffer: float = Field(
        default=300.0,
        ge=0,
        description="Refresh OAuth tokens this many seconds before they expire.",
    )
    cache_ttl: float = Field(
        default=300.0,
        gt=0,
        description="Lifetime (seconds) of resolved identifiers in the cache.",
    )
    oauth_client_id: str | None = Field(
        default=None,
        description="OAuth application client ID, required for token refresh.",
    )
    oauth_client_secret: str | None = Field(
        default=None,
        description="OAuth application client secret.",
    )
    oauth_token_url: str = Field(
        "https://api.linear.app/oauth/token",
        description="OAuth token endpoint used for the refresh-token grant.",
    )
    log_level: str = Field("WARNING", description="Root log level for the CLI.")

    model_config = SettingsConfigDict(env_prefix="LINEAR_API_", env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _populate_token(self) -> "LinearAPIConfig":
        """Ensure we have a token directly, via ``token_path``, or via ``credentials_path``."""

        if self.access_token or self.credentials_path:
            return self

        if self.token_path:
            token_file = self.token_path.expanduser()
            if not token_file.exists():  # pragma: no cover - depends on user setup
                raise ValueError(f"Token file '{token_file}' not found")
            self.access_token = token_file.read_text(encoding="utf-8").strip()

        if not self.access_token:
            raise ValueError(
                "Provide LINEAR_API_ACCESS_TOKEN, LINEAR_API_TOKEN_PATH or LINEAR_API_CREDENTIALS_PATH"
            )

        return self

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(seconds=self.refresh_buffer)

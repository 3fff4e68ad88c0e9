"""Credential model, token sanitation, and credential storage backends."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import unicodedata
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel, field_validator

from .errors import CredentialNotFoundError, TokenError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(BaseModel):
    """OAuth access/refresh token pair.

    ``expires_at`` is ``None`` for legacy long-lived tokens, which are never
    refreshed.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @field_validator("access_token")
    @classmethod
    def _sanitize_access_token(cls, value: str) -> str:
        return sanitize_token(value)

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def needs_refresh(self, buffer: timedelta, now: datetime | None = None) -> bool:
        """True when the token expires within ``buffer`` of ``now``."""

        if self.expires_at is None:
            return False
        return (now or utcnow()) + buffer >= self.expires_at


def sanitize_token(token: str) -> str:
    """Drop whitespace and control characters that break HTTP headers."""

    return "".join(
        ch for ch in token.strip() if not ch.isspace() and unicodedata.category(ch) != "Cc"
    )


def validate_token(token: str) -> None:
    if not token:
        raise ValueError("token is empty")
    if sanitize_token(token) != token:
        raise ValueError("token contains invalid characters (whitespace or control characters)")


def format_auth_header(token: str) -> str:
    """Return ``Bearer <token>``, tolerating tokens that already carry the prefix."""

    sanitized = sanitize_token(token)
    # Sanitizing removes the space, so "Bearer abc" arrives here as "Bearerabc".
    if sanitized.startswith("Bearer"):
        sanitized = sanitized[len("Bearer"):]
    return f"Bearer {sanitized}"


class CredentialStore(ABC):
    """Opaque persistence for the single credential a refresher owns."""

    @abstractmethod
    def load(self) -> Credential:
        """Return the stored credential.

        Raises:
            CredentialNotFoundError: If nothing has been stored yet
        """
        ...

    @abstractmethod
    def save(self, credential: Credential) -> None:
        """Persist ``credential``, replacing the previous one."""
        ...


class MemoryCredentialStore(CredentialStore):
    """Process-local store, used for environment tokens and tests."""

    def __init__(self, credential: Credential | None = None) -> None:
        self._credential = credential
        self._lock = threading.Lock()
        self.load_count = 0
        self.save_count = 0

    def load(self) -> Credential:
        with self._lock:
            self.load_count += 1
            if self._credential is None:
                raise CredentialNotFoundError("no credential stored")
            return self._credential.model_copy()

    def save(self, credential: Credential) -> None:
        with self._lock:
            self.save_count += 1
            self._credential = credential.model_copy()


class FileCredentialStore(CredentialStore):
    """JSON credential file readable only by its owner.

    A file containing a bare token string (the pre-OAuth format) loads as a
    credential without expiry.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Credential:
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError as exc:
            raise CredentialNotFoundError(f"no credential file at '{self.path}'") from exc
        except OSError as exc:
            raise TokenError(f"failed to read credential file '{self.path}': {exc}") from exc

        if not raw:
            raise CredentialNotFoundError(f"credential file '{self.path}' is empty")

        if raw.startswith("{"):
            try:
                return Credential.model_validate_json(raw)
            except ValueError as exc:
                raise TokenError(f"credential file '{self.path}' is malformed: {exc}") from exc

        return Credential(access_token=raw)

    def save(self, credential: Credential) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        payload = credential.model_dump(mode="json", exclude_none=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".credential-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise TokenError(f"failed to save credential file '{self.path}': {exc}") from exc

        logger.debug("Saved credential to %s", self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

"""Shape-based detection of Linear identifiers.

Nothing here touches the network: ``classify`` only looks at the string.

>>> classify("ENG-42")
<IdentifierFormat.ISSUE_KEY: 'issue_key'>
>>> parse_issue_identifier("ENG-42")
('ENG', 42)
"""

from __future__ import annotations

import re
from enum import Enum

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ISSUE_PATTERN = re.compile(r"^(?P<team>[A-Z][A-Z0-9]*)-(?P<number>[0-9]+)$")
_TEAM_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{0,9}$")


class IdentifierFormat(str, Enum):
    """What a user-supplied reference looks like."""

    UUID = "uuid"
    EMAIL = "email"
    ISSUE_KEY = "issue_key"
    TEAM_KEY = "team_key"
    NAME = "name"


def is_uuid(value: str) -> bool:
    return bool(_UUID_PATTERN.match(value))


def is_email(value: str) -> bool:
    return bool(_EMAIL_PATTERN.match(value))


def is_issue_identifier(value: str) -> bool:
    """``TEAM-123`` with an upper-case team key."""

    return bool(_ISSUE_PATTERN.match(value))


def looks_like_team_key(value: str) -> bool:
    return bool(_TEAM_KEY_PATTERN.match(value))


def parse_issue_identifier(value: str) -> tuple[str, int]:
    """Split ``TEAM-123`` into ``("TEAM", 123)``.

    Raises:
        ValueError: If ``value`` is not an issue identifier
    """
    match = _ISSUE_PATTERN.match(value)
    if not match:
        raise ValueError(f"invalid issue identifier format: '{value}' (expected TEAM-123)")
    return match.group("team"), int(match.group("number"))


def classify(value: str) -> IdentifierFormat:
    """Classify ``value`` by shape alone."""

    value = value.strip()
    if is_uuid(value):
        return IdentifierFormat.UUID
    if is_email(value):
        return IdentifierFormat.EMAIL
    if is_issue_identifier(value):
        return IdentifierFormat.ISSUE_KEY
    if looks_like_team_key(value):
        return IdentifierFormat.TEAM_KEY
    return IdentifierFormat.NAME

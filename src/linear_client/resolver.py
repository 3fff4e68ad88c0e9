"""Resolve human-readable references (emails, names, team keys, issue keys) to Linear IDs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .base_client import LinearClient
from .cache import DEFAULT_TTL, TTLCache
from .errors import AmbiguousIdentifierError, NotFoundError, ValidationError
from .identifiers import IdentifierFormat, classify, parse_issue_identifier

logger = logging.getLogger(__name__)

NodeT = TypeVar("NodeT")


class IdentifierKind(str, Enum):
    USER = "user"
    TEAM = "team"
    ISSUE = "issue"
    CYCLE = "cycle"


@dataclass(frozen=True, slots=True)
class ResolvedIdentifier:
    input: str
    kind: IdentifierKind
    resolved_id: str


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserRecord(_Record):
    id: str
    name: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    email: str | None = None
    active: bool = True


class TeamRecord(_Record):
    id: str
    key: str
    name: str | None = None


class IssueRecord(_Record):
    id: str
    identifier: str


class CycleRecord(_Record):
    id: str
    number: int
    name: str | None = None


class Connection(_Record, Generic[NodeT]):
    nodes: list[NodeT] = Field(default_factory=list)


class UsersResult(_Record):
    users: Connection[UserRecord]


class TeamsResult(_Record):
    teams: Connection[TeamRecord]


class IssuesResult(_Record):
    issues: Connection[IssueRecord]


class CyclesResult(_Record):
    cycles: Connection[CycleRecord]


USERS_BY_EMAIL_QUERY = """
query UsersByEmail($email: String!) {
    users(filter: { email: { eq: $email } }, first: 10) {
        nodes {
            id
            name
            displayName
            email
            active
        }
    }
}
"""

USERS_BY_NAME_QUERY = """
query UsersByName($name: String!) {
    users(
        filter: {
            or: [
                { name: { containsIgnoreCase: $name } }
                { displayName: { containsIgnoreCase: $name } }
            ]
        }
        first: 50
    ) {
        nodes {
            id
            name
            displayName
            email
            active
        }
    }
}
"""

TEAMS_QUERY = """
query Teams {
    teams(first: 250) {
        nodes {
            id
            key
            name
        }
    }
}
"""

ISSUE_BY_IDENTIFIER_QUERY = """
query IssueByIdentifier($teamKey: String!, $number: Float!) {
    issues(filter: { team: { key: { eq: $teamKey } }, number: { eq: $number } }, first: 5) {
        nodes {
            id
            identifier
        }
    }
}
"""

TEAM_CYCLES_QUERY = """
query TeamCycles($teamId: ID!) {
    cycles(filter: { team: { id: { eq: $teamId } } }, first: 250) {
        nodes {
            id
            number
            name
        }
    }
}
"""


class IdentifierResolver:
    """Translates references into stable IDs, caching successful lookups.

    Each cache miss costs exactly one GraphQL request through ``client``;
    retries for transient failures happen inside the client, not here.
    Ambiguous names always fail with the list of candidates.
    """

    def __init__(
        self,
        client: LinearClient,
        *,
        cache: TTLCache[tuple[IdentifierKind, str], ResolvedIdentifier] | None = None,
        ttl: float = DEFAULT_TTL,
    ) -> None:
        self.client = client
        self.ttl = ttl
        if cache is None:
            cache = TTLCache(ttl)
        self.cache = cache

    async def resolve(self, value: str, kind: IdentifierKind, *, team_id: str | None = None) -> str:
        """Resolve ``value`` as an identifier of ``kind``.

        Args:
            value: UUID, email, name, team key, issue key, or cycle number/name
            kind: What ``value`` refers to
            team_id: Team scope, required for cycles

        Returns:
            The Linear UUID of the referenced entity

        Raises:
            ValidationError: If ``value`` is empty or has the wrong shape
            NotFoundError: If nothing matches
            AmbiguousIdentifierError: If several records match a name
        """
        kind = IdentifierKind(kind)
        if kind is IdentifierKind.USER:
            return await self.resolve_user(value)
        if kind is IdentifierKind.TEAM:
            return await self.resolve_team(value)
        if kind is IdentifierKind.ISSUE:
            return await self.resolve_issue(value)
        if team_id is None:
            raise ValidationError("team_id", team_id, "is required to resolve a cycle")
        return await self.resolve_cycle(value, team_id)

    async def resolve_user(self, value: str) -> str:
        value = _require(value, "user")
        shape = classify(value)
        if shape is IdentifierFormat.UUID:
            return value

        cached = self._cached(IdentifierKind.USER, value)
        if cached:
            return cached

        if shape is IdentifierFormat.EMAIL:
            needle = value.lower()
            result = await self.client.execute(USERS_BY_EMAIL_QUERY, {"email": needle}, result_model=UsersResult)
            matches = [user for user in result.users.nodes if (user.email or "").lower() == needle]
            if not matches:
                raise NotFoundError("user", value)
            return self._remember(IdentifierKind.USER, value, matches[0].id)

        result = await self.client.execute(USERS_BY_NAME_QUERY, {"name": value}, result_model=UsersResult)
        user = self._pick_user(result.users.nodes, value)
        return self._remember(IdentifierKind.USER, value, user.id)

    async def resolve_team(self, value: str) -> str:
        value = _require(value, "team")
        if classify(value) is IdentifierFormat.UUID:
            return value

        cached = self._cached(IdentifierKind.TEAM, value)
        if cached:
            return cached

        result = await self.client.execute(TEAMS_QUERY, result_model=TeamsResult)
        teams = result.teams.nodes
        needle = value.lower()

        by_key = [team for team in teams if team.key.lower() == needle]
        if len(by_key) == 1:
            return self._remember(IdentifierKind.TEAM, value, by_key[0].id)

        by_name = [team for team in teams if (team.name or "").strip().lower() == needle]
        if len(by_name) > 1:
            raise AmbiguousIdentifierError(
                "team", value, [f"{team.name} (key: {team.key})" for team in by_name]
            )
        if not by_name:
            available = ", ".join(sorted(f"{team.name} ({team.key})" for team in teams))
            raise NotFoundError("team", value, detail=f"Available options: {available}")
        return self._remember(IdentifierKind.TEAM, value, by_name[0].id)

    async def resolve_issue(self, value: str) -> str:
        value = _require(value, "issue")
        shape = classify(value)
        if shape is IdentifierFormat.UUID:
            return value
        if shape is not IdentifierFormat.ISSUE_KEY:
            raise ValidationError("issue", value, "must be a UUID or an issue identifier like TEAM-123")

        cached = self._cached(IdentifierKind.ISSUE, value)
        if cached:
            return cached

        team_key, number = parse_issue_identifier(value)
        result = await self.client.execute(
            ISSUE_BY_IDENTIFIER_QUERY,
            {"teamKey": team_key, "number": number},
            result_model=IssuesResult,
        )
        for issue in result.issues.nodes:
            if issue.identifier.upper() == value.upper():
                return self._remember(IdentifierKind.ISSUE, value, issue.id)
        raise NotFoundError("issue", value)

    async def resolve_cycle(self, value: str, team_id: str) -> str:
        """Resolve a cycle by number or name within a team (key, name, or UUID)."""

        value = _require(value, "cycle")
        if classify(value) is IdentifierFormat.UUID:
            return value

        team_uuid = await self.resolve_team(team_id)
        cache_input = f"{team_uuid}:{value}"
        cached = self._cached(IdentifierKind.CYCLE, cache_input)
        if cached:
            return cached

        result = await self.client.execute(TEAM_CYCLES_QUERY, {"teamId": team_uuid}, result_model=CyclesResult)
        cycles = result.cycles.nodes

        if value.isdigit():
            number = int(value)
            for cycle in cycles:
                if cycle.number == number:
                    return self._remember(IdentifierKind.CYCLE, cache_input, cycle.id)
            raise NotFoundError("cycle", value)

        needle = value.lower()
        matches = [cycle for cycle in cycles if (cycle.name or "").strip().lower() == needle]
        if len(matches) > 1:
            raise AmbiguousIdentifierError(
                "cycle", value, [f"#{cycle.number} {cycle.name}" for cycle in matches]
            )
        if not matches:
            raise NotFoundError("cycle", value)
        return self._remember(IdentifierKind.CYCLE, cache_input, matches[0].id)

    def _pick_user(self, users: list[UserRecord], value: str) -> UserRecord:
        users = [user for user in users if user.active]
        needle = value.lower()
        exact = [
            user
            for user in users
            if (user.name or "").strip().lower() == needle or (user.display_name or "").strip().lower() == needle
        ]
        candidates = exact or users

        if len(candidates) > 1:
            raise AmbiguousIdentifierError(
                "user", value, [f"{user.name or user.display_name} ({user.email})" for user in candidates]
            )
        if not candidates:
            raise NotFoundError("user", value)
        return candidates[0]

    def _cached(self, kind: IdentifierKind, value: str) -> str | None:
        entry, found = self.cache.get((kind, _normalize(kind, value)))
        if found and entry is not None:
            logger.debug("Resolver cache hit for %s '%s'", kind.value, value)
            return entry.resolved_id
        return None

    def _remember(self, kind: IdentifierKind, value: str, resolved_id: str) -> str:
        resolved = ResolvedIdentifier(input=value, kind=kind, resolved_id=resolved_id)
        self.cache.set((kind, _normalize(kind, value)), resolved, self.ttl)
        logger.debug("Resolved %s '%s' -> %s", kind.value, value, resolved_id)
        return resolved_id


def _require(value: str, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, value, "cannot be empty")
    return value.strip()


def _normalize(kind: IdentifierKind, value: str) -> str:
    if kind is IdentifierKind.ISSUE:
        return value.strip().upper()
    return value.strip().lower()

"""Scope rules attached to announcements, calendar events and tests."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class TargetRole(str, Enum):
    """Roles an item can be targeted at."""

    COACH = "COACH"
    CAPTAIN = "CAPTAIN"
    MEMBER = "MEMBER"

    @classmethod
    def parse(cls, value: object) -> TargetRole | None:
        """Return the matching role, or None for anything unrecognised."""
        if isinstance(value, TargetRole):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


def effective_roles(primary_role: object, secondary_roles: Iterable[object] | None = None) -> frozenset[TargetRole]:
    """
    Map a membership's roles onto target roles.

    The primary role ADMIN counts as COACH; every other primary role counts as
    MEMBER. Secondary roles are stored as a loose list of strings; entries that
    don't parse are dropped and a missing list is treated as empty.
    """

    primary = getattr(primary_role, "value", primary_role)
    roles: set[TargetRole] = {TargetRole.COACH if primary == "ADMIN" else TargetRole.MEMBER}
    for raw in secondary_roles or ():
        parsed = TargetRole.parse(raw)
        if parsed is not None:
            roles.add(parsed)
    return frozenset(roles)


@dataclass(frozen=True)
class ClubWide:
    """Matches every viewer in the club."""


@dataclass(frozen=True)
class TeamRule:
    team_id: str | None


@dataclass(frozen=True)
class Personal:
    membership_id: str | None


@dataclass(frozen=True)
class RoleTarget:
    role: TargetRole | None


@dataclass(frozen=True)
class EventTarget:
    event_id: str | None


@dataclass(frozen=True)
class Unresolvable:
    """A stored rule row that could not be interpreted. Never matches."""

    detail: str = ""


ScopeRule = Union[ClubWide, TeamRule, Personal, RoleTarget, EventTarget, Unresolvable]

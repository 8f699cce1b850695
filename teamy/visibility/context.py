"""Per-request viewer context consumed by the resolver."""

from __future__ import annotations

from dataclasses import dataclass, field

from .rules import TargetRole


@dataclass(frozen=True)
class ViewerContext:
    """
    Who is looking, within one club.

    Built fresh for every request: the roster-derived sets change whenever a
    roster is edited, independently of the membership row.
    """

    user_id: str
    membership_id: str
    club_id: str
    team_id: str | None
    is_admin: bool

    roles: frozenset[TargetRole] = field(default_factory=frozenset)
    """Effective target roles (primary role mapped, plus secondary roles)."""

    roster_event_ids: frozenset[str] = field(default_factory=frozenset)
    """Competition events the viewer is rostered for, across every team in the club."""

    roster_team_ids: frozenset[str] = field(default_factory=frozenset)
    """Teams the viewer holds roster assignments on."""

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "user_id": self.user_id,
            "membership_id": self.membership_id,
            "club_id": self.club_id,
            "team_id": self.team_id,
            "is_admin": self.is_admin,
            "roles": sorted(r.value for r in self.roles),
            "roster_event_ids": sorted(self.roster_event_ids),
            "roster_team_ids": sorted(self.roster_team_ids),
        }

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamy.models.club import Membership, RosterAssignment, Team
from teamy.visibility import ViewerContext, effective_roles

logger = logging.getLogger(__name__)


class MembershipNotFoundError(LookupError):
    """The user has no membership in the requested club."""

    def __init__(self, user_id: str, club_id: str) -> None:
        super().__init__(f"No membership for user {user_id} in club {club_id}")
        self.user_id = user_id
        self.club_id = club_id


def load_membership(db: Session, user_id: str, club_id: str) -> Membership | None:
    return db.execute(
        select(Membership).where(Membership.user_id == user_id, Membership.club_id == club_id)
    ).scalar_one_or_none()


def build_viewer_context(db: Session, user_id: str, club_id: str) -> ViewerContext:
    """
    Build the ViewerContext for (user, club).

    Roster-derived sets are read on every call and never cached: a roster edit
    has to change what the member sees on their very next request.
    """

    membership = load_membership(db, user_id, club_id)
    if membership is None:
        raise MembershipNotFoundError(user_id, club_id)

    rows = db.execute(
        select(RosterAssignment.team_id, RosterAssignment.event_id)
        .join(Team, Team.id == RosterAssignment.team_id)
        .where(RosterAssignment.membership_id == membership.id, Team.club_id == club_id)
    ).all()

    roster_team_ids = frozenset(row.team_id for row in rows)
    roster_event_ids = frozenset(row.event_id for row in rows)

    viewer = ViewerContext(
        user_id=user_id,
        membership_id=membership.id,
        club_id=club_id,
        team_id=membership.team_id,
        is_admin=membership.is_admin,
        roles=effective_roles(membership.role, membership.roles),
        roster_event_ids=roster_event_ids,
        roster_team_ids=roster_team_ids,
    )
    logger.debug(
        "Viewer built membership=%s admin=%s teams=%d events=%d",
        viewer.membership_id,
        viewer.is_admin,
        len(roster_team_ids),
        len(roster_event_ids),
    )
    return viewer

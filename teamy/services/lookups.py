from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from teamy.models.club import CompetitionEvent, Membership, Team
from teamy.models.content import CalendarEvent


def check_teams_in_club(db: Session, club_id: str, team_ids: list[str]) -> None:
    if not team_ids:
        return
    found = set(db.scalars(select(Team.id).where(Team.id.in_(team_ids), Team.club_id == club_id)).all())
    missing = sorted(set(team_ids) - found)
    if missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown teams for this club: {missing}")


def check_events_exist(db: Session, event_ids: list[str]) -> None:
    if not event_ids:
        return
    found = set(db.scalars(select(CompetitionEvent.id).where(CompetitionEvent.id.in_(event_ids))).all())
    missing = sorted(set(event_ids) - found)
    if missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown events: {missing}")


def check_membership_in_club(db: Session, club_id: str, membership_id: str) -> None:
    found = db.scalars(
        select(Membership.id).where(Membership.id == membership_id, Membership.club_id == club_id)
    ).first()
    if found is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Attendee is not a member of this club")


def check_calendar_event_in_club(db: Session, club_id: str, calendar_event_id: str | None) -> None:
    if calendar_event_id is None:
        return
    found = db.scalars(
        select(CalendarEvent.id).where(CalendarEvent.id == calendar_event_id, CalendarEvent.club_id == club_id)
    ).first()
    if found is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown calendar event for this club")

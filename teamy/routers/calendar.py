from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from teamy.db.session import get_db
from teamy.models.content import CalendarEvent, CalendarEventTarget, Test
from teamy.schemas.content import CalendarEventCreate, CalendarEventOut
from teamy.security.dependencies import get_viewer, viewer_for_club
from teamy.services.lookups import check_events_exist, check_membership_in_club, check_teams_in_club
from teamy.services.rules import calendar_event_visible
from teamy.visibility import CalendarScope, ViewerContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clubs/{club_id}/calendar", tags=["calendar"])


@router.get("", response_model=list[CalendarEventOut])
def list_calendar_events(
    club_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    db: Session = Depends(get_db),
) -> list[CalendarEvent]:
    stmt = (
        select(CalendarEvent)
        .where(CalendarEvent.club_id == club_id)
        .options(
            selectinload(CalendarEvent.targets),
            selectinload(CalendarEvent.test).selectinload(Test.assignments),
        )
        .order_by(CalendarEvent.start_utc)
    )
    events = db.scalars(stmt).all()
    return [event for event in events if calendar_event_visible(viewer, event)]


@router.post("", response_model=CalendarEventOut, status_code=status.HTTP_201_CREATED)
def create_calendar_event(
    club_id: str,
    payload: CalendarEventCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> CalendarEvent:
    viewer = viewer_for_club(request, db, club_id)
    scope = CalendarScope(payload.scope)

    if scope in (CalendarScope.CLUB, CalendarScope.TEAM) and not viewer.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can create club or team events",
        )

    if scope == CalendarScope.PERSONAL:
        if payload.attendee_id != viewer.membership_id and not viewer.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Members can only create personal events for themselves",
            )
        check_membership_in_club(db, club_id, payload.attendee_id)

    if scope == CalendarScope.TEAM:
        check_teams_in_club(db, club_id, [payload.team_id])
    check_events_exist(db, payload.target_events)

    event = CalendarEvent(
        club_id=club_id,
        creator_id=viewer.membership_id,
        scope=scope.value,
        team_id=payload.team_id if scope == CalendarScope.TEAM else None,
        attendee_id=payload.attendee_id if scope == CalendarScope.PERSONAL else None,
        title=payload.title,
        description=payload.description,
        location=payload.location,
        start_utc=payload.start_utc,
        end_utc=payload.end_utc,
        # No RSVPs on personal events.
        rsvp_enabled=payload.rsvp_enabled and scope != CalendarScope.PERSONAL,
    )
    for role in payload.target_roles:
        event.targets.append(CalendarEventTarget(target_role=role.value))
    for event_id in payload.target_events:
        event.targets.append(CalendarEventTarget(event_id=event_id))

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Calendar event created id=%s club=%s scope=%s", event.id, club_id, scope.value)
    return event

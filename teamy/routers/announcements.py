from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from teamy.db.session import get_db
from teamy.models.content import Announcement, AnnouncementVisibility
from teamy.schemas.content import AnnouncementCreate, AnnouncementOut
from teamy.security.dependencies import get_viewer, viewer_for_club
from teamy.services.lookups import check_calendar_event_in_club, check_events_exist, check_teams_in_club
from teamy.services.rules import announcement_rules
from teamy.visibility import ItemKind, ViewerContext, filter_visible

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clubs/{club_id}/announcements", tags=["announcements"])


@router.get("", response_model=list[AnnouncementOut])
def list_announcements(
    club_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    db: Session = Depends(get_db),
) -> list[Announcement]:
    stmt = (
        select(Announcement)
        .where(Announcement.club_id == club_id)
        .options(selectinload(Announcement.visibilities))
        .order_by(Announcement.created_at.desc())
    )
    announcements = list(db.scalars(stmt).all())
    return filter_visible(
        viewer,
        announcements,
        lambda a: announcement_rules(a.visibilities),
        kind=ItemKind.ANNOUNCEMENT,
    )


@router.post("", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def create_announcement(
    club_id: str,
    payload: AnnouncementCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> Announcement:
    # enforce_security has already required club admin (security_config.yaml).
    viewer = viewer_for_club(request, db, club_id)
    if not viewer.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can create announcements")

    check_teams_in_club(db, club_id, payload.team_ids)
    check_events_exist(db, payload.target_events)
    check_calendar_event_in_club(db, club_id, payload.calendar_event_id)

    announcement = Announcement(
        club_id=club_id,
        author_id=viewer.membership_id,
        title=payload.title,
        content=payload.content,
        important=payload.important,
        calendar_event_id=payload.calendar_event_id,
    )

    # Targets narrow a club announcement: the club-wide row is only written
    # when nothing is targeted, since rules are OR'ed.
    has_targets = bool(payload.target_roles or payload.target_events)
    if payload.scope == "CLUB" and not has_targets:
        announcement.visibilities.append(AnnouncementVisibility(scope="CLUB"))
    for team_id in payload.team_ids if payload.scope == "TEAM" else ():
        announcement.visibilities.append(AnnouncementVisibility(scope="TEAM", team_id=team_id))
    for role in payload.target_roles:
        announcement.visibilities.append(AnnouncementVisibility(scope=payload.scope, target_role=role.value))
    for event_id in payload.target_events:
        announcement.visibilities.append(AnnouncementVisibility(scope=payload.scope, event_id=event_id))

    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    logger.info(
        "Announcement created id=%s club=%s scope=%s rules=%d",
        announcement.id,
        club_id,
        payload.scope,
        len(announcement.visibilities),
    )
    return announcement

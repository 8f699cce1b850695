from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamy.db.base import Base
from teamy.db.session import SessionLocal, engine
from teamy.models.club import Club, CompetitionEvent, Membership, MembershipRole, RosterAssignment, Team, User
from teamy.models.content import (
    Announcement,
    AnnouncementVisibility,
    CalendarEvent,
    CalendarEventTarget,
    Test,
    TestAssignment,
)
from teamy.visibility import TestStatus


def init_db() -> None:
    """
    Create tables + seed demo data.

    The seed is small and deterministic (fixed ids) so the visibility rules can
    be tried with `Authorization: Bearer <user id>` right away.
    """

    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        _seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Club.id).limit(1)).first() is not None


def _seed(db: Session) -> None:
    now = datetime.now(timezone.utc)

    club = Club(id="club-demo", name="Demo Science Olympiad")
    varsity = Team(id="team-varsity", club_id=club.id, name="Varsity")
    jv = Team(id="team-jv", club_id=club.id, name="JV")
    db.add_all([club, varsity, jv])

    anatomy = CompetitionEvent(id="evt-anatomy", name="Anatomy & Physiology", slug="anatomy-physiology")
    codebusters = CompetitionEvent(id="evt-codebusters", name="Codebusters", slug="codebusters")
    db.add_all([anatomy, codebusters])
    db.flush()

    # Users (bearer token == user id with the dummy auth provider)
    coach = User(id="u-coach", name="Casey Coach", email="coach@example.com")
    captain = User(id="u-captain", name="Kai Captain", email="captain@example.com")
    member = User(id="u-member", name="Morgan Member", email="member@example.com")
    floater = User(id="u-floater", name="Flo Floater", email="floater@example.com")
    db.add_all([coach, captain, member, floater])
    db.flush()

    m_coach = Membership(id="m-coach", user_id=coach.id, club_id=club.id, role=MembershipRole.ADMIN)
    m_captain = Membership(
        id="m-captain", user_id=captain.id, club_id=club.id, team_id=varsity.id, roles=["CAPTAIN"]
    )
    m_member = Membership(id="m-member", user_id=member.id, club_id=club.id, team_id=jv.id)
    # No primary team; only rostered.
    m_floater = Membership(id="m-floater", user_id=floater.id, club_id=club.id)
    db.add_all([m_coach, m_captain, m_member, m_floater])
    db.flush()

    db.add_all(
        [
            RosterAssignment(membership_id=m_captain.id, team_id=varsity.id, event_id=anatomy.id),
            RosterAssignment(membership_id=m_floater.id, team_id=varsity.id, event_id=codebusters.id),
        ]
    )

    # Announcements
    welcome = Announcement(club_id=club.id, author_id=m_coach.id, title="Welcome", content="Season kickoff!")
    welcome.visibilities.append(AnnouncementVisibility(scope="CLUB"))
    captains = Announcement(club_id=club.id, author_id=m_coach.id, title="Captains meeting", content="Room 204.")
    captains.visibilities.append(AnnouncementVisibility(scope="CLUB", target_role="CAPTAIN"))
    varsity_note = Announcement(club_id=club.id, author_id=m_coach.id, title="Varsity bus", content="Leaves 7am.")
    varsity_note.visibilities.append(AnnouncementVisibility(scope="TEAM", team_id=varsity.id))
    db.add_all([welcome, captains, varsity_note])

    # Tests
    anatomy_test = Test(
        club_id=club.id,
        created_by_membership_id=m_coach.id,
        name="Anatomy practice",
        status=TestStatus.PUBLISHED,
        start_at=now - timedelta(days=1),
        end_at=now + timedelta(days=7),
        max_attempts=2,
    )
    anatomy_test.assignments.append(TestAssignment(assigned_scope="TEAM", team_id=varsity.id, event_id=anatomy.id))
    draft_test = Test(club_id=club.id, created_by_membership_id=m_coach.id, name="Codebusters draft")
    draft_test.assignments.append(TestAssignment(assigned_scope="CLUB"))
    db.add_all([anatomy_test, draft_test])
    db.flush()

    # Calendar
    practice = CalendarEvent(
        club_id=club.id,
        creator_id=m_coach.id,
        scope="CLUB",
        title="Practice",
        start_utc=now + timedelta(days=2),
        end_utc=now + timedelta(days=2, hours=2),
    )
    codebusters_session = CalendarEvent(
        club_id=club.id,
        creator_id=m_coach.id,
        scope="CLUB",
        title="Codebusters drills",
        start_utc=now + timedelta(days=3),
        end_utc=now + timedelta(days=3, hours=1),
    )
    codebusters_session.targets.append(CalendarEventTarget(event_id=codebusters.id))
    test_slot = CalendarEvent(
        club_id=club.id,
        creator_id=m_coach.id,
        scope="CLUB",
        title="Anatomy practice test",
        test_id=anatomy_test.id,
        start_utc=now + timedelta(days=4),
        end_utc=now + timedelta(days=4, hours=1),
    )
    study = CalendarEvent(
        club_id=club.id,
        creator_id=m_member.id,
        scope="PERSONAL",
        attendee_id=m_member.id,
        title="Study session",
        rsvp_enabled=False,
        start_utc=now + timedelta(days=1),
        end_utc=now + timedelta(days=1, hours=1),
    )
    db.add_all([practice, codebusters_session, test_slot, study])

    db.commit()

"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. Pure visibility tests need
none of this and build ViewerContexts directly.
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from teamy.visibility import TargetRole, ViewerContext


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from teamy.db.base import Base
    import teamy.models.club  # noqa: F401  (register tables)
    import teamy.models.content  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    Code under test may call commit(); the outer transaction still rolls back.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def club(db_session):
    """
    A small club:

    - admin:   ADMIN, no team
    - member:  MEMBER on team A, rostered for event E1 on team A
    - captain: MEMBER on team A with secondary role CAPTAIN
    - floater: no primary team, rostered for event E2 on team B
    - outsider: member of another club, rostered there
    """
    from teamy.models.club import Club, CompetitionEvent, Membership, MembershipRole, RosterAssignment, Team, User

    c = Club(id="club-1", name="Central High")
    other = Club(id="club-2", name="Westside")
    db_session.add_all([c, other])
    db_session.flush()

    team_a = Team(id="team-a", club_id=c.id, name="A")
    team_b = Team(id="team-b", club_id=c.id, name="B")
    team_x = Team(id="team-x", club_id=other.id, name="X")
    e1 = CompetitionEvent(id="evt-1", name="Anatomy", slug="anatomy")
    e2 = CompetitionEvent(id="evt-2", name="Codebusters", slug="codebusters")
    e3 = CompetitionEvent(id="evt-3", name="Fossils", slug="fossils")
    db_session.add_all([team_a, team_b, team_x, e1, e2, e3])
    db_session.flush()

    users = {
        name: User(id=f"u-{name}", name=name.title(), email=f"{name}@example.com")
        for name in ("admin", "member", "captain", "floater", "outsider")
    }
    db_session.add_all(users.values())
    db_session.flush()

    memberships = {
        "admin": Membership(id="m-admin", user_id="u-admin", club_id=c.id, role=MembershipRole.ADMIN),
        "member": Membership(id="m-member", user_id="u-member", club_id=c.id, team_id=team_a.id),
        "captain": Membership(
            id="m-captain", user_id="u-captain", club_id=c.id, team_id=team_a.id, roles=["CAPTAIN"]
        ),
        "floater": Membership(id="m-floater", user_id="u-floater", club_id=c.id),
        "outsider": Membership(id="m-outsider", user_id="u-outsider", club_id=other.id, team_id=team_x.id),
    }
    db_session.add_all(memberships.values())
    db_session.flush()

    db_session.add_all(
        [
            RosterAssignment(membership_id="m-member", team_id=team_a.id, event_id=e1.id),
            RosterAssignment(membership_id="m-floater", team_id=team_b.id, event_id=e2.id),
            RosterAssignment(membership_id="m-outsider", team_id=team_x.id, event_id=e3.id),
        ]
    )
    db_session.commit()

    return SimpleNamespace(
        club=c,
        other_club=other,
        team_a=team_a,
        team_b=team_b,
        team_x=team_x,
        e1=e1,
        e2=e2,
        e3=e3,
        users=users,
        memberships=memberships,
    )


def _make_viewer(
    *,
    membership_id: str = "m-1",
    team_id: str | None = None,
    is_admin: bool = False,
    roles: frozenset[TargetRole] | None = None,
    roster_event_ids: frozenset[str] = frozenset(),
    roster_team_ids: frozenset[str] = frozenset(),
) -> ViewerContext:
    if roles is None:
        roles = frozenset({TargetRole.COACH if is_admin else TargetRole.MEMBER})
    return ViewerContext(
        user_id=f"u-{membership_id}",
        membership_id=membership_id,
        club_id="club-1",
        team_id=team_id,
        is_admin=is_admin,
        roles=roles,
        roster_event_ids=frozenset(roster_event_ids),
        roster_team_ids=frozenset(roster_team_ids),
    )


@pytest.fixture
def make_viewer():
    """Factory for ViewerContexts that never touch the database."""
    return _make_viewer

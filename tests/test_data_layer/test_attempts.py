"""
Tests for starting, resuming and counting test attempts (ORM).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamy.db.base import Base
from teamy.models.content import Test, TestAssignment, TestAttempt
from teamy.services import attempts as attempts_service
from teamy.services.attempts import attempt_summaries, start_attempt, submit_attempt
from teamy.services.viewer import build_viewer_context
from teamy.visibility import AttemptStatus, TestStatus
from teamy.visibility.assignment import (
    INVALID_PASSWORD,
    MAX_ATTEMPTS_REACHED,
    NOT_ASSIGNED,
    OUTSIDE_WINDOW,
    PASSWORD_REQUIRED,
)

NOW = datetime(2026, 5, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def published_test(db_session, club):
    test = Test(id="t-1", club_id="club-1", name="Anatomy", status=TestStatus.PUBLISHED, max_attempts=2)
    test.assignments.append(TestAssignment(assigned_scope="TEAM", team_id="team-a"))
    db_session.add(test)
    db_session.commit()
    return test


def _completed(db_session, membership_id, test_id, count):
    for _ in range(count):
        db_session.add(
            TestAttempt(membership_id=membership_id, test_id=test_id, status=AttemptStatus.SUBMITTED, started_at=NOW)
        )
    db_session.commit()


def _attempt_count(db_session, membership_id, test_id):
    return db_session.execute(
        select(func.count(TestAttempt.id)).where(
            TestAttempt.membership_id == membership_id, TestAttempt.test_id == test_id
        )
    ).scalar_one()


def test_start_creates_attempt(db_session, published_test):
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    result = start_attempt(db_session, viewer, published_test, now=NOW)

    assert result.denied is None
    assert result.created is True
    assert result.attempt.status == AttemptStatus.IN_PROGRESS
    assert result.attempt.membership_id == "m-member"


def test_second_start_resumes_same_attempt(db_session, published_test):
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    first = start_attempt(db_session, viewer, published_test, now=NOW)
    second = start_attempt(db_session, viewer, published_test, now=NOW + timedelta(minutes=1))

    assert second.created is False
    assert second.attempt.id == first.attempt.id
    assert _attempt_count(db_session, "m-member", "t-1") == 1


def test_unassigned_member_is_denied(db_session, published_test):
    viewer = build_viewer_context(db_session, "u-floater", "club-1")

    result = start_attempt(db_session, viewer, published_test, now=NOW)

    assert result.attempt is None
    assert result.denied.reason == NOT_ASSIGNED
    assert _attempt_count(db_session, "m-floater", "t-1") == 0


def test_window_is_checked_with_stored_times(db_session, published_test):
    published_test.start_at = NOW + timedelta(hours=1)
    db_session.commit()
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    assert start_attempt(db_session, viewer, published_test, now=NOW).denied.reason == OUTSIDE_WINDOW
    assert start_attempt(db_session, viewer, published_test, now=NOW + timedelta(hours=2)).created is True


def test_max_attempts_reached(db_session, published_test):
    _completed(db_session, "m-member", "t-1", 2)
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    result = start_attempt(db_session, viewer, published_test, now=NOW)

    assert result.denied.reason == MAX_ATTEMPTS_REACHED
    assert _attempt_count(db_session, "m-member", "t-1") == 2


def test_admin_hits_max_attempts_too(db_session, published_test):
    published_test.max_attempts = 1
    db_session.commit()
    _completed(db_session, "m-admin", "t-1", 1)
    viewer = build_viewer_context(db_session, "u-admin", "club-1")

    assert start_attempt(db_session, viewer, published_test, now=NOW).denied.reason == MAX_ATTEMPTS_REACHED


def test_unfinished_attempt_resumes_at_limit(db_session, published_test):
    _completed(db_session, "m-member", "t-1", 2)
    db_session.add(TestAttempt(id="open-1", membership_id="m-member", test_id="t-1"))
    db_session.commit()
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    result = start_attempt(db_session, viewer, published_test, now=NOW)

    assert result.denied is None
    assert result.created is False
    assert result.attempt.id == "open-1"


def test_attempt_summaries(db_session, published_test):
    other = Test(id="t-2", club_id="club-1", name="Fossils", status=TestStatus.PUBLISHED)
    db_session.add(other)
    db_session.commit()
    _completed(db_session, "m-member", "t-1", 2)
    _completed(db_session, "m-captain", "t-2", 1)
    db_session.add(TestAttempt(membership_id="m-member", test_id="t-2", status=AttemptStatus.IN_PROGRESS))
    db_session.commit()

    summaries = attempt_summaries(db_session, "m-member", [published_test, other])

    assert summaries["t-1"].to_dict() == {"attempts_used": 2, "max_attempts": 2, "has_reached_limit": True}
    assert summaries["t-2"].to_dict() == {"attempts_used": 0, "max_attempts": None, "has_reached_limit": False}
    assert attempt_summaries(db_session, "m-member", []) == {}


def test_submit_moves_attempt_to_submitted(db_session, published_test):
    viewer = build_viewer_context(db_session, "u-member", "club-1")
    attempt = start_attempt(db_session, viewer, published_test, now=NOW).attempt

    assert submit_attempt(db_session, attempt, now=NOW + timedelta(minutes=40)) is True
    assert attempt.status == AttemptStatus.SUBMITTED
    assert attempt.submitted_at is not None

    # A second submit is a no-op and the stored state is untouched.
    assert submit_attempt(db_session, attempt, now=NOW + timedelta(hours=1)) is False
    stored = db_session.scalar(select(TestAttempt.status).where(TestAttempt.id == attempt.id))
    assert stored == AttemptStatus.SUBMITTED


def test_submitted_attempts_count_towards_limit(db_session, published_test):
    viewer = build_viewer_context(db_session, "u-member", "club-1")
    for _ in range(2):
        attempt = start_attempt(db_session, viewer, published_test, now=NOW).attempt
        assert submit_attempt(db_session, attempt, now=NOW) is True

    result = start_attempt(db_session, viewer, published_test, now=NOW)

    assert result.denied.reason == MAX_ATTEMPTS_REACHED
    assert result.denied.detail == {"attempts_used": 2, "max_attempts": 2}


def test_start_checks_test_password(db_session, published_test):
    published_test.set_password("mitosis")
    db_session.commit()
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    assert start_attempt(db_session, viewer, published_test, now=NOW).denied.reason == PASSWORD_REQUIRED
    wrong = start_attempt(db_session, viewer, published_test, now=NOW, password="meiosis")
    assert wrong.denied.reason == INVALID_PASSWORD
    assert _attempt_count(db_session, "m-member", "t-1") == 0
    assert start_attempt(db_session, viewer, published_test, now=NOW, password="mitosis").created is True


# ---- Unique index on unfinished attempts -----------------------------------------------


@pytest.fixture
def standalone_session():
    """
    A plain session on its own engine.

    The rollback-per-test session can't be used here: a rollback after an
    IntegrityError would discard the outer transaction along with the fixtures.
    """
    import teamy.models.club  # noqa: F401  (register tables)

    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = Session(engine)
    yield session
    session.close()
    engine.dispose()


def test_second_unfinished_attempt_violates_unique_index(standalone_session):
    standalone_session.add(TestAttempt(membership_id="m-1", test_id="t-1", status=AttemptStatus.IN_PROGRESS))
    standalone_session.commit()

    standalone_session.add(TestAttempt(membership_id="m-1", test_id="t-1", status=AttemptStatus.NOT_STARTED))
    with pytest.raises(IntegrityError):
        standalone_session.flush()
    standalone_session.rollback()


def test_completed_attempts_do_not_collide(standalone_session):
    standalone_session.add_all(
        [
            TestAttempt(membership_id="m-1", test_id="t-1", status=AttemptStatus.SUBMITTED),
            TestAttempt(membership_id="m-1", test_id="t-1", status=AttemptStatus.GRADED),
            TestAttempt(membership_id="m-1", test_id="t-1", status=AttemptStatus.IN_PROGRESS),
        ]
    )
    standalone_session.commit()

    assert standalone_session.scalar(select(func.count(TestAttempt.id))) == 3


def test_lost_race_resumes_winner(standalone_session, make_viewer, monkeypatch):
    test = Test(id="t-1", club_id="club-1", name="Race", status=TestStatus.PUBLISHED)
    test.assignments.append(TestAssignment(assigned_scope="CLUB"))
    winner = TestAttempt(id="winner", membership_id="m-1", test_id="t-1", status=AttemptStatus.IN_PROGRESS)
    standalone_session.add_all([test, winner])
    standalone_session.commit()

    # The first lookup misses the winner, as if it were inserted right after it.
    real_lookup = attempts_service.find_resumable_attempt
    calls = []

    def racing_lookup(db, membership_id, test_id):
        calls.append(test_id)
        if len(calls) == 1:
            return None
        return real_lookup(db, membership_id, test_id)

    monkeypatch.setattr(attempts_service, "find_resumable_attempt", racing_lookup)

    result = start_attempt(standalone_session, make_viewer(membership_id="m-1"), test, now=NOW)

    assert result.created is False
    assert result.attempt.id == "winner"
    assert standalone_session.scalar(select(func.count(TestAttempt.id))) == 1

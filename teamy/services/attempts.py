"""
Starting and resuming test attempts.

The aggregator in teamy.visibility.assignment decides; this module feeds it
fresh data and performs the insert. The partial unique index on
test_attempts (one unfinished attempt per member and test) is what actually
guarantees that two racing requests can't both create an attempt; the
lookup here only keeps the common path cheap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamy.models.content import Test, TestAttempt
from teamy.services.rules import rules_for_test
from teamy.visibility import (
    AssignmentWindow,
    AttemptStatus,
    Denied,
    TestGate,
    ViewerContext,
    can_start_attempt,
)
from teamy.visibility.assignment import COMPLETED_STATUSES, RESUMABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptStart:
    """Outcome of start_attempt: either an attempt (new or resumed) or a denial."""

    attempt: TestAttempt | None = None
    created: bool = False
    denied: Denied | None = None


@dataclass(frozen=True)
class AttemptSummary:
    attempts_used: int
    max_attempts: int | None
    has_reached_limit: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "attempts_used": self.attempts_used,
            "max_attempts": self.max_attempts,
            "has_reached_limit": self.has_reached_limit,
        }


def find_resumable_attempt(db: Session, membership_id: str, test_id: str) -> TestAttempt | None:
    return db.execute(
        select(TestAttempt)
        .where(
            TestAttempt.membership_id == membership_id,
            TestAttempt.test_id == test_id,
            TestAttempt.status.in_(list(RESUMABLE_STATUSES)),
        )
        .order_by(TestAttempt.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def count_completed_attempts(db: Session, membership_id: str, test_id: str) -> int:
    return db.execute(
        select(func.count(TestAttempt.id)).where(
            TestAttempt.membership_id == membership_id,
            TestAttempt.test_id == test_id,
            TestAttempt.status.in_(list(COMPLETED_STATUSES)),
        )
    ).scalar_one()


def gate_for(test: Test) -> TestGate:
    return TestGate(
        test_id=test.id,
        status=test.status,
        rules=tuple(rules_for_test(test)),
        password_required=test.requires_password,
    )


def window_for(test: Test, completed_attempts: int) -> AssignmentWindow:
    return AssignmentWindow(
        start_at=test.start_at,
        end_at=test.end_at,
        allow_late_until=test.allow_late_until,
        max_attempts=test.max_attempts,
        completed_attempts=completed_attempts,
    )


def start_attempt(
    db: Session,
    viewer: ViewerContext,
    test: Test,
    now: datetime | None = None,
    password: str | None = None,
) -> AttemptStart:
    """
    Start a new attempt, or hand back the viewer's unfinished one.

    The completed-attempt count is read from the database on every call.
    """

    now = now or datetime.now(timezone.utc)

    resumable = find_resumable_attempt(db, viewer.membership_id, test.id)
    completed = count_completed_attempts(db, viewer.membership_id, test.id)

    password_ok = None
    if test.requires_password and password is not None:
        password_ok = test.check_password(password)

    decision = can_start_attempt(
        viewer,
        gate_for(test),
        window_for(test, completed),
        resumable_attempt_id=resumable.id if resumable is not None else None,
        now=now,
        password_ok=password_ok,
    )

    if isinstance(decision, Denied):
        return AttemptStart(denied=decision)

    if decision.is_resume:
        logger.info("Resuming attempt=%s test=%s membership=%s", resumable.id, test.id, viewer.membership_id)
        return AttemptStart(attempt=resumable, created=False)

    attempt = TestAttempt(
        test_id=test.id,
        membership_id=viewer.membership_id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent start for the same member and test.
        db.rollback()
        winner = find_resumable_attempt(db, viewer.membership_id, test.id)
        if winner is None:
            raise
        logger.warning(
            "Concurrent attempt start test=%s membership=%s; resuming %s", test.id, viewer.membership_id, winner.id
        )
        return AttemptStart(attempt=winner, created=False)

    db.refresh(attempt)
    logger.info("Created attempt=%s test=%s membership=%s", attempt.id, test.id, viewer.membership_id)
    return AttemptStart(attempt=attempt, created=True)


def submit_attempt(db: Session, attempt: TestAttempt, now: datetime | None = None) -> bool:
    """
    Move an IN_PROGRESS attempt to SUBMITTED.

    Returns False if the attempt was no longer in progress. The status check
    is part of the UPDATE so two racing submits can't both succeed.
    """

    now = now or datetime.now(timezone.utc)
    result = db.execute(
        update(TestAttempt)
        .where(TestAttempt.id == attempt.id, TestAttempt.status == AttemptStatus.IN_PROGRESS)
        .values(status=AttemptStatus.SUBMITTED, submitted_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    db.commit()
    db.refresh(attempt)
    logger.info("Submitted attempt=%s test=%s membership=%s", attempt.id, attempt.test_id, attempt.membership_id)
    return True


def attempt_summaries(db: Session, membership_id: str, tests: Iterable[Test]) -> dict[str, AttemptSummary]:
    """Completed-attempt counts per test, in a single grouped query."""

    tests = list(tests)
    if not tests:
        return {}

    rows = db.execute(
        select(TestAttempt.test_id, func.count(TestAttempt.id))
        .where(
            TestAttempt.membership_id == membership_id,
            TestAttempt.test_id.in_([t.id for t in tests]),
            TestAttempt.status.in_(list(COMPLETED_STATUSES)),
        )
        .group_by(TestAttempt.test_id)
    ).all()
    counts = {test_id: count for test_id, count in rows}

    summaries: dict[str, AttemptSummary] = {}
    for test in tests:
        used = counts.get(test.id, 0)
        summaries[test.id] = AttemptSummary(
            attempts_used=used,
            max_attempts=test.max_attempts,
            has_reached_limit=test.max_attempts is not None and used >= test.max_attempts,
        )
    return summaries

"""
Test-taking gate.

Wraps the resolver with the checks that only apply when a viewer tries to
start a test attempt: publication status and availability window, the test
password, and the completed-attempt ceiling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Union

from .context import ViewerContext
from .resolver import ItemKind, is_visible
from .rules import ScopeRule

logger = logging.getLogger(__name__)


class TestStatus(str, Enum):
    __test__ = False  # not a pytest class

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class AttemptStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"


RESUMABLE_STATUSES = frozenset({AttemptStatus.NOT_STARTED, AttemptStatus.IN_PROGRESS})
COMPLETED_STATUSES = frozenset({AttemptStatus.SUBMITTED, AttemptStatus.GRADED})

NOT_PUBLISHED = "not published"
OUTSIDE_WINDOW = "outside availability window"
NOT_ASSIGNED = "not assigned"
MAX_ATTEMPTS_REACHED = "max attempts reached"
PASSWORD_REQUIRED = "test password required"
INVALID_PASSWORD = "invalid test password"


@dataclass(frozen=True)
class TestGate:
    """What the gate needs to know about a test."""

    __test__ = False  # not a pytest class

    test_id: str
    status: TestStatus | str
    rules: tuple[ScopeRule, ...] = ()
    password_required: bool = False


@dataclass(frozen=True)
class AssignmentWindow:
    """
    Availability and attempt limits for one viewer on one test.

    ``completed_attempts`` must be read fresh for every check; it is what keeps
    two concurrent starts from both slipping under ``max_attempts``.
    """

    start_at: datetime | None = None
    end_at: datetime | None = None
    allow_late_until: datetime | None = None
    max_attempts: int | None = None
    completed_attempts: int = 0

    @property
    def closes_at(self) -> datetime | None:
        """Upper bound of the window; None means open-ended."""
        return self.end_at if self.end_at is not None else self.allow_late_until


@dataclass(frozen=True)
class Allowed:
    """The viewer may proceed. ``resume_attempt_id`` is set when an unfinished attempt should be reused."""

    resume_attempt_id: str | None = None

    @property
    def is_resume(self) -> bool:
        return self.resume_attempt_id is not None


@dataclass(frozen=True)
class Denied:
    reason: str
    detail: dict[str, object] = field(default_factory=dict)


Decision = Union[Allowed, Denied]


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (as SQLite hands them back) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status_value(status: TestStatus | str) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def check_availability(test: TestGate, window: AssignmentWindow, now: datetime | None = None) -> Denied | None:
    """Return a Denied if the test is unpublished or outside its window, else None."""

    if _status_value(test.status) != TestStatus.PUBLISHED.value:
        return Denied(NOT_PUBLISHED)

    now = as_utc(now) or datetime.now(timezone.utc)
    start_at = as_utc(window.start_at)
    closes_at = as_utc(window.closes_at)

    if start_at is not None and now < start_at:
        return Denied(OUTSIDE_WINDOW, {"start_at": start_at.isoformat()})
    if closes_at is not None and now > closes_at:
        return Denied(OUTSIDE_WINDOW, {"closes_at": closes_at.isoformat()})
    return None


def can_start_attempt(
    viewer: ViewerContext,
    test: TestGate,
    window: AssignmentWindow,
    resumable_attempt_id: str | None = None,
    now: datetime | None = None,
    password_ok: bool | None = None,
) -> Decision:
    """
    Decide if the viewer may start (or resume) an attempt.

    Checks, first failure wins:
    1. Admins skip the status, window, assignment and password checks.
    2. Test must be published.
    3. ``now`` must fall inside [start_at, end_at or allow_late_until].
    4. The viewer must be assigned (resolver, with tests failing closed).
    5. Password-protected tests need ``password_ok``: None means no password
       was given, False means it didn't verify.
    6. An unfinished attempt is resumed rather than counted.
    7. Completed attempts must be below ``max_attempts``; this applies to admins too.
    """

    if not viewer.is_admin:
        denied = check_availability(test, window, now)
        if denied is None and not is_visible(viewer, test.rules, kind=ItemKind.TEST):
            denied = Denied(NOT_ASSIGNED)
        if denied is None and test.password_required and not password_ok:
            denied = Denied(PASSWORD_REQUIRED if password_ok is None else INVALID_PASSWORD)
        if denied is not None:
            logger.info(
                "Attempt denied test=%s membership=%s reason=%s", test.test_id, viewer.membership_id, denied.reason
            )
            return denied

    if resumable_attempt_id is not None:
        logger.debug("Attempt resume test=%s attempt=%s", test.test_id, resumable_attempt_id)
        return Allowed(resume_attempt_id=resumable_attempt_id)

    if window.max_attempts is not None and window.completed_attempts >= window.max_attempts:
        logger.info(
            "Attempt denied test=%s membership=%s reason=%s used=%d max=%d",
            test.test_id,
            viewer.membership_id,
            MAX_ATTEMPTS_REACHED,
            window.completed_attempts,
            window.max_attempts,
        )
        return Denied(
            MAX_ATTEMPTS_REACHED,
            {"attempts_used": window.completed_attempts, "max_attempts": window.max_attempts},
        )

    return Allowed()

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import check_password_hash, generate_password_hash

from teamy.db.base import Base, new_id
from teamy.visibility import AttemptStatus, TestStatus

# Scope / role columns on rule rows are plain strings: rows written by older
# clients may hold values we no longer recognise, and those must degrade to
# "not visible" instead of failing to load.


class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(ForeignKey("memberships.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    important: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calendar_event_id: Mapped[str | None] = mapped_column(ForeignKey("calendar_events.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    visibilities: Mapped[list["AnnouncementVisibility"]] = relationship(
        back_populates="announcement", cascade="all, delete-orphan"
    )


class AnnouncementVisibility(Base):
    __tablename__ = "announcement_visibilities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    announcement_id: Mapped[str] = mapped_column(ForeignKey("announcements.id"), nullable=False, index=True)

    scope: Mapped[str] = mapped_column(String(20), nullable=False)  # CLUB | TEAM
    team_id: Mapped[str | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    target_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    event_id: Mapped[str | None] = mapped_column(ForeignKey("competition_events.id"), nullable=True)

    announcement: Mapped[Announcement] = relationship(back_populates="visibilities")


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    creator_id: Mapped[str] = mapped_column(ForeignKey("memberships.id"), nullable=False)

    scope: Mapped[str] = mapped_column(String(20), nullable=False)  # CLUB | TEAM | PERSONAL
    team_id: Mapped[str | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    attendee_id: Mapped[str | None] = mapped_column(ForeignKey("memberships.id"), nullable=True, index=True)
    test_id: Mapped[str | None] = mapped_column(ForeignKey("tests.id"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rsvp_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    targets: Mapped[list["CalendarEventTarget"]] = relationship(
        back_populates="calendar_event", cascade="all, delete-orphan"
    )
    test: Mapped["Test | None"] = relationship()


class CalendarEventTarget(Base):
    __tablename__ = "calendar_event_targets"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    calendar_event_id: Mapped[str] = mapped_column(ForeignKey("calendar_events.id"), nullable=False, index=True)
    target_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    event_id: Mapped[str | None] = mapped_column(ForeignKey("competition_events.id"), nullable=True)

    calendar_event: Mapped[CalendarEvent] = relationship(back_populates="targets")


class Test(Base):
    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    created_by_membership_id: Mapped[str | None] = mapped_column(ForeignKey("memberships.id"), nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TestStatus] = mapped_column(
        SAEnum(TestStatus, native_enum=False, length=20), default=TestStatus.DRAFT, nullable=False
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)

    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    allow_late_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # None means the test has no password.
    password_hash: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    assignments: Mapped[list["TestAssignment"]] = relationship(back_populates="test", cascade="all, delete-orphan")

    @property
    def requires_password(self) -> bool:
        return bool(self.password_hash)

    def set_password(self, password: str | None) -> None:
        self.password_hash = generate_password_hash(password) if password else None

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        try:
            return check_password_hash(self.password_hash, password)
        except ValueError:
            # Unknown hash method in a stored value.
            return False


class TestAssignment(Base):
    __tablename__ = "test_assignments"
    __test__ = False  # not a pytest class

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    test_id: Mapped[str] = mapped_column(ForeignKey("tests.id"), nullable=False, index=True)

    assigned_scope: Mapped[str] = mapped_column(String(20), nullable=False)  # CLUB | TEAM | PERSONAL
    team_id: Mapped[str | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    target_membership_id: Mapped[str | None] = mapped_column(ForeignKey("memberships.id"), nullable=True)
    event_id: Mapped[str | None] = mapped_column(ForeignKey("competition_events.id"), nullable=True)

    test: Mapped[Test] = relationship(back_populates="assignments")


class TestAttempt(Base):
    __tablename__ = "test_attempts"
    __test__ = False  # not a pytest class
    __table_args__ = (
        # At most one unfinished attempt per member and test. Backstop for
        # concurrent "start" requests racing past the application check.
        Index(
            "uq_test_attempts_active",
            "membership_id",
            "test_id",
            unique=True,
            sqlite_where=text("status IN ('NOT_STARTED', 'IN_PROGRESS')"),
            postgresql_where=text("status IN ('NOT_STARTED', 'IN_PROGRESS')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    test_id: Mapped[str] = mapped_column(ForeignKey("tests.id"), nullable=False, index=True)
    membership_id: Mapped[str] = mapped_column(ForeignKey("memberships.id"), nullable=False, index=True)

    status: Mapped[AttemptStatus] = mapped_column(
        SAEnum(AttemptStatus, native_enum=False, length=20), default=AttemptStatus.NOT_STARTED, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamy.db.base import Base, new_id


class MembershipRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    memberships: Mapped[list["Membership"]] = relationship(back_populates="user")


class Club(Base):
    __tablename__ = "clubs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    teams: Mapped[list["Team"]] = relationship(back_populates="club")
    memberships: Mapped[list["Membership"]] = relationship(back_populates="club")


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    club: Mapped[Club] = relationship(back_populates="teams")


class Membership(Base):
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "club_id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    club_id: Mapped[str] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)

    # Primary team; members may also be rostered on other teams.
    team_id: Mapped[str | None] = mapped_column(ForeignKey("teams.id"), nullable=True, index=True)

    role: Mapped[MembershipRole] = mapped_column(
        SAEnum(MembershipRole, native_enum=False, length=20), default=MembershipRole.MEMBER, nullable=False
    )
    # Secondary roles such as CAPTAIN, stored as a loose list of strings.
    roles: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship(back_populates="memberships")
    club: Mapped[Club] = relationship(back_populates="memberships")
    team: Mapped[Team | None] = relationship()
    roster_assignments: Mapped[list["RosterAssignment"]] = relationship(back_populates="membership")

    @property
    def is_admin(self) -> bool:
        return self.role == MembershipRole.ADMIN


class CompetitionEvent(Base):
    """A Science Olympiad event (e.g. "Anatomy & Physiology")."""

    __tablename__ = "competition_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class RosterAssignment(Base):
    __tablename__ = "roster_assignments"
    __table_args__ = (UniqueConstraint("membership_id", "team_id", "event_id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    membership_id: Mapped[str] = mapped_column(ForeignKey("memberships.id"), nullable=False, index=True)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id"), nullable=False, index=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("competition_events.id"), nullable=False, index=True)

    membership: Mapped[Membership] = relationship(back_populates="roster_assignments")
    team: Mapped[Team] = relationship()
    event: Mapped[CompetitionEvent] = relationship()

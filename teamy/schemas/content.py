from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from teamy.visibility import AttemptStatus, TargetRole, TestStatus


# ---- Announcements -------------------------------------------------------------------


class AnnouncementVisibilityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scope: str
    team_id: str | None
    target_role: str | None
    event_id: str | None


class AnnouncementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    club_id: str
    author_id: str
    title: str
    content: str
    important: bool
    calendar_event_id: str | None
    created_at: datetime
    visibilities: list[AnnouncementVisibilityOut]


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    scope: Literal["CLUB", "TEAM"]
    team_ids: list[str] = Field(default_factory=list)
    target_roles: list[TargetRole] = Field(default_factory=list)
    target_events: list[str] = Field(default_factory=list)
    calendar_event_id: str | None = None
    important: bool = False

    @model_validator(mode="after")
    def _check_scope_fields(self) -> AnnouncementCreate:
        if self.scope == "TEAM" and not self.team_ids:
            raise ValueError("team_ids required for TEAM scope")
        if self.scope == "TEAM" and (self.target_roles or self.target_events):
            raise ValueError("target_roles and target_events are only supported for CLUB scope")
        return self


# ---- Calendar ------------------------------------------------------------------------


class CalendarEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    club_id: str
    creator_id: str
    scope: str
    team_id: str | None
    attendee_id: str | None
    test_id: str | None
    title: str
    description: str | None
    location: str | None
    start_utc: datetime
    end_utc: datetime
    rsvp_enabled: bool


class CalendarEventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    location: str | None = None
    scope: Literal["PERSONAL", "TEAM", "CLUB"]
    team_id: str | None = None
    attendee_id: str | None = None
    start_utc: datetime
    end_utc: datetime
    rsvp_enabled: bool = True
    target_roles: list[TargetRole] = Field(default_factory=list)
    target_events: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_scope_fields(self) -> CalendarEventCreate:
        if self.end_utc < self.start_utc:
            raise ValueError("end_utc must not be before start_utc")
        if self.scope == "TEAM" and not self.team_id:
            raise ValueError("team_id required for TEAM scope")
        if self.scope == "PERSONAL" and not self.attendee_id:
            raise ValueError("attendee_id required for PERSONAL scope")
        if self.scope != "CLUB" and (self.target_roles or self.target_events):
            raise ValueError("target_roles and target_events are only supported for CLUB scope")
        return self


# ---- Tests ---------------------------------------------------------------------------


class TestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    club_id: str
    name: str
    description: str | None
    status: TestStatus
    duration_minutes: int
    start_at: datetime | None
    end_at: datetime | None
    allow_late_until: datetime | None
    max_attempts: int | None
    requires_password: bool
    created_at: datetime


class AttemptSummaryOut(BaseModel):
    attempts_used: int
    max_attempts: int | None
    has_reached_limit: bool


class TestListOut(BaseModel):
    tests: list[TestOut]
    user_attempts: dict[str, AttemptSummaryOut] = Field(default_factory=dict)


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    test_id: str
    membership_id: str
    status: AttemptStatus
    started_at: datetime | None
    submitted_at: datetime | None


class AttemptStartIn(BaseModel):
    test_password: str | None = None


class AttemptStartOut(BaseModel):
    attempt: AttemptOut
    resumed: bool

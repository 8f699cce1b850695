from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None
    email: str
    is_active: bool


class ViewerOut(BaseModel):
    user_id: str
    membership_id: str
    club_id: str
    team_id: str | None
    is_admin: bool
    roles: list[str]
    roster_event_ids: list[str]
    roster_team_ids: list[str]

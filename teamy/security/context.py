from __future__ import annotations

from dataclasses import dataclass

from teamy.visibility import ViewerContext


@dataclass(frozen=True)
class AuthContext:
    """
    Per-request authentication result, attached to request.state.

    ``viewer`` is only filled in when the matched rule needed club-level
    information (club admin checks); handlers build their own otherwise.
    """

    user_id: str
    require_club_admin: bool
    viewer: ViewerContext | None = None

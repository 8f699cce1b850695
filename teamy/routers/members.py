from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from teamy.db.session import get_db
from teamy.models.club import Membership, User
from teamy.schemas.club import UserOut, ViewerOut
from teamy.security.decorators import require_club_admin
from teamy.security.dependencies import get_current_user, get_viewer
from teamy.services.viewer import build_viewer_context
from teamy.visibility import ViewerContext

router = APIRouter(tags=["members"])


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> User:
    return user


@router.get("/clubs/{club_id}/viewer", response_model=ViewerOut)
def my_viewer_context(club_id: str, viewer: ViewerContext = Depends(get_viewer)) -> dict[str, object]:
    return viewer.to_dict()


@router.get("/clubs/{club_id}/members/{membership_id}/viewer", response_model=ViewerOut)
@require_club_admin()
def member_viewer_context(club_id: str, membership_id: str, db: Session = Depends(get_db)) -> dict[str, object]:
    # Lets an admin see exactly what a member's visibility decisions are based on.
    membership = db.scalars(
        select(Membership).where(Membership.id == membership_id, Membership.club_id == club_id)
    ).first()
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Membership not found")
    return build_viewer_context(db, membership.user_id, club_id).to_dict()

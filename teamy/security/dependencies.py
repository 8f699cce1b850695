from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from teamy.db.session import get_db
from teamy.models.club import User
from teamy.security.auth import extract_token, load_user, resolve_user_id
from teamy.security.config import SecurityConfig
from teamy.security.context import AuthContext
from teamy.services.viewer import MembershipNotFoundError, build_viewer_context
from teamy.visibility import ViewerContext

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    db: Session = Depends(get_db),
) -> None:
    """
    Global security dependency (configuration-driven).

    Runs after routing, so decorator metadata on the endpoint and path
    parameters (club_id) are both available here.
    """

    path = request.url.path
    method = request.method.upper()

    rule = config.match(path, method)

    endpoint = request.scope.get("endpoint")
    decorator_club_admin = bool(getattr(endpoint, "__security_require_club_admin__", False)) if endpoint else False

    require_club_admin = rule.require_club_admin or decorator_club_admin
    auth_required = rule.auth_required or require_club_admin
    if not auth_required:
        return

    token = extract_token(request, config)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    user = load_user(db, resolve_user_id(token, config))
    request.state.user = user

    viewer: ViewerContext | None = None
    if require_club_admin:
        club_id = request.path_params.get("club_id")
        if not club_id:
            logger.error("Club admin required but route has no club_id path=%s method=%s", path, method)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Club admin role required")
        viewer = _viewer_or_403(db, user.id, club_id)
        if not viewer.is_admin:
            logger.info("Club admin required user=%s club=%s path=%s", user.id, club_id, path)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Club admin role required")
        request.state.viewer = viewer

    request.state.authz = AuthContext(user_id=user.id, require_club_admin=require_club_admin, viewer=viewer)


def _viewer_or_403(db: Session, user_id: str, club_id: str) -> ViewerContext:
    try:
        return build_viewer_context(db, user_id, club_id)
    except MembershipNotFoundError as exc:
        logger.info("Not a club member user=%s club=%s", user_id, club_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a club member") from exc


def viewer_for_club(request: Request, db: Session, club_id: str) -> ViewerContext:
    """
    ViewerContext for the current user in ``club_id``.

    Reuses the one built by enforce_security within the same request; never
    carried across requests.
    """

    existing = getattr(request.state, "viewer", None)
    if isinstance(existing, ViewerContext) and existing.club_id == club_id:
        return existing

    user = get_current_user(request)
    viewer = _viewer_or_403(db, user.id, club_id)
    request.state.viewer = viewer
    return viewer


def get_viewer(club_id: str, request: Request, db: Session = Depends(get_db)) -> ViewerContext:
    """Dependency for routes with a ``club_id`` path parameter."""
    return viewer_for_club(request, db, club_id)

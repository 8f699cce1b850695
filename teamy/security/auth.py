from __future__ import annotations

import logging

import jwt
from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from teamy.models.club import User
from teamy.security.config import SecurityConfig
from teamy.settings import get_settings

logger = logging.getLogger(__name__)


def extract_token(request: Request, config: SecurityConfig) -> str | None:
    """
    Pull the bearer token out of the Authorization header.

    Returns None when the header is absent; raises 400 when it is present but
    not shaped like `<prefix> <token>`.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )

    return token


def resolve_user_id(token: str, config: SecurityConfig, secret: str | None = None) -> str:
    """
    Turn a bearer token into a user id according to `auth.provider`.

    - dummy: the token *is* the user id.
    - jwt: verify an HS256 session token and read its `sub` claim.
    """

    if config.auth.provider == "dummy":
        return token

    secret = secret if secret is not None else get_settings().session_secret
    if not secret:
        raise RuntimeError("TEAMY_SESSION_SECRET must be set when auth.provider is 'jwt'")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[config.auth.jwt_algorithm],
            leeway=config.auth.jwt_leeway_seconds,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.info("Session token expired")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Session token invalid: %s", type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session token") from exc

    return str(payload["sub"])


def load_user(db: Session, user_id: str) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user

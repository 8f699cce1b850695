from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class SecurityConfigError(ValueError):
    """Raised when the security YAML is missing or malformed."""


class AuthConfig(BaseModel):
    # "dummy": bearer token is the user id (local/demo).
    # "jwt": bearer token is an HS256 session token whose `sub` is the user id.
    provider: Literal["dummy", "jwt"] = "dummy"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"
    jwt_algorithm: str = "HS256"
    jwt_leeway_seconds: int = 30


class DefaultRule(BaseModel):
    auth_required: bool = True
    require_club_admin: bool = False


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    require_club_admin: bool | None = None

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    require_club_admin: bool


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/clubs/{club_id}/tests" -> r"^/clubs/[^/]+/tests$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """
    Runtime helper around validated config + route matching.
    """

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        # Prefer exact matches over templates.
        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = [(_path_template_to_regex(r.path), r) for r in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        return EffectiveRule(auth_required=default.auth_required, require_club_admin=default.require_club_admin)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    require_club_admin = default.require_club_admin if rule.require_club_admin is None else rule.require_club_admin
    # Admin checks need a user, so they imply auth even on a public default.
    inferred_auth_required = default.auth_required or require_club_admin

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        require_club_admin=require_club_admin,
    )


def load_security_config(path: Path) -> SecurityConfig:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise SecurityConfigError(f"Security config not found: {path}") from exc

    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}
    if not isinstance(raw, dict) or "security" not in raw:
        raise SecurityConfigError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"] or {})
    return SecurityConfig(model)

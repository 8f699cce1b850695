from __future__ import annotations

from collections.abc import Callable


def require_club_admin() -> Callable:
    """
    Decorator-style alternative to a `require_club_admin` entry in the YAML.

    The decorator does NOT perform the check itself. It attaches metadata that
    the global security dependency reads after routing. The route must have a
    `club_id` path parameter.
    """

    def decorator(fn: Callable) -> Callable:
        setattr(fn, "__security_require_club_admin__", True)
        return fn

    return decorator

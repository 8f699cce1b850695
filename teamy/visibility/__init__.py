"""
Visibility resolution for club content.

This package has no dependency on other teamy packages (teamy.db, teamy.models, etc.).
Build a ViewerContext, attach ScopeRules to items, and ask is_visible() or
can_start_attempt().
"""

from .assignment import (
    Allowed,
    AssignmentWindow,
    AttemptStatus,
    Decision,
    Denied,
    TestGate,
    TestStatus,
    can_start_attempt,
    check_availability,
)
from .context import ViewerContext
from .resolver import (
    CalendarScope,
    ItemKind,
    calendar_event_rules,
    filter_visible,
    is_calendar_event_visible,
    is_visible,
)
from .rules import (
    ClubWide,
    EventTarget,
    Personal,
    RoleTarget,
    ScopeRule,
    TargetRole,
    TeamRule,
    Unresolvable,
    effective_roles,
)

__all__ = [
    "Allowed",
    "AssignmentWindow",
    "AttemptStatus",
    "CalendarScope",
    "ClubWide",
    "Decision",
    "Denied",
    "EventTarget",
    "ItemKind",
    "Personal",
    "RoleTarget",
    "ScopeRule",
    "TargetRole",
    "TeamRule",
    "TestGate",
    "TestStatus",
    "Unresolvable",
    "ViewerContext",
    "calendar_event_rules",
    "can_start_attempt",
    "check_availability",
    "effective_roles",
    "filter_visible",
    "is_calendar_event_visible",
    "is_visible",
]

"""
Translate stored rule rows into ScopeRules.

Each row contributes one rule per populated field, so a row carrying both a
team and an event admits members of either. A row that yields nothing is kept
as Unresolvable so that a broken row hides the item rather than opening it up
(an empty rule list would fall back to the open default for announcements).
"""

from __future__ import annotations

import logging
from typing import Iterable

from teamy.models.content import (
    AnnouncementVisibility,
    CalendarEvent,
    CalendarEventTarget,
    Test,
    TestAssignment,
)
from teamy.visibility import (
    ClubWide,
    EventTarget,
    Personal,
    RoleTarget,
    ScopeRule,
    TargetRole,
    TeamRule,
    Unresolvable,
    is_calendar_event_visible,
)
from teamy.visibility.context import ViewerContext

logger = logging.getLogger(__name__)


def _role_rule(raw: str | None) -> ScopeRule:
    role = TargetRole.parse(raw)
    if role is None:
        logger.warning("Unrecognised target role %r; rule will never match", raw)
        return Unresolvable(f"target_role={raw!r}")
    return RoleTarget(role)


def announcement_rules(rows: Iterable[AnnouncementVisibility]) -> list[ScopeRule]:
    rules: list[ScopeRule] = []
    for row in rows:
        produced: list[ScopeRule] = []
        scope = (row.scope or "").upper()
        if row.target_role:
            produced.append(_role_rule(row.target_role))
        if row.event_id:
            produced.append(EventTarget(row.event_id))
        if scope == "TEAM" and row.team_id:
            produced.append(TeamRule(row.team_id))
        elif scope == "CLUB" and not produced:
            produced.append(ClubWide())
        if not produced:
            produced.append(Unresolvable(f"announcement_visibility={row.id}"))
        rules.extend(produced)
    return rules


def calendar_target_rules(rows: Iterable[CalendarEventTarget]) -> list[ScopeRule]:
    rules: list[ScopeRule] = []
    for row in rows:
        if row.target_role:
            rules.append(_role_rule(row.target_role))
        if row.event_id:
            rules.append(EventTarget(row.event_id))
        if not row.target_role and not row.event_id:
            rules.append(Unresolvable(f"calendar_event_target={row.id}"))
    return rules


def assignment_rules(rows: Iterable[TestAssignment]) -> list[ScopeRule]:
    rules: list[ScopeRule] = []
    for row in rows:
        produced: list[ScopeRule] = []
        if (row.assigned_scope or "").upper() == "CLUB":
            produced.append(ClubWide())
        if row.team_id:
            produced.append(TeamRule(row.team_id))
        if row.target_membership_id:
            produced.append(Personal(row.target_membership_id))
        if row.event_id:
            produced.append(EventTarget(row.event_id))
        if not produced:
            produced.append(Unresolvable(f"test_assignment={row.id}"))
        rules.extend(produced)
    return rules


def rules_for_test(test: Test) -> list[ScopeRule]:
    return assignment_rules(test.assignments)


def calendar_event_visible(viewer: ViewerContext, event: CalendarEvent) -> bool:
    """Resolve a stored calendar event, including its linked test if any."""

    return is_calendar_event_visible(
        viewer,
        event.scope,
        team_id=event.team_id,
        attendee_id=event.attendee_id,
        target_rules=calendar_target_rules(event.targets),
        test_rules=assignment_rules(event.test.assignments) if event.test is not None else None,
    )

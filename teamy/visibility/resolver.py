"""
Visibility resolver.

Decides whether a viewer may see an item given the scope rules attached to it.

Key ideas:
- Rules are OR'ed: one matching rule is enough.
- Admins see everything except personal items that belong to someone else.
- Items without rules fall back to a per-kind default: tests fail closed,
  announcements and calendar events are open to the whole club.
- Missing or malformed rule data never matches and never raises.

This module is pure Python and never touches the database; callers pass in
already-fetched rules and a ViewerContext.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import Callable, Iterable, Sequence, TypeVar

from .context import ViewerContext
from .rules import ClubWide, EventTarget, Personal, RoleTarget, ScopeRule, TeamRule

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemKind(str, Enum):
    ANNOUNCEMENT = "ANNOUNCEMENT"
    CALENDAR_EVENT = "CALENDAR_EVENT"
    TEST = "TEST"


class CalendarScope(str, Enum):
    CLUB = "CLUB"
    TEAM = "TEAM"
    PERSONAL = "PERSONAL"


# Visibility when an item carries no rules at all.
_EMPTY_RULES_DEFAULT: dict[ItemKind, bool] = {
    ItemKind.ANNOUNCEMENT: True,
    ItemKind.CALENDAR_EVENT: True,
    ItemKind.TEST: False,
}


# ---- Rule matching -------------------------------------------------------------------


def rule_matches(viewer: ViewerContext, rule: ScopeRule) -> bool:
    """Return True if a single rule admits the viewer."""

    if isinstance(rule, ClubWide):
        return True
    if isinstance(rule, TeamRule):
        if not rule.team_id:
            return False
        return rule.team_id == viewer.team_id or rule.team_id in viewer.roster_team_ids
    if isinstance(rule, Personal):
        return bool(rule.membership_id) and rule.membership_id == viewer.membership_id
    if isinstance(rule, RoleTarget):
        return rule.role is not None and rule.role in viewer.roles
    if isinstance(rule, EventTarget):
        return bool(rule.event_id) and rule.event_id in viewer.roster_event_ids
    # Unresolvable, or anything we don't know how to read.
    return False


def _is_personal_to_other(
    viewer: ViewerContext,
    rules: Sequence[ScopeRule],
    owner_membership_id: str | None,
) -> bool:
    if owner_membership_id is not None and owner_membership_id != viewer.membership_id:
        return True
    if rules and all(isinstance(r, Personal) for r in rules):
        return not any(r.membership_id == viewer.membership_id for r in rules)
    return False


# ---- Main decision API ---------------------------------------------------------------


def is_visible(
    viewer: ViewerContext,
    rules: Iterable[ScopeRule] | None,
    owner_membership_id: str | None = None,
    kind: ItemKind = ItemKind.ANNOUNCEMENT,
) -> bool:
    """
    Decide if the viewer may see an item.

    Algorithm:
    1. Admins see the item unless it is personal to a different membership
       (owned by someone else, or carrying only other people's Personal rules).
       In that case they are evaluated like everyone else.
    2. No rules -> the default for ``kind``.
    3. Otherwise visible if any rule matches.
    """

    rule_list = list(rules or ())

    if viewer.is_admin and not _is_personal_to_other(viewer, rule_list, owner_membership_id):
        logger.debug("Visibility: admin override membership=%s kind=%s", viewer.membership_id, kind.value)
        return True

    if not rule_list:
        visible = _EMPTY_RULES_DEFAULT.get(kind, False)
        logger.debug(
            "Visibility: no rules membership=%s kind=%s visible=%s", viewer.membership_id, kind.value, visible
        )
        return visible

    for rule in rule_list:
        if rule_matches(viewer, rule):
            logger.debug("Visibility: matched membership=%s kind=%s rule=%r", viewer.membership_id, kind.value, rule)
            return True

    logger.debug(
        "Visibility: no rule matched membership=%s kind=%s rules=%d", viewer.membership_id, kind.value, len(rule_list)
    )
    return False


def filter_visible(
    viewer: ViewerContext,
    items: Iterable[T],
    rules_of: Callable[[T], Iterable[ScopeRule]],
    kind: ItemKind = ItemKind.ANNOUNCEMENT,
    owner_of: Callable[[T], str | None] | None = None,
) -> list[T]:
    """Keep the items the viewer may see, preserving input order."""

    visible: list[T] = []
    for item in items:
        owner = owner_of(item) if owner_of is not None else None
        if is_visible(viewer, rules_of(item), owner_membership_id=owner, kind=kind):
            visible.append(item)
    return visible


# ---- Calendar events -----------------------------------------------------------------


def calendar_event_rules(
    scope: CalendarScope | str | None,
    team_id: str | None = None,
    target_rules: Iterable[ScopeRule] = (),
) -> list[ScopeRule]:
    """
    Rules for a calendar event that is not linked to a test.

    TEAM events are scoped to their team. CLUB events are narrowed by their
    targets, if any. PERSONAL events carry no rules (see is_calendar_event_visible).
    """

    if scope == CalendarScope.TEAM:
        return [TeamRule(team_id)]
    if scope == CalendarScope.CLUB:
        return list(target_rules)
    return []


def is_calendar_event_visible(
    viewer: ViewerContext,
    scope: CalendarScope | str | None,
    *,
    team_id: str | None = None,
    attendee_id: str | None = None,
    target_rules: Iterable[ScopeRule] = (),
    test_rules: Iterable[ScopeRule] | None = None,
) -> bool:
    """
    Decide if the viewer may see a calendar event.

    - PERSONAL: only the attendee, admins included.
    - Linked to a test (``test_rules`` is not None): the test's assignment rules.
    - TEAM / CLUB: rules from calendar_event_rules.
    - Unknown scope: not visible.
    """

    try:
        scope = CalendarScope(scope) if scope is not None else None
    except ValueError:
        logger.debug("Visibility: unknown calendar scope=%r", scope)
        return False

    if scope == CalendarScope.PERSONAL:
        return bool(attendee_id) and attendee_id == viewer.membership_id

    if test_rules is not None:
        return is_visible(viewer, test_rules, kind=ItemKind.TEST)

    if scope is None:
        return False

    return is_visible(viewer, calendar_event_rules(scope, team_id, target_rules), kind=ItemKind.CALENDAR_EVENT)

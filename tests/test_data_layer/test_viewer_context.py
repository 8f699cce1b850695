"""
Tests for building ViewerContexts from memberships and rosters (ORM).
"""
from __future__ import annotations

import pytest
from sqlalchemy import delete

from teamy.models.club import RosterAssignment
from teamy.models.content import Test, TestAssignment
from teamy.services.rules import rules_for_test
from teamy.services.viewer import MembershipNotFoundError, build_viewer_context
from teamy.visibility import EventTarget, ItemKind, TargetRole, TestStatus, is_visible


def test_member_context(db_session, club):
    viewer = build_viewer_context(db_session, "u-member", "club-1")

    assert viewer.membership_id == "m-member"
    assert viewer.club_id == "club-1"
    assert viewer.team_id == "team-a"
    assert viewer.is_admin is False
    assert viewer.roles == frozenset({TargetRole.MEMBER})
    assert viewer.roster_event_ids == frozenset({"evt-1"})
    assert viewer.roster_team_ids == frozenset({"team-a"})


def test_admin_context(db_session, club):
    viewer = build_viewer_context(db_session, "u-admin", "club-1")

    assert viewer.is_admin is True
    assert viewer.team_id is None
    assert viewer.roles == frozenset({TargetRole.COACH})
    assert viewer.roster_event_ids == frozenset()


def test_secondary_roles_are_included(db_session, club):
    viewer = build_viewer_context(db_session, "u-captain", "club-1")
    assert viewer.roles == frozenset({TargetRole.MEMBER, TargetRole.CAPTAIN})


def test_roster_teams_without_primary_team(db_session, club):
    viewer = build_viewer_context(db_session, "u-floater", "club-1")

    assert viewer.team_id is None
    assert viewer.roster_team_ids == frozenset({"team-b"})
    assert viewer.roster_event_ids == frozenset({"evt-2"})


def test_roster_from_other_clubs_is_ignored(db_session, club):
    # u-floater also gets rostered on a team belonging to club-2.
    db_session.add(RosterAssignment(membership_id="m-floater", team_id="team-x", event_id="evt-3"))
    db_session.commit()

    viewer = build_viewer_context(db_session, "u-floater", "club-1")
    assert "team-x" not in viewer.roster_team_ids
    assert "evt-3" not in viewer.roster_event_ids


def test_missing_membership_raises(db_session, club):
    with pytest.raises(MembershipNotFoundError) as excinfo:
        build_viewer_context(db_session, "u-outsider", "club-1")
    assert excinfo.value.user_id == "u-outsider"
    assert excinfo.value.club_id == "club-1"


def test_roster_change_is_seen_on_next_build(db_session, club):
    test = Test(id="t-anatomy", club_id="club-1", name="Anatomy invitational", status=TestStatus.PUBLISHED)
    test.assignments.append(TestAssignment(assigned_scope="TEAM", event_id="evt-1"))
    db_session.add(test)
    db_session.commit()
    assert rules_for_test(test) == [EventTarget("evt-1")]

    viewer = build_viewer_context(db_session, "u-floater", "club-1")
    assert is_visible(viewer, rules_for_test(test), kind=ItemKind.TEST) is False

    # Roster m-floater for event 1 on their own team B.
    db_session.add(RosterAssignment(membership_id="m-floater", team_id="team-b", event_id="evt-1"))
    db_session.commit()

    viewer = build_viewer_context(db_session, "u-floater", "club-1")
    assert is_visible(viewer, rules_for_test(test), kind=ItemKind.TEST) is True

    db_session.execute(
        delete(RosterAssignment).where(
            RosterAssignment.membership_id == "m-floater", RosterAssignment.event_id == "evt-1"
        )
    )
    db_session.commit()

    viewer = build_viewer_context(db_session, "u-floater", "club-1")
    assert is_visible(viewer, rules_for_test(test), kind=ItemKind.TEST) is False


def test_to_dict_is_sorted_and_plain(db_session, club):
    data = build_viewer_context(db_session, "u-captain", "club-1").to_dict()

    assert data["roles"] == ["CAPTAIN", "MEMBER"]
    assert data["roster_event_ids"] == []
    assert data["team_id"] == "team-a"

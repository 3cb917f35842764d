# tests/test_authorization.py — Decision table and pure evaluation
import itertools

import pytest

from authorization import (
    Action, Decision, RelationshipFacts, Rule, DECISION_TABLE,
    decide, evaluate, can_view, can_delete_comment, task_facts, team_facts,
)
from models import UserRole

ALL_FACTS = [
    RelationshipFacts(*combo) for combo in itertools.product([False, True], repeat=4)
]
TASK_KEYS = ["title", "description", "priority", "due_date", "assignees", "team_id"]


def test_admin_always_allowed():
    for facts in ALL_FACTS:
        for action in Action:
            assert decide("admin", facts, {"title": "x"}, action) == Decision.ALLOW


@pytest.mark.parametrize("key", TASK_KEYS)
def test_user_denied_for_any_non_status_key(key):
    for facts in ALL_FACTS:
        assert decide("user", facts, {key: "x"}) == Decision.DENY
        assert decide("user", facts, {key: "x", "status": "Done"}) == Decision.DENY


def test_user_status_only_needs_relationship():
    delta = {"status": "Done"}
    assert decide("user", RelationshipFacts(), delta) == Decision.DENY
    assert decide("user", RelationshipFacts(is_creator=True), delta) == Decision.DENY
    assert decide("user", RelationshipFacts(is_team_manager=True), delta) == Decision.DENY
    assert decide("user", RelationshipFacts(is_current_assignee=True), delta) == Decision.ALLOW
    assert decide("user", RelationshipFacts(is_team_member=True), delta) == Decision.ALLOW


def test_user_empty_delta_denied():
    assert decide("user", RelationshipFacts(is_current_assignee=True), {}) == Decision.DENY


def test_user_never_deletes():
    for facts in ALL_FACTS:
        assert decide("user", facts, {}, Action.DELETE) == Decision.DENY


def test_manager_needs_creator_or_team_manager():
    delta = {"title": "new"}
    assert decide("manager", RelationshipFacts(), delta) == Decision.DENY
    assert decide("manager", RelationshipFacts(is_current_assignee=True, is_team_member=True), delta) == Decision.DENY
    assert decide("manager", RelationshipFacts(is_creator=True), delta) == Decision.ALLOW
    assert decide("manager", RelationshipFacts(is_team_manager=True), delta) == Decision.ALLOW


def test_manager_delete_requires_creator():
    assert decide("manager", RelationshipFacts(is_team_manager=True), {}, Action.DELETE) == Decision.DENY
    assert decide("manager", RelationshipFacts(is_creator=True), {}, Action.DELETE) == Decision.ALLOW


def test_unknown_role_denied():
    assert decide("superuser", RelationshipFacts(is_creator=True), {"status": "Done"}) == Decision.DENY


def test_role_enum_accepted():
    assert decide(UserRole.MANAGER, RelationshipFacts(is_creator=True), {"title": "t"}) == Decision.ALLOW


def test_custom_table_is_used():
    table = {(UserRole.ADMIN, Action.UPDATE): Rule(allow=False)}
    assert decide("admin", RelationshipFacts(), {"title": "t"}, table=table) == Decision.DENY
    # Missing entries fall back to deny
    assert decide("manager", RelationshipFacts(is_creator=True), {"title": "t"}, table=table) == Decision.DENY


def test_evaluate_field_restriction():
    rule = Rule(fields=frozenset({"status"}))
    assert evaluate(rule, RelationshipFacts(), ["status"]) == Decision.ALLOW
    assert evaluate(rule, RelationshipFacts(), ["status", "title"]) == Decision.DENY


def test_table_covers_every_role_and_action():
    for role in UserRole:
        for action in Action:
            assert (role, action) in DECISION_TABLE


def test_fact_builders():
    facts = task_facts("u1", "u2", ["u1"], ["u3"], ["u1"])
    assert facts == RelationshipFacts(
        is_creator=False, is_current_assignee=True, is_team_member=False, is_team_manager=True,
    )
    assert team_facts("u1", "u1", ["u1"], []).is_team_member
    assert not team_facts("u1", "u1", ["u1"], []).is_current_assignee


def test_can_view():
    assert can_view("admin", RelationshipFacts())
    assert not can_view("manager", RelationshipFacts())
    assert can_view("user", RelationshipFacts(is_team_member=True))


def test_can_delete_comment():
    assert can_delete_comment("user", is_author=True)
    assert not can_delete_comment("user", is_author=False)
    assert can_delete_comment("manager", is_author=False)
    assert can_delete_comment("admin", is_author=False)

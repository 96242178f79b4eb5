# desk_core/tests/test_create_transition.py

from desk_core.tests.helpers import edge, node
from desk_core.workflows.create_transition import (
    can_create_ticket,
    find_create_edge,
    initial_status,
    roles_allowed_to_create,
)
from desk_core.workflows.defaults import default_definition


def test_default_graph_lets_every_role_create():
    definition = default_definition()
    assert find_create_edge(definition).id == "e0-create"
    assert roles_allowed_to_create(definition) == {"END_USER", "SUPPORT_STAFF", "SUPPORT_MANAGER", "ADMIN"}
    assert initial_status(definition) == "NEW"


def test_flagged_edge_wins_over_initial_node_edge():
    definition = {
        "nodes": [node("start", "Start", initial=True), node("triage", "Triage"), node("open", "Open")],
        "edges": [
            edge("a", "start", "triage", ["ADMIN"]),
            edge("b", "start", "open", ["END_USER"], create=True),
        ],
    }
    assert find_create_edge(definition).id == "b"
    assert initial_status(definition) == "OPEN"


def test_initial_node_edge_used_without_flag():
    definition = {
        "nodes": [node("begin", "Begin", initial=True), node("waiting", "Waiting For Agent")],
        "edges": [edge("a", "begin", "waiting", ["customer"])],
    }
    assert find_create_edge(definition).id == "a"
    assert roles_allowed_to_create(definition) == {"END_USER"}
    assert initial_status(definition) == "WAITING_FOR_AGENT"


def test_legacy_create_source_id():
    definition = {
        "nodes": [node("create"), node("new", "New")],
        "edges": [edge("x", "create", "new", ["STAFF"])],
    }
    assert find_create_edge(definition).id == "x"
    assert can_create_ticket(definition, ["agent"]) is True
    assert can_create_ticket(definition, ["END_USER"]) is False


def test_empty_roles_deny_everyone():
    definition = {
        "nodes": [node("start", initial=True), node("new", "New")],
        "edges": [edge("c", "start", "new", [], create=True)],
    }
    assert roles_allowed_to_create(definition) == set()
    assert can_create_ticket(definition, ["ADMIN"]) is False


def test_no_create_edge():
    definition = {"nodes": [node("new", "New"), node("open", "Open")], "edges": [edge("e", "new", "open", ["ADMIN"])]}
    assert find_create_edge(definition) is None
    assert can_create_ticket(definition, ["ADMIN"]) is False
    assert initial_status(definition) == "NEW"


def test_target_without_node_falls_back_to_target_id():
    definition = {
        "nodes": [node("start", initial=True)],
        "edges": [edge("c", "start", "in review", ["ADMIN"], create=True)],
    }
    assert initial_status(definition) == "IN_REVIEW"

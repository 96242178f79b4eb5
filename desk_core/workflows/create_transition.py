# desk_core/workflows/create_transition.py
"""
Which edge of a workflow graph creates a ticket, who may take it, and
which status a freshly created ticket lands in.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Set

from desk_core.workflows.graph import TransitionEdge, WorkflowGraph, graph_from
from desk_core.workflows.roles import normalize_role, normalize_roles
from desk_core.workflows.statuses import canonicalize_status


# Source id used by graphs authored before nodes carried isInitial
LEGACY_CREATE_SOURCE = "create"

FALLBACK_INITIAL_STATUS = "NEW"


def find_create_edge(definition_or_graph: Any) -> Optional[TransitionEdge]:
    """
    Resolve the creation edge.

    Order:
      1) edge flagged isCreateTransition
      2) edge leaving a node flagged isInitial
      3) edge leaving a node with the legacy id "create"

    Returns None when nothing resolves.
    """
    graph = graph_from(definition_or_graph)

    for edge in graph.edges:
        if edge.is_create_transition:
            return edge

    initial_ids = {n.id for n in graph.initial_nodes()}
    if initial_ids:
        for edge in graph.edges:
            if edge.source in initial_ids:
                return edge

    for edge in graph.edges:
        if edge.source == LEGACY_CREATE_SOURCE:
            return edge

    return None


def roles_allowed_to_create(definition_or_graph: Any) -> Set[str]:
    """
    Roles on the create edge. Empty means nobody may create, never "everyone".
    """
    edge = find_create_edge(definition_or_graph)
    if edge is None:
        return set()
    return normalize_roles(edge.roles)


def can_create_ticket(definition_or_graph: Any, roles: Iterable[str]) -> bool:
    allowed = roles_allowed_to_create(definition_or_graph)
    if not allowed:
        return False
    return bool(allowed & {normalize_role(r) for r in roles or []})


def initial_status(definition_or_graph: Any) -> str:
    """
    Status a new ticket starts in: the create edge target's label,
    canonicalized. Falls back to the target id, then NEW.
    """
    graph: WorkflowGraph = graph_from(definition_or_graph)
    edge = find_create_edge(graph)
    if edge is None or not edge.target:
        return FALLBACK_INITIAL_STATUS

    node = graph.node(edge.target)
    if node is not None and node.label:
        return canonicalize_status(node.label)

    return canonicalize_status(edge.target) or FALLBACK_INITIAL_STATUS


__all__ = [
    "LEGACY_CREATE_SOURCE",
    "FALLBACK_INITIAL_STATUS",
    "find_create_edge",
    "roles_allowed_to_create",
    "can_create_ticket",
    "initial_status",
]

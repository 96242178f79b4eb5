# desk_core/workflows/__init__.py
from __future__ import annotations

from desk_core.workflows.create_transition import (
    can_create_ticket,
    find_create_edge,
    initial_status,
    roles_allowed_to_create,
)
from desk_core.workflows.graph import StatusNode, TransitionEdge, WorkflowGraph, graph_from
from desk_core.workflows.roles import normalize_role, normalize_roles
from desk_core.workflows.statuses import (
    StatusBuckets,
    StatusRef,
    bucketize,
    canonicalize_status,
    classify_status,
    compose_status_reference,
    resolve_status_reference,
)
from desk_core.workflows.validator import (
    TransitionDecision,
    WorkflowErrorKind,
    available_transitions,
    can_transition,
    resolve_effective_workflow,
    resolve_status_node,
)


__all__ = [
    "StatusNode",
    "TransitionEdge",
    "WorkflowGraph",
    "graph_from",
    "normalize_role",
    "normalize_roles",
    "StatusRef",
    "StatusBuckets",
    "canonicalize_status",
    "resolve_status_reference",
    "compose_status_reference",
    "bucketize",
    "classify_status",
    "find_create_edge",
    "roles_allowed_to_create",
    "can_create_ticket",
    "initial_status",
    "WorkflowErrorKind",
    "TransitionDecision",
    "resolve_effective_workflow",
    "resolve_status_node",
    "can_transition",
    "available_transitions",
]

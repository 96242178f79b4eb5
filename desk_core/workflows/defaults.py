# desk_core/workflows/defaults.py
"""
Seed content for the per-tenant system default workflow.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

from desk_core.workflows.statuses import DEFAULT_DONE_STATUSES, DEFAULT_WORKING_STATUSES


SYSTEM_DEFAULT_NAME = "Default Workflow"
SYSTEM_DEFAULT_DESCRIPTION = "System default ticket workflow"

STAFF_ROLES = ["SUPPORT_STAFF", "SUPPORT_MANAGER", "ADMIN"]
ALL_ROLES = ["END_USER", "SUPPORT_STAFF", "SUPPORT_MANAGER", "ADMIN"]

# Statuses offered when no workflow supplies any
SYSTEM_STATUSES: List[str] = [
    "NEW",
    "OPEN",
    "IN_PROGRESS",
    "ON_HOLD",
    "RESOLVED",
    "CLOSED",
    "REOPENED",
]


def _node(node_id: str, label: str, color: str, x: int, y: int, initial: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {"label": label, "color": color}
    if initial:
        data["isInitial"] = True
    return {
        "id": node_id,
        "type": "statusNode",
        "position": {"x": x, "y": y},
        "data": data,
    }


def _edge(edge_id: str, source: str, target: str, label: str, roles: List[str], create: bool = False) -> Dict[str, Any]:
    return {
        "id": edge_id,
        "source": source,
        "target": target,
        "label": label,
        "data": {
            "roles": list(roles),
            "conditions": [],
            "actions": [],
            "isCreateTransition": create,
        },
    }


_DEFAULT_DEFINITION: Dict[str, Any] = {
    "nodes": [
        _node("create", "Create Ticket", "#4caf50", 100, 50, initial=True),
        _node("new", "New", "#2196f3", 100, 200),
        _node("open", "Open", "#ff9800", 300, 200),
        _node("in_progress", "In Progress", "#9c27b0", 500, 200),
        _node("resolved", "Resolved", "#4caf50", 700, 200),
        _node("closed", "Closed", "#607d8b", 900, 200),
    ],
    "edges": [
        _edge("e0-create", "create", "new", "Create Ticket", ALL_ROLES, create=True),
        _edge("e1", "new", "open", "Open", STAFF_ROLES),
        _edge("e2", "open", "in_progress", "Start Work", STAFF_ROLES),
        _edge("e3", "in_progress", "resolved", "Resolve", STAFF_ROLES),
        _edge("e4", "resolved", "closed", "Close", STAFF_ROLES),
        _edge("e5", "closed", "open", "Reopen", ALL_ROLES),
    ],
}


def default_definition() -> Dict[str, Any]:
    return copy.deepcopy(_DEFAULT_DEFINITION)


def default_status_lists() -> Dict[str, List[str]]:
    return {
        "working_statuses": list(DEFAULT_WORKING_STATUSES),
        "done_statuses": list(DEFAULT_DONE_STATUSES),
    }


__all__ = [
    "SYSTEM_DEFAULT_NAME",
    "SYSTEM_DEFAULT_DESCRIPTION",
    "SYSTEM_STATUSES",
    "STAFF_ROLES",
    "ALL_ROLES",
    "default_definition",
    "default_status_lists",
]

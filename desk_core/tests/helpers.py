# desk_core/tests/helpers.py
"""Small builders for workflow definition JSON used across the tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def node(node_id: str, label: Optional[str] = None, initial: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {"label": label or node_id}
    if initial:
        data["isInitial"] = True
    return {"id": node_id, "type": "statusNode", "data": data}


def edge(
    edge_id: str,
    source: str,
    target: str,
    roles: List[str],
    *,
    conditions: Optional[List[Any]] = None,
    actions: Optional[List[Any]] = None,
    create: bool = False,
    label: str = "",
) -> Dict[str, Any]:
    return {
        "id": edge_id,
        "source": source,
        "target": target,
        "label": label,
        "data": {
            "roles": list(roles),
            "conditions": list(conditions or []),
            "actions": list(actions or []),
            "isCreateTransition": create,
        },
    }

# desk_core/workflows/graph.py
"""
Typed view over a workflow definition graph.

The persisted definition is the diagram JSON produced by the workflow editor:

    {
        "nodes": [{"id": "open", "type": "statusNode",
                   "data": {"label": "Open", "color": "#2196f3"}}],
        "edges": [{"id": "e1", "source": "new", "target": "open", "label": "Open",
                   "data": {"roles": ["ADMIN"], "conditions": [], "actions": [],
                            "isCreateTransition": false}}]
    }

This module only reads that shape. It never writes back and keeps no state
beyond the parsed tuples, so the same graph value can be shared freely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class StatusNode:
    id: str
    label: str
    color: str = ""
    is_initial: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "StatusNode":
        data = raw.get("data") or {}
        node_id = str(raw.get("id") or "")
        label = data.get("label") or node_id
        return cls(
            id=node_id,
            label=str(label),
            color=str(data.get("color") or ""),
            is_initial=bool(data.get("isInitial", False)),
        )


@dataclass(frozen=True)
class TransitionEdge:
    id: str
    source: str
    target: str
    label: str = ""
    roles: frozenset = field(default_factory=frozenset)
    conditions: Tuple[Any, ...] = ()
    actions: Tuple[Any, ...] = ()
    is_create_transition: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TransitionEdge":
        data = raw.get("data") or {}
        label = raw.get("label") or data.get("label") or ""
        return cls(
            id=str(raw.get("id") or ""),
            source=str(raw.get("source") or ""),
            target=str(raw.get("target") or ""),
            label=str(label),
            roles=frozenset(str(r) for r in (data.get("roles") or []) if r),
            conditions=tuple(data.get("conditions") or ()),
            actions=tuple(data.get("actions") or ()),
            is_create_transition=bool(data.get("isCreateTransition", False)),
        )


@dataclass(frozen=True)
class WorkflowGraph:
    nodes: Tuple[StatusNode, ...] = ()
    edges: Tuple[TransitionEdge, ...] = ()

    @classmethod
    def from_definition(cls, definition: Optional[Mapping[str, Any]]) -> "WorkflowGraph":
        """
        Parse a persisted definition. Missing or malformed sections yield an
        empty graph rather than an error; a ticket bound to a broken graph then
        surfaces as UnknownStatus at validation time.
        """
        if not isinstance(definition, Mapping):
            return cls()

        raw_nodes = definition.get("nodes") or []
        raw_edges = definition.get("edges") or []

        nodes = tuple(
            StatusNode.from_dict(n) for n in raw_nodes if isinstance(n, Mapping) and n.get("id")
        )
        edges = tuple(
            TransitionEdge.from_dict(e)
            for e in raw_edges
            if isinstance(e, Mapping) and e.get("source") and e.get("target")
        )
        return cls(nodes=nodes, edges=edges)

    # -----------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------
    def node(self, node_id: str) -> Optional[StatusNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def initial_nodes(self) -> List[StatusNode]:
        return [n for n in self.nodes if n.is_initial]

    def status_nodes(self) -> List[StatusNode]:
        """Nodes a ticket can actually sit in (the creation pseudo-state excluded)."""
        return [n for n in self.nodes if not n.is_initial]

    def edges_from(self, node_id: str) -> List[TransitionEdge]:
        return [e for e in self.edges if e.source == node_id]

    def edges_between(self, source_id: str, target_id: str) -> List[TransitionEdge]:
        return [e for e in self.edges if e.source == source_id and e.target == target_id]

    def label_for(self, node_id: str) -> str:
        n = self.node(node_id)
        return n.label if n else node_id

    def status_labels(self) -> List[str]:
        return [n.label for n in self.status_nodes()]

    def is_empty(self) -> bool:
        return not self.nodes and not self.edges


def graph_from(definition_or_graph: Any) -> WorkflowGraph:
    if isinstance(definition_or_graph, WorkflowGraph):
        return definition_or_graph
    return WorkflowGraph.from_definition(definition_or_graph)


def definition_summary(definition: Optional[Mapping[str, Any]]) -> Dict[str, int]:
    g = WorkflowGraph.from_definition(definition)
    return {"nodes": len(g.nodes), "edges": len(g.edges)}


__all__ = [
    "StatusNode",
    "TransitionEdge",
    "WorkflowGraph",
    "graph_from",
    "definition_summary",
]

# desk_core/workflows/validator.py
"""
Transition validator.

Decides whether a ticket may move from its current status to a target status
under the workflow bound to it. Validation never has side effects, so it is
safe to call speculatively (e.g. to list the transitions a user can take).

Results are TransitionDecision values, never exceptions. The service layer
turns a refused decision into the matching API error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from desk_core.workflows.conditions import (
    ConditionEvaluator,
    evaluate_conditions,
    ticket_value,
)
from desk_core.workflows.graph import StatusNode, TransitionEdge, WorkflowGraph, graph_from
from desk_core.workflows.roles import normalize_roles
from desk_core.workflows.snapshots import capture_snapshot
from desk_core.workflows.statuses import canonicalize_status, resolve_status_reference

logger = logging.getLogger(__name__)


class WorkflowErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_STATUS = "UNKNOWN_STATUS"
    NO_SUCH_TRANSITION = "NO_SUCH_TRANSITION"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    CONDITION_NOT_MET = "CONDITION_NOT_MET"


SOURCE_SNAPSHOT = "snapshot"
SOURCE_ACTIVE = "active"
SOURCE_SYSTEM_DEFAULT = "system_default"


@dataclass(frozen=True)
class EffectiveWorkflow:
    """The workflow a ticket is judged against and where it came from."""

    source: str
    payload: Dict[str, Any]
    graph: WorkflowGraph

    @property
    def workflow_id(self) -> Optional[str]:
        return self.payload.get("id")

    @property
    def version(self) -> Optional[int]:
        return self.payload.get("version")


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    kind: Optional[WorkflowErrorKind] = None
    reason: str = ""
    edge: Optional[TransitionEdge] = None
    source_node: Optional[StatusNode] = None
    target_node: Optional[StatusNode] = None
    workflow: Optional[EffectiveWorkflow] = field(default=None, compare=False)

    @property
    def target_status(self) -> str:
        """Status value to persist when the decision is allowed."""
        if self.target_node is None:
            return ""
        return canonicalize_status(self.target_node.label or self.target_node.id)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "code": self.kind.value if self.kind else None,
            "reason": self.reason,
            "edgeId": self.edge.id if self.edge else None,
        }


def _payload(workflow: Any) -> Optional[Dict[str, Any]]:
    if workflow is None:
        return None
    return capture_snapshot(workflow)


# ===============================================================
# Workflow resolution
# ===============================================================

def resolve_effective_workflow(
    ticket: Any,
    active_workflow: Any = None,
    system_default_workflow: Any = None,
) -> Optional[EffectiveWorkflow]:
    """
    Three-tier fallback:
      1) the ticket's own snapshot
      2) the tenant's live active workflow
      3) the tenant's system default
    """
    snapshot = ticket_value(ticket, "workflow_snapshot", "workflowSnapshot")
    if isinstance(snapshot, Mapping) and snapshot:
        payload = dict(snapshot)
        return EffectiveWorkflow(
            source=SOURCE_SNAPSHOT,
            payload=payload,
            graph=graph_from(payload.get("definition")),
        )

    for source, wf in (
        (SOURCE_ACTIVE, active_workflow),
        (SOURCE_SYSTEM_DEFAULT, system_default_workflow),
    ):
        payload = _payload(wf)
        if payload is not None:
            return EffectiveWorkflow(
                source=source,
                payload=payload,
                graph=graph_from(payload.get("definition")),
            )

    return None


def resolve_status_node(
    definition_or_graph: Any,
    status: Any,
    workflow_id: Any = None,
) -> Optional[StatusNode]:
    """
    Match a status string against node ids and labels, case and separator
    insensitive. The creation pseudo-node is never a match.

    A composite reference scoped to a workflow other than `workflow_id`
    never matches.
    """
    graph = graph_from(definition_or_graph)
    ref = resolve_status_reference(status)
    if ref.workflow_id is not None and workflow_id is not None:
        if str(ref.workflow_id).lower() != str(workflow_id).lower():
            return None
    wanted = canonicalize_status(ref.status_name)
    if not wanted:
        return None

    for node in graph.status_nodes():
        if canonicalize_status(node.id) == wanted or canonicalize_status(node.label) == wanted:
            return node
    return None


# ===============================================================
# Validation
# ===============================================================

def _refuse(kind: WorkflowErrorKind, reason: str, **kwargs: Any) -> TransitionDecision:
    return TransitionDecision(allowed=False, kind=kind, reason=reason, **kwargs)


def check_transition(
    workflow: EffectiveWorkflow,
    ticket: Any,
    target_status: Any,
    roles: Iterable[str],
    *,
    context: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[ConditionEvaluator] = None,
) -> TransitionDecision:
    """Validate against an already-resolved workflow."""
    graph = workflow.graph
    current = ticket_value(ticket, "status")

    source = resolve_status_node(graph, current, workflow.workflow_id)
    if source is None:
        logger.warning(
            "Ticket status %r does not resolve in workflow %s (v%s)",
            current,
            workflow.workflow_id,
            workflow.version,
        )
        return _refuse(
            WorkflowErrorKind.UNKNOWN_STATUS,
            f"Current status '{current}' is not part of this workflow",
            workflow=workflow,
        )

    target = resolve_status_node(graph, target_status, workflow.workflow_id)
    if target is None:
        logger.warning(
            "Target status %r does not resolve in workflow %s (v%s)",
            target_status,
            workflow.workflow_id,
            workflow.version,
        )
        return _refuse(
            WorkflowErrorKind.UNKNOWN_STATUS,
            f"Status '{target_status}' is not part of this workflow",
            source_node=source,
            workflow=workflow,
        )

    edges = graph.edges_between(source.id, target.id)
    if not edges:
        logger.info("No transition %s -> %s in workflow %s", source.id, target.id, workflow.workflow_id)
        return _refuse(
            WorkflowErrorKind.NO_SUCH_TRANSITION,
            f"Transition from {source.label} to {target.label} is not permitted",
            source_node=source,
            target_node=target,
            workflow=workflow,
        )

    actor_roles = normalize_roles(roles)
    permitted = [e for e in edges if normalize_roles(e.roles) & actor_roles]
    if not permitted:
        logger.info(
            "Roles %s may not take %s -> %s in workflow %s",
            sorted(actor_roles),
            source.id,
            target.id,
            workflow.workflow_id,
        )
        return _refuse(
            WorkflowErrorKind.ROLE_NOT_PERMITTED,
            f"Your role cannot move this ticket from {source.label} to {target.label}",
            edge=edges[0],
            source_node=source,
            target_node=target,
            workflow=workflow,
        )

    first_failure = None
    for edge in permitted:
        result = evaluate_conditions(edge.conditions, ticket, context, evaluator)
        if result.passed:
            return TransitionDecision(
                allowed=True,
                edge=edge,
                source_node=source,
                target_node=target,
                workflow=workflow,
            )
        if first_failure is None:
            first_failure = (edge, result)

    edge, result = first_failure
    logger.info("Condition blocked %s -> %s: %s", source.id, target.id, result.reason)
    return _refuse(
        WorkflowErrorKind.CONDITION_NOT_MET,
        result.reason,
        edge=edge,
        source_node=source,
        target_node=target,
        workflow=workflow,
    )


def can_transition(
    ticket: Any,
    target_status: Any,
    roles: Iterable[str],
    *,
    active_workflow: Any = None,
    system_default_workflow: Any = None,
    context: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[ConditionEvaluator] = None,
) -> TransitionDecision:
    workflow = resolve_effective_workflow(ticket, active_workflow, system_default_workflow)
    if workflow is None:
        return _refuse(WorkflowErrorKind.NOT_FOUND, "No workflow is available for this ticket")
    return check_transition(
        workflow,
        ticket,
        target_status,
        roles,
        context=context,
        evaluator=evaluator,
    )


def available_transitions(
    ticket: Any,
    roles: Iterable[str],
    *,
    active_workflow: Any = None,
    system_default_workflow: Any = None,
    context: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[ConditionEvaluator] = None,
) -> List[Dict[str, Any]]:
    """
    Every edge leaving the ticket's current node, flagged with whether the
    roles may take it. Condition failures are reported per edge rather than
    filtered out, so a UI can show why an option is disabled.
    """
    workflow = resolve_effective_workflow(ticket, active_workflow, system_default_workflow)
    if workflow is None:
        return []

    graph = workflow.graph
    source = resolve_status_node(graph, ticket_value(ticket, "status"), workflow.workflow_id)
    if source is None:
        return []

    actor_roles = normalize_roles(roles)
    out: List[Dict[str, Any]] = []
    for edge in graph.edges_from(source.id):
        target = graph.node(edge.target)
        if edge.is_create_transition or target is None or target.is_initial:
            continue
        permitted = bool(normalize_roles(edge.roles) & actor_roles)
        result = evaluate_conditions(edge.conditions, ticket, context, evaluator)
        out.append(
            {
                "edgeId": edge.id,
                "label": edge.label or target.label,
                "target": target.id,
                "toStatus": canonicalize_status(target.label or target.id),
                "roles": sorted(edge.roles),
                "conditions": list(edge.conditions),
                "canExecute": permitted,
                "conditionsMet": result.passed,
                "blockedReason": result.reason,
            }
        )
    return out


__all__ = [
    "WorkflowErrorKind",
    "EffectiveWorkflow",
    "TransitionDecision",
    "SOURCE_SNAPSHOT",
    "SOURCE_ACTIVE",
    "SOURCE_SYSTEM_DEFAULT",
    "resolve_effective_workflow",
    "resolve_status_node",
    "check_transition",
    "can_transition",
    "available_transitions",
]

# desk_core/services/workflow_service.py
"""
Authoritative ticket workflow service.

Ticket creation and every status change MUST go through this service.
Never update status directly in views or serializers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from desk_core.models import Tenant, Ticket, UserRole, WorkflowEvent
from desk_core.signals import ticket_transitioned
from desk_core.workflows import create_transition as create_rules
from desk_core.workflows.actions import dispatch_actions
from desk_core.workflows.roles import KNOWN_ROLES, normalize_roles
from desk_core.workflows.snapshots import capture_snapshot
from desk_core.workflows.statuses import canonicalize_status, effective_status_lists
from desk_core.workflows.store import find_active_workflow, find_system_default_workflow
from desk_core.workflows.validator import (
    SOURCE_SNAPSHOT,
    TransitionDecision,
    WorkflowErrorKind,
    available_transitions,
    can_transition,
    resolve_effective_workflow,
    resolve_status_node,
)

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
TICKET_NUMBER_PREFIX = "TKT"


# ===============================================================
# Helpers
# ===============================================================

def get_user_roles(user, tenant) -> set[str]:
    """
    Effective roles for a user in a tenant. Superusers act as ADMIN.
    Roles granted without a tenant apply everywhere.
    """
    if not user or not user.is_authenticated:
        return set()

    if user.is_superuser:
        return {"ADMIN"}

    raw = UserRole.objects.filter(user=user).filter(
        Q(tenant=tenant) | Q(tenant__isnull=True)
    ).values_list("role", flat=True)
    return normalize_roles(raw)


def primary_role(roles: Iterable[str]) -> str:
    rs = normalize_roles(roles)
    for r in KNOWN_ROLES:
        if r in rs:
            return r
    return sorted(rs)[0] if rs else ""


def next_ticket_number(tenant: Tenant) -> str:
    n = Ticket.objects.filter(tenant=tenant).count() + 1
    while True:
        number = f"{TICKET_NUMBER_PREFIX}-{n:06d}"
        if not Ticket.objects.filter(tenant=tenant, ticket_number=number).exists():
            return number
        n += 1


def raise_for_decision(decision: TransitionDecision) -> None:
    """Map a refused decision onto the API error for it."""
    if decision.allowed:
        return

    kind = decision.kind
    if kind == WorkflowErrorKind.NOT_FOUND:
        raise NotFound(decision.reason)
    if kind == WorkflowErrorKind.ROLE_NOT_PERMITTED:
        raise PermissionDenied(decision.reason)
    raise ValidationError({"status": decision.reason, "code": kind.value if kind else None})


def _resolution_workflows(ticket: Ticket):
    """Live workflows only matter when the ticket carries no snapshot."""
    if ticket.workflow_snapshot:
        return None, None
    return find_active_workflow(ticket.tenant_id), find_system_default_workflow(ticket.tenant_id)


# ===============================================================
# Creation
# ===============================================================

def creation_eligibility(tenant, user, roles: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    actor_roles = normalize_roles(roles) if roles is not None else get_user_roles(user, tenant)
    active = find_active_workflow(tenant)
    if active is None:
        return {
            "canCreate": False,
            "workflowId": None,
            "allowedRoles": [],
            "roles": sorted(actor_roles),
            "initialStatus": None,
        }

    allowed = create_rules.roles_allowed_to_create(active.definition)
    return {
        "canCreate": bool(allowed & actor_roles),
        "workflowId": str(active.pk),
        "allowedRoles": sorted(allowed),
        "roles": sorted(actor_roles),
        "initialStatus": create_rules.initial_status(active.definition),
    }


@transaction.atomic
def create_ticket(
    *,
    tenant: Tenant,
    user,
    title: str,
    description: str = "",
    priority: str = "MEDIUM",
    due_date=None,
    custom_fields: Optional[Dict[str, Any]] = None,
    roles: Optional[Iterable[str]] = None,
) -> Ticket:
    """
    Create a ticket through the active workflow's create edge and freeze the
    workflow onto it.
    """
    active = find_active_workflow(tenant)
    if active is None:
        raise ValidationError({"workflow": "No active workflow is configured for this tenant."})

    actor_roles = normalize_roles(roles) if roles is not None else get_user_roles(user, tenant)
    edge = create_rules.find_create_edge(active.definition)
    if not create_rules.can_create_ticket(active.definition, actor_roles):
        logger.info("Roles %s may not create tickets under workflow %s", sorted(actor_roles), active.pk)
        raise PermissionDenied("Your role is not allowed to create tickets in the current workflow.")

    # serialize numbering per tenant
    Tenant.objects.select_for_update().filter(pk=tenant.pk).first()

    snapshot = capture_snapshot(active)
    status = create_rules.initial_status(active.definition)

    ticket = Ticket.objects.create(
        tenant=tenant,
        ticket_number=next_ticket_number(tenant),
        title=title,
        description=description or "",
        priority=str(priority or "MEDIUM").upper(),
        status=status,
        requester=user,
        due_date=due_date,
        custom_fields=dict(custom_fields or {}),
        workflow=active,
        workflow_snapshot=snapshot,
        workflow_version=active.version,
    )

    WorkflowEvent.objects.create(
        event_type=WorkflowEvent.CREATED,
        ticket=ticket,
        tenant=tenant,
        workflow=active,
        workflow_version=active.version,
        edge_id=edge.id if edge else "",
        from_status="",
        to_status=status,
        performed_by=user,
        role=primary_role(actor_roles),
    )

    if edge is not None:
        dispatch_actions(
            edge,
            ticket,
            {
                "user": user,
                "workflow_id": active.pk,
                "workflow_version": active.version,
                "to_status": status,
                "done_statuses": effective_status_lists(active)["doneStatuses"],
            },
        )

    logger.info("Created ticket %s in %s under workflow %s v%s", ticket.ticket_number, status, active.pk, active.version)
    return ticket


# ===============================================================
# Transitions
# ===============================================================

def check_ticket_transition(
    ticket: Ticket,
    target_status: str,
    user,
    *,
    roles: Optional[Iterable[str]] = None,
    context: Optional[Dict[str, Any]] = None,
) -> TransitionDecision:
    actor_roles = normalize_roles(roles) if roles is not None else get_user_roles(user, ticket.tenant_id)
    active, system_default = _resolution_workflows(ticket)
    return can_transition(
        ticket,
        target_status,
        actor_roles,
        active_workflow=active,
        system_default_workflow=system_default,
        context=context,
    )


def _require_standing(ticket: Ticket, actor_roles: Iterable[str]) -> None:
    """
    Gate for a transition that would not change the status: the ticket's
    workflow must resolve, its status must be part of it, and the actor must
    hold a role on at least one of its non-create edges.
    """
    active, system_default = _resolution_workflows(ticket)
    workflow = resolve_effective_workflow(ticket, active, system_default)
    if workflow is None:
        raise NotFound("No workflow is available for this ticket")

    if resolve_status_node(workflow.graph, ticket.status, workflow.workflow_id) is None:
        raise ValidationError(
            {
                "status": f"Current status '{ticket.status}' is not part of this workflow",
                "code": WorkflowErrorKind.UNKNOWN_STATUS.value,
            }
        )

    roles = normalize_roles(actor_roles)
    if not any(normalize_roles(e.roles) & roles for e in workflow.graph.edges if not e.is_create_transition):
        raise PermissionDenied("Your role cannot change tickets in this workflow")


def perform_transition(
    *,
    ticket: Ticket,
    target_status: str,
    user,
    comment: str = "",
    resolution: Optional[str] = None,
    roles: Optional[Iterable[str]] = None,
) -> Ticket:
    """
    Validate and execute a status change.

    1) lock the ticket row
    2) validate against the ticket's effective workflow
    3) persist status / closed_at / resolution, bind a missing workflow
    4) write the WorkflowEvent
    5) run edge actions
    """
    actor_roles = normalize_roles(roles) if roles is not None else get_user_roles(user, ticket.tenant_id)

    with transaction.atomic():
        locked = Ticket.objects.select_for_update().get(pk=ticket.pk)
        current = locked.status

        if canonicalize_status(current) == canonicalize_status(target_status):
            _require_standing(locked, actor_roles)
            return locked

        context = {"comment": comment, "resolution": resolution}
        decision = check_ticket_transition(locked, target_status, user, roles=actor_roles, context=context)
        raise_for_decision(decision)

        new_status = decision.target_status
        now = timezone.now()
        wf = decision.workflow

        updates: Dict[str, Any] = {
            "status": new_status,
            "closed_at": now if new_status == CLOSED else None,
            "updated_at": now,
        }
        if resolution is not None:
            updates["resolution"] = resolution
        if locked.workflow_id is None and wf is not None and wf.source != SOURCE_SNAPSHOT:
            updates["workflow_id"] = wf.workflow_id

        Ticket.objects.filter(pk=locked.pk).update(**updates)
        locked.refresh_from_db()

        event = WorkflowEvent.objects.create(
            event_type=WorkflowEvent.TRANSITIONED,
            ticket=locked,
            tenant_id=locked.tenant_id,
            workflow_id=locked.workflow_id,
            workflow_version=wf.version if wf else None,
            edge_id=decision.edge.id if decision.edge else "",
            from_status=current,
            to_status=new_status,
            performed_by=user if user is not None and user.is_authenticated else None,
            role=primary_role(actor_roles),
            comment=comment or "",
        )

        done_statuses = effective_status_lists(wf.payload)["doneStatuses"] if wf else None
        dispatch_actions(
            decision.edge,
            locked,
            {
                "user": user,
                "workflow_id": locked.workflow_id,
                "workflow_version": wf.version if wf else None,
                "to_status": new_status,
                "done_statuses": done_statuses,
            },
        )
        locked.refresh_from_db()

    ticket_transitioned.send(
        sender=Ticket,
        ticket=locked,
        event=event,
        from_status=current,
        to_status=new_status,
        user=user,
    )
    return locked


def transitions_for(ticket: Ticket, user, roles: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    actor_roles = normalize_roles(roles) if roles is not None else get_user_roles(user, ticket.tenant_id)
    active, system_default = _resolution_workflows(ticket)
    return available_transitions(
        ticket,
        actor_roles,
        active_workflow=active,
        system_default_workflow=system_default,
    )

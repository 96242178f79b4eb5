# desk_core/services/reporting.py
"""
Ticket reporting over workflow status categorization.

Dashboard counts put every ticket of a tenant in one of three buckets:

- working: status listed in the active workflow's workingStatuses
- done:    status listed in doneStatuses
- hold:    everything else

Matching goes through the same canonical form the engine uses, computed in
the database by CanonicalStatus.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Set

from django.db.models import CharField, Func, Q, Value
from django.db.models.functions import Replace, Upper

from desk_core.models import Ticket, WorkflowDefinition
from desk_core.services.workflow_service import get_user_roles, primary_role
from desk_core.workflows.defaults import SYSTEM_STATUSES
from desk_core.workflows.graph import WorkflowGraph
from desk_core.workflows.roles import normalize_role
from desk_core.workflows.statuses import (
    StatusBuckets,
    bucketize,
    classify_status,
    compose_status_reference,
    effective_status_lists,
)
from desk_core.workflows.store import find_active_workflow, find_system_default_workflow


SQLITE_CANONICAL_FUNCTION = "DESK_CANONICAL_STATUS"


class CanonicalStatus(Func):
    """
    Database rendition of canonicalize_status().

    PostgreSQL collapses whitespace runs with REGEXP_REPLACE; SQLite calls the
    Python function registered on connect (desk_core.signals). Other backends
    only fold single spaces, so "In  Progress" stays unmatched there.
    """

    output_field = CharField()

    def _fallback(self):
        return Upper(Replace(self.get_source_expressions()[0], Value(" "), Value("_")))

    def as_sql(self, compiler, connection, **extra_context):
        return compiler.compile(self._fallback())

    def as_postgresql(self, compiler, connection, **extra_context):
        expr = Func(
            Upper(self.get_source_expressions()[0]),
            Value(r"\s+"),
            Value("_"),
            Value("g"),
            function="REGEXP_REPLACE",
            output_field=CharField(),
        )
        return compiler.compile(expr)

    def as_sqlite(self, compiler, connection, **extra_context):
        return super().as_sql(compiler, connection, function=SQLITE_CANONICAL_FUNCTION, **extra_context)


_ACTION_LABELS = {"CREATE_TICKET", "CREATE TICKET", "CREATE", "START", "END"}


def is_action_label(label: str) -> bool:
    """Node labels that name an action rather than a state ("Create Ticket")."""
    s = str(label or "").upper().strip()
    if not s:
        return False
    return s in _ACTION_LABELS or ("CREATE" in s and "TICKET" in s)


# ===============================================================
# Status catalog
# ===============================================================

def workflow_status_catalog(tenant) -> List[Dict[str, Any]]:
    """
    Every status of every workflow of the tenant, deleted ones included so
    historical references stay resolvable.
    """
    out: List[Dict[str, Any]] = []
    seen: Set[str] = set()

    workflows = WorkflowDefinition.objects.for_tenant(tenant).order_by("name", "version")
    for wf in workflows:
        graph = WorkflowGraph.from_definition(wf.definition)
        labels = [n.label or n.id for n in graph.nodes if not is_action_label(n.label or n.id)]
        if not labels:
            labels = list(SYSTEM_STATUSES)

        for label in labels:
            ref = compose_status_reference(wf.pk, label)
            if ref in seen:
                continue
            seen.add(ref)
            out.append(
                {
                    "id": ref,
                    "workflow_id": str(wf.pk),
                    "workflow_name": wf.name,
                    "status": label,
                    "display_name": f"{wf.name} - {label}",
                }
            )
    return out


# ===============================================================
# Buckets
# ===============================================================

def active_buckets(active: WorkflowDefinition) -> StatusBuckets:
    """Bucketize the active workflow, substituting defaults for empty lists."""
    lists = effective_status_lists(active)
    return bucketize(
        {
            "id": str(active.pk),
            "workingStatuses": lists["workingStatuses"],
            "doneStatuses": lists["doneStatuses"],
        },
        active_workflow_id=str(active.pk),
    )


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _bucket_q(grouped: Dict[str, Set[str]], active_id: str, system_default_id: Optional[str]) -> Optional[Q]:
    q = None
    for scope, names in grouped.items():
        workflow_ids = {u for u in (_as_uuid(scope), _as_uuid(active_id)) if u is not None}
        if not workflow_ids or not names:
            continue

        part = Q(workflow_id__in=workflow_ids, canonical_status__in=names)
        # tickets without a workflow belong to the system default
        if system_default_id and _as_uuid(system_default_id) in workflow_ids:
            part |= Q(workflow__isnull=True, canonical_status__in=names)

        q = part if q is None else (q | part)
    return q


def _scope_for_role(qs, user, role: Optional[str]):
    r = normalize_role(role) if role else ""
    if r == "SUPPORT_STAFF" and user is not None:
        return qs.filter(assigned_to=user)
    if r == "END_USER" and user is not None:
        return qs.filter(requester=user)
    return qs


def dashboard_stats(tenant, user=None, role: Optional[str] = None) -> Dict[str, int]:
    empty = {"all": 0, "working": 0, "done": 0, "hold": 0}

    active = find_active_workflow(tenant)
    if active is None:
        return empty

    if role is None and user is not None:
        role = primary_role(get_user_roles(user, tenant))

    system_default = find_system_default_workflow(tenant)
    sd_id = str(system_default.pk) if system_default else None
    buckets = active_buckets(active)

    qs = Ticket.objects.filter(tenant=tenant).annotate(
        canonical_status=CanonicalStatus("status")
    )
    qs = _scope_for_role(qs, user, role)

    all_count = qs.count()

    working_q = _bucket_q(buckets.working_by_workflow, str(active.pk), sd_id)
    done_q = _bucket_q(buckets.done_by_workflow, str(active.pk), sd_id)

    working = qs.filter(working_q).count() if working_q is not None else 0
    done = qs.filter(done_q).count() if done_q is not None else 0

    return {
        "all": all_count,
        "working": working,
        "done": done,
        "hold": all_count - working - done,
    }


def ticket_bucket(ticket: Ticket, active: Optional[WorkflowDefinition] = None) -> Optional[str]:
    """Bucket of a single ticket; None when the tenant has no active workflow."""
    active = active or find_active_workflow(ticket.tenant_id)
    if active is None:
        return None

    workflow_id = ticket.workflow_id
    if workflow_id is None:
        sd = find_system_default_workflow(ticket.tenant_id)
        workflow_id = sd.pk if sd else None

    return classify_status(ticket.status, workflow_id, active_buckets(active), active.pk)

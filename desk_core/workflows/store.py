# desk_core/workflows/store.py
"""
Workflow definition store.

Persistence side of the workflow engine. Owns the lifecycle rules:

- at most one ACTIVE workflow per tenant; activating one deactivates the
  previous one inside the same transaction
- edits append a new version row to the lineage, never mutate in place
- the system default workflow cannot be edited, deactivated or deleted
- workflows referenced by tickets are soft-deleted, never dropped

Every write runs under transaction.atomic with the tenant's workflow rows
locked, so concurrent admin edits serialize on the database.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from desk_core.models import Ticket, WorkflowDefinition
from desk_core.workflows.defaults import (
    SYSTEM_DEFAULT_DESCRIPTION,
    SYSTEM_DEFAULT_NAME,
    default_definition,
    default_status_lists,
)

logger = logging.getLogger(__name__)

ACTIVE = WorkflowDefinition.STATUS_ACTIVE
INACTIVE = WorkflowDefinition.STATUS_INACTIVE
ARCHIVED = WorkflowDefinition.STATUS_ARCHIVED
DRAFT = WorkflowDefinition.STATUS_DRAFT

EDITABLE_FIELDS = (
    "name",
    "description",
    "status",
    "is_default",
    "working_statuses",
    "done_statuses",
)


class WorkflowNotFound(ObjectDoesNotExist):
    pass


class WorkflowLocked(ValidationError):
    pass


# ===============================================================
# Reads
# ===============================================================

def list_workflows(tenant, status: Optional[str] = None):
    qs = WorkflowDefinition.objects.for_tenant(tenant).live()
    if status:
        qs = qs.filter(status=str(status).strip().upper())
    return qs.order_by("-is_system_default", "name")


def find_active_workflow(tenant) -> Optional[WorkflowDefinition]:
    return WorkflowDefinition.objects.for_tenant(tenant).active().first()


def get_active_workflow(tenant) -> WorkflowDefinition:
    wf = find_active_workflow(tenant)
    if wf is None:
        raise WorkflowNotFound("No active workflow for this tenant")
    return wf


def get_workflow_by_id(tenant, workflow_id: Any, include_deleted: bool = False) -> WorkflowDefinition:
    qs = WorkflowDefinition.objects.for_tenant(tenant)
    if not include_deleted:
        qs = qs.filter(deleted_at__isnull=True)
    try:
        return qs.get(pk=workflow_id)
    except (WorkflowDefinition.DoesNotExist, ValidationError, ValueError):
        raise WorkflowNotFound(f"Workflow {workflow_id} not found")


def find_system_default_workflow(tenant) -> Optional[WorkflowDefinition]:
    return WorkflowDefinition.objects.for_tenant(tenant).system_default().first()


def get_system_default_workflow(tenant) -> WorkflowDefinition:
    wf = find_system_default_workflow(tenant)
    if wf is None:
        raise WorkflowNotFound("No system default workflow for this tenant")
    return wf


# ===============================================================
# Helpers
# ===============================================================

def _lock_tenant_rows(tenant) -> None:
    # Serialize lifecycle writes per tenant
    list(
        WorkflowDefinition.objects.select_for_update()
        .filter(tenant=tenant)
        .values_list("pk", flat=True)
    )


def _deactivate_others(tenant, keep_pk=None) -> int:
    qs = WorkflowDefinition.objects.filter(tenant=tenant, status=ACTIVE)
    if keep_pk is not None:
        qs = qs.exclude(pk=keep_pk)
    return qs.update(status=INACTIVE, updated_at=timezone.now())


def _unset_other_defaults(tenant, keep_pk=None) -> int:
    qs = WorkflowDefinition.objects.filter(tenant=tenant, is_default=True, is_system_default=False)
    if keep_pk is not None:
        qs = qs.exclude(pk=keep_pk)
    return qs.update(is_default=False, updated_at=timezone.now())


def _refresh_locked(workflow: WorkflowDefinition) -> WorkflowDefinition:
    return WorkflowDefinition.objects.select_for_update().get(pk=workflow.pk)


def _require_mutable(wf: WorkflowDefinition, action: str) -> None:
    if wf.is_system_default:
        raise WorkflowLocked(f"The system default workflow cannot be {action}.")


def _require_current(wf: WorkflowDefinition) -> None:
    if wf.deleted_at is not None:
        raise WorkflowNotFound(f"Workflow {wf.pk} has been deleted")
    if not wf.is_latest:
        raise WorkflowLocked("Only the latest version of a workflow can be changed.")


def _status_list(values: Optional[Iterable[Any]]) -> List[str]:
    return [str(v) for v in (values or []) if str(v).strip()]


def _fallback_to_system_default(tenant) -> Optional[WorkflowDefinition]:
    sd = find_system_default_workflow(tenant)
    if sd is None:
        logger.warning("Tenant %s has no system default workflow to fall back to", tenant)
        return None
    if sd.status != ACTIVE:
        _deactivate_others(tenant, keep_pk=sd.pk)
        sd.status = ACTIVE
        sd.save(update_fields=["status", "updated_at"])
        logger.info("Activated system default workflow %s for tenant %s", sd.pk, tenant)
    return sd


# ===============================================================
# Writes
# ===============================================================

@transaction.atomic
def create_workflow(
    tenant,
    *,
    name: str,
    definition: Optional[Dict[str, Any]] = None,
    description: str = "",
    status: str = DRAFT,
    is_default: bool = False,
    working_statuses: Optional[Iterable[Any]] = None,
    done_statuses: Optional[Iterable[Any]] = None,
    created_by=None,
) -> WorkflowDefinition:
    status = str(status or DRAFT).strip().upper()
    if status not in dict(WorkflowDefinition.STATUS_CHOICES):
        raise ValidationError({"status": f"Unknown workflow status: {status}"})

    _lock_tenant_rows(tenant)

    if status == ACTIVE:
        _deactivate_others(tenant)
    if is_default:
        _unset_other_defaults(tenant)

    wf = WorkflowDefinition.objects.create(
        tenant=tenant,
        name=name,
        description=description or "",
        status=status,
        is_default=bool(is_default),
        definition=definition or {"nodes": [], "edges": []},
        working_statuses=_status_list(working_statuses),
        done_statuses=_status_list(done_statuses),
        created_by=created_by,
    )
    logger.info("Created workflow %s '%s' (%s) for tenant %s", wf.pk, wf.name, wf.status, tenant)
    return wf


@transaction.atomic
def save_edit(
    workflow: WorkflowDefinition,
    definition: Optional[Dict[str, Any]] = None,
    **changes: Any,
) -> WorkflowDefinition:
    """
    Append a new version of the workflow. The previous row keeps its content,
    loses is_latest, and is archived if it was the active one.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({"fields": f"Cannot edit: {', '.join(sorted(unknown))}"})

    _lock_tenant_rows(workflow.tenant_id)
    current = _refresh_locked(workflow)
    _require_current(current)
    _require_mutable(current, "edited")

    new_status = str(changes.get("status") or current.status).strip().upper()
    if new_status not in dict(WorkflowDefinition.STATUS_CHOICES):
        raise ValidationError({"status": f"Unknown workflow status: {new_status}"})

    next_version = (
        WorkflowDefinition.objects.filter(lineage=current.lineage).aggregate(v=Max("version"))["v"] or 0
    ) + 1

    is_default = bool(changes.get("is_default", current.is_default))

    # old row must give up ACTIVE before the new row can take it
    was_active = current.status == ACTIVE
    current.is_latest = False
    if was_active:
        current.status = ARCHIVED
    current.save(update_fields=["is_latest", "status", "updated_at"])

    if new_status == ACTIVE:
        _deactivate_others(current.tenant_id)
    if is_default:
        _unset_other_defaults(current.tenant_id)

    new = WorkflowDefinition.objects.create(
        tenant_id=current.tenant_id,
        lineage=current.lineage,
        name=changes.get("name", current.name),
        description=changes.get("description", current.description),
        status=new_status,
        is_default=is_default,
        is_system_default=False,
        version=next_version,
        is_latest=True,
        definition=definition if definition is not None else current.definition,
        working_statuses=_status_list(changes.get("working_statuses", current.working_statuses)),
        done_statuses=_status_list(changes.get("done_statuses", current.done_statuses)),
        created_by=current.created_by,
    )
    logger.info(
        "Workflow %s edited: lineage=%s v%s -> v%s (%s)",
        current.pk,
        current.lineage,
        current.version,
        new.version,
        new.pk,
    )

    if was_active and new_status != ACTIVE:
        _fallback_to_system_default(current.tenant_id)
    return new


@transaction.atomic
def activate_workflow(
    workflow: WorkflowDefinition,
    working_statuses: Optional[Iterable[Any]] = None,
    done_statuses: Optional[Iterable[Any]] = None,
) -> WorkflowDefinition:
    _lock_tenant_rows(workflow.tenant_id)
    wf = _refresh_locked(workflow)
    _require_current(wf)

    _deactivate_others(wf.tenant_id, keep_pk=wf.pk)

    wf.status = ACTIVE
    fields = ["status", "updated_at"]
    if working_statuses is not None:
        wf.working_statuses = _status_list(working_statuses)
        fields.append("working_statuses")
    if done_statuses is not None:
        wf.done_statuses = _status_list(done_statuses)
        fields.append("done_statuses")
    wf.save(update_fields=fields)

    logger.info("Activated workflow %s '%s' for tenant %s", wf.pk, wf.name, wf.tenant_id)
    return wf


@transaction.atomic
def deactivate_workflow(workflow: WorkflowDefinition) -> WorkflowDefinition:
    _lock_tenant_rows(workflow.tenant_id)
    wf = _refresh_locked(workflow)
    _require_current(wf)
    _require_mutable(wf, "deactivated")

    was_active = wf.status == ACTIVE
    wf.status = INACTIVE
    wf.save(update_fields=["status", "updated_at"])
    logger.info("Deactivated workflow %s for tenant %s", wf.pk, wf.tenant_id)

    if was_active:
        _fallback_to_system_default(wf.tenant_id)
    return wf


@transaction.atomic
def set_default_workflow(workflow: WorkflowDefinition) -> WorkflowDefinition:
    _lock_tenant_rows(workflow.tenant_id)
    wf = _refresh_locked(workflow)
    _require_current(wf)

    _unset_other_defaults(wf.tenant_id, keep_pk=wf.pk)
    wf.is_default = True
    wf.save(update_fields=["is_default", "updated_at"])
    return wf


@transaction.atomic
def delete_workflow(workflow: WorkflowDefinition) -> str:
    """
    Returns "soft" when tickets still reference the lineage (rows archived and
    stamped deleted_at), "hard" when the rows were removed.
    """
    _lock_tenant_rows(workflow.tenant_id)
    wf = _refresh_locked(workflow)
    _require_mutable(wf, "deleted")
    if wf.deleted_at is not None:
        raise WorkflowNotFound(f"Workflow {wf.pk} has been deleted")

    tenant_id = wf.tenant_id
    lineage_rows = WorkflowDefinition.objects.filter(lineage=wf.lineage)
    was_active = lineage_rows.filter(status=ACTIVE).exists()
    referenced = Ticket.objects.filter(workflow__lineage=wf.lineage).exists()

    if referenced:
        lineage_rows.update(
            status=ARCHIVED,
            is_default=False,
            deleted_at=timezone.now(),
            updated_at=timezone.now(),
        )
        mode = "soft"
    else:
        lineage_rows.delete()
        mode = "hard"

    logger.info("Deleted workflow lineage %s (%s) for tenant %s", wf.lineage, mode, tenant_id)

    if was_active:
        _fallback_to_system_default(tenant_id)
    return mode


# ===============================================================
# Seeding and repair
# ===============================================================

@transaction.atomic
def ensure_system_default_workflow(tenant, created_by=None):
    """
    Make sure the tenant has a system default workflow.

    Returns (workflow, created). An existing workflow is promoted when the
    tenant has workflows but none is flagged; otherwise the seed graph is
    created. The result is activated when the tenant has no active workflow.
    """
    _lock_tenant_rows(tenant)

    created = False
    wf = find_system_default_workflow(tenant)

    if wf is None:
        oldest = (
            WorkflowDefinition.objects.for_tenant(tenant)
            .live()
            .order_by("created_at")
            .first()
        )
        if oldest is not None:
            oldest.is_system_default = True
            oldest.is_default = True
            oldest.save(update_fields=["is_system_default", "is_default", "updated_at"])
            wf = oldest
            logger.info("Promoted workflow %s to system default for tenant %s", wf.pk, tenant)
        else:
            lists = default_status_lists()
            wf = WorkflowDefinition.objects.create(
                tenant=tenant,
                name=SYSTEM_DEFAULT_NAME,
                description=SYSTEM_DEFAULT_DESCRIPTION,
                status=INACTIVE,
                is_default=True,
                is_system_default=True,
                definition=default_definition(),
                working_statuses=lists["working_statuses"],
                done_statuses=lists["done_statuses"],
                created_by=created_by,
            )
            created = True
            logger.info("Seeded system default workflow %s for tenant %s", wf.pk, tenant)

    if find_active_workflow(tenant) is None:
        wf.status = ACTIVE
        wf.save(update_fields=["status", "updated_at"])

    return wf, created


@transaction.atomic
def repair_active_workflows(tenant) -> Dict[str, Any]:
    """
    Restore "at most one ACTIVE" for legacy data and make sure something is
    active. Keeps the system default if it is among the active ones,
    otherwise the most recently updated.
    """
    _lock_tenant_rows(tenant)

    actives = list(
        WorkflowDefinition.objects.for_tenant(tenant)
        .filter(status=ACTIVE)
        .order_by("-is_system_default", "-updated_at")
    )

    deactivated = 0
    if actives:
        keep = actives[0]
        deactivated = _deactivate_others(tenant, keep_pk=keep.pk)
    else:
        keep = _fallback_to_system_default(tenant)

    if deactivated:
        logger.warning(
            "Tenant %s had %s active workflows; kept %s",
            tenant,
            deactivated + 1,
            keep.pk if keep else None,
        )

    return {
        "kept": str(keep.pk) if keep else None,
        "deactivated": deactivated,
    }


__all__ = [
    "WorkflowNotFound",
    "WorkflowLocked",
    "EDITABLE_FIELDS",
    "list_workflows",
    "find_active_workflow",
    "get_active_workflow",
    "get_workflow_by_id",
    "find_system_default_workflow",
    "get_system_default_workflow",
    "create_workflow",
    "save_edit",
    "activate_workflow",
    "deactivate_workflow",
    "set_default_workflow",
    "delete_workflow",
    "ensure_system_default_workflow",
    "repair_active_workflows",
]

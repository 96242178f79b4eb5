# desk_core/workflows/snapshots.py
"""
Per-ticket workflow snapshots.

A snapshot is a frozen JSON copy of the workflow a ticket was created under.
Once written it is never touched again, so a ticket's history stays readable
against the rules that were in force at creation time even after the live
workflow is edited.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from django.conf import settings
from django.db import transaction

from desk_core.workflows.graph import WorkflowGraph

logger = logging.getLogger(__name__)


SNAPSHOT_KEYS = (
    "id",
    "name",
    "description",
    "status",
    "isActive",
    "isDefault",
    "isSystemDefault",
    "version",
    "definition",
    "workingStatuses",
    "doneStatuses",
)


def capture_snapshot(workflow: Any) -> Dict[str, Any]:
    """
    Deterministic copy of a workflow. Scalars are copied, the definition and
    status lists are deep-copied so later edits to the source never leak in.

    Accepts a WorkflowDefinition instance or an already-serialized mapping.
    """
    if isinstance(workflow, Mapping):
        src = workflow
        return {
            "id": str(src.get("id")) if src.get("id") is not None else None,
            "name": src.get("name") or "",
            "description": src.get("description") or "",
            "status": src.get("status") or "",
            "isActive": bool(src.get("isActive", src.get("status") == "ACTIVE")),
            "isDefault": bool(src.get("isDefault", False)),
            "isSystemDefault": bool(src.get("isSystemDefault", False)),
            "version": int(src.get("version") or 1),
            "definition": copy.deepcopy(src.get("definition") or {}),
            "workingStatuses": copy.deepcopy(list(src.get("workingStatuses") or [])),
            "doneStatuses": copy.deepcopy(list(src.get("doneStatuses") or [])),
        }

    return {
        "id": str(workflow.pk),
        "name": workflow.name,
        "description": workflow.description or "",
        "status": workflow.status,
        "isActive": workflow.is_active,
        "isDefault": bool(workflow.is_default),
        "isSystemDefault": bool(workflow.is_system_default),
        "version": int(workflow.version),
        "definition": copy.deepcopy(workflow.definition or {}),
        "workingStatuses": copy.deepcopy(list(workflow.working_statuses or [])),
        "doneStatuses": copy.deepcopy(list(workflow.done_statuses or [])),
    }


def snapshot_graph(snapshot: Optional[Mapping[str, Any]]) -> WorkflowGraph:
    if not snapshot:
        return WorkflowGraph()
    return WorkflowGraph.from_definition(snapshot.get("definition"))


def backfill_missing_snapshots(tenant=None, batch_size: Optional[int] = None) -> Dict[str, int]:
    """
    Give every ticket without a snapshot the *current* snapshot of the
    workflow it points at.

    Tickets whose workflow no longer resolves are skipped. Re-running is
    safe: only rows that still have a null snapshot are written.
    """
    from desk_core.models import Ticket, WorkflowDefinition

    size = int(batch_size or getattr(settings, "WORKFLOW_BACKFILL_BATCH_SIZE", 500))

    qs = Ticket.objects.filter(workflow_snapshot__isnull=True, workflow__isnull=False)
    if tenant is not None:
        qs = qs.filter(tenant=tenant)

    scanned = 0
    updated = 0
    skipped = 0
    cache: Dict[Any, Optional[Dict[str, Any]]] = {}

    ids = list(qs.order_by("pk").values_list("pk", "workflow_id"))
    for start in range(0, len(ids), size):
        chunk = ids[start:start + size]
        with transaction.atomic():
            for ticket_id, workflow_id in chunk:
                scanned += 1
                if workflow_id not in cache:
                    wf = WorkflowDefinition.objects.filter(pk=workflow_id).first()
                    cache[workflow_id] = capture_snapshot(wf) if wf else None

                snap = cache[workflow_id]
                if snap is None:
                    skipped += 1
                    continue

                # null guard keeps concurrent runs from overwriting each other
                n = Ticket.objects.filter(pk=ticket_id, workflow_snapshot__isnull=True).update(
                    workflow_snapshot=snap,
                    workflow_version=snap["version"],
                )
                updated += n

    logger.info(
        "Snapshot backfill finished: scanned=%s updated=%s skipped=%s",
        scanned,
        updated,
        skipped,
    )
    return {"scanned": scanned, "updated": updated, "skipped": skipped}


__all__ = [
    "SNAPSHOT_KEYS",
    "capture_snapshot",
    "snapshot_graph",
    "backfill_missing_snapshots",
]

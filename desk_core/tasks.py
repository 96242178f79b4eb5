# desk_core/tasks.py
from __future__ import annotations

from celery import shared_task

from desk_core.models import Tenant
from desk_core.workflows.snapshots import backfill_missing_snapshots


@shared_task
def backfill_workflow_snapshots(tenant_id: int | None = None) -> dict:
    tenant = None
    if tenant_id:
        tenant = Tenant.objects.filter(id=tenant_id).first()
        if tenant is None:
            return {"scanned": 0, "updated": 0, "skipped": 0}

    return backfill_missing_snapshots(tenant)

# desk_core/models/workflow.py

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q

from desk_core.models.core import TimeStampedModel, Tenant


class WorkflowDefinitionQuerySet(models.QuerySet):
    def for_tenant(self, tenant):
        return self.filter(tenant=tenant)

    def live(self):
        """Latest version of every lineage that has not been soft-deleted."""
        return self.filter(is_latest=True, deleted_at__isnull=True)

    def active(self):
        return self.filter(status=WorkflowDefinition.STATUS_ACTIVE, deleted_at__isnull=True)

    def system_default(self):
        return self.live().filter(is_system_default=True)


class WorkflowDefinition(TimeStampedModel):
    """
    One version of a tenant's ticket workflow graph.

    Edits never mutate a row: they append a new row to the same lineage with
    version + 1 and flip is_latest. Old rows stay addressable for tickets that
    captured them.
    """

    STATUS_DRAFT = "DRAFT"
    STATUS_ACTIVE = "ACTIVE"
    STATUS_INACTIVE = "INACTIVE"
    STATUS_ARCHIVED = "ARCHIVED"

    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_INACTIVE, "Inactive"),
        (STATUS_ARCHIVED, "Archived"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="workflows",
    )
    lineage = models.UUIDField(default=uuid.uuid4, db_index=True)

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)

    is_default = models.BooleanField(default=False)
    is_system_default = models.BooleanField(default=False)

    version = models.PositiveIntegerField(default=1)
    is_latest = models.BooleanField(default=True)

    definition = models.JSONField(default=dict, blank=True)
    working_statuses = models.JSONField(default=list, blank=True)
    done_statuses = models.JSONField(default=list, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_workflows",
    )
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = WorkflowDefinitionQuerySet.as_manager()

    class Meta:
        ordering = ["name", "-version"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant"],
                condition=Q(status="ACTIVE"),
                name="uniq_active_workflow_per_tenant",
            ),
            models.UniqueConstraint(
                fields=["tenant"],
                condition=Q(is_system_default=True, is_latest=True, deleted_at__isnull=True),
                name="uniq_system_default_per_tenant",
            ),
            models.UniqueConstraint(
                fields=["lineage", "version"],
                name="uniq_workflow_lineage_version",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "status"], name="workflow_tenant_status_idx"),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __str__(self):
        return f"{self.name} v{self.version} ({self.status})"

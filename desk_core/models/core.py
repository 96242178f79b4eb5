# desk_core/models/core.py

from django.conf import settings
from django.db import models

from desk_core.workflows.guards import WorkflowWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Tenant
# ============================================================
class Tenant(TimeStampedModel):
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# Roles
# ============================================================
class UserRole(TimeStampedModel):
    """
    Role of a user inside a tenant. A null tenant grants the role everywhere.
    """

    ADMIN = "ADMIN"
    SUPPORT_MANAGER = "SUPPORT_MANAGER"
    SUPPORT_STAFF = "SUPPORT_STAFF"
    END_USER = "END_USER"

    ROLE_CHOICES = [
        (ADMIN, "Administrator"),
        (SUPPORT_MANAGER, "Support manager"),
        (SUPPORT_STAFF, "Support staff"),
        (END_USER, "End user"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="desk_roles",
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="user_roles",
        null=True,
        blank=True,
    )
    role = models.CharField(max_length=100)

    class Meta:
        unique_together = ("user", "tenant", "role")

    def __str__(self):
        return f"{self.user.username} - {self.role}"


# ============================================================
# Ticket
# ============================================================
class Ticket(WorkflowWriteGuardMixin, TimeStampedModel):
    PRIORITY_CHOICES = [
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("CRITICAL", "Critical"),
    ]

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        related_name="tickets",
    )
    ticket_number = models.CharField(max_length=32)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default="MEDIUM")

    # Free-form: any label defined by the tenant's workflow graph
    status = models.CharField(max_length=100, default="NEW", db_index=True)

    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requested_tickets",
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_tickets",
    )
    resolution = models.TextField(blank=True)
    due_date = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    custom_fields = models.JSONField(default=dict, blank=True)

    workflow = models.ForeignKey(
        "desk_core.WorkflowDefinition",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="tickets",
    )
    workflow_snapshot = models.JSONField(null=True, blank=True)
    workflow_version = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        unique_together = ("tenant", "ticket_number")
        indexes = [
            models.Index(fields=["tenant", "status"], name="ticket_tenant_status_idx"),
        ]

    def __str__(self):
        return f"{self.ticket_number}: {self.title}"

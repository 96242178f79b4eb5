from django.conf import settings
from django.db import models

from desk_core.models.core import Tenant, Ticket
from desk_core.models.workflow import WorkflowDefinition


class WorkflowEvent(models.Model):
    """
    Immutable history of what the workflow engine did to a ticket.
    """

    CREATED = "CREATED"
    TRANSITIONED = "TRANSITIONED"
    ACTIVITY = "ACTIVITY"

    EVENT_CHOICES = (
        (CREATED, "Created"),
        (TRANSITIONED, "Transitioned"),
        (ACTIVITY, "Activity"),
    )

    event_type = models.CharField(max_length=16, choices=EVENT_CHOICES, default=TRANSITIONED)

    ticket = models.ForeignKey(
        Ticket,
        on_delete=models.CASCADE,
        related_name="workflow_events",
    )
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="workflow_events",
    )
    workflow = models.ForeignKey(
        WorkflowDefinition,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="events",
    )
    workflow_version = models.PositiveIntegerField(null=True, blank=True)
    edge_id = models.CharField(max_length=100, blank=True)

    from_status = models.CharField(max_length=100, blank=True)
    to_status = models.CharField(max_length=100, blank=True)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_events",
    )
    role = models.CharField(max_length=64, blank=True)
    comment = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["ticket", "created_at"], name="wf_event_ticket_time_idx"),
        ]

    def __str__(self):
        who = self.performed_by.username if self.performed_by else "system"
        return f"{self.ticket_id}: {self.from_status} → {self.to_status} by {who}"

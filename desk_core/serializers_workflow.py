# desk_core/serializers_workflow.py
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from desk_core.models import Ticket, WorkflowDefinition
from desk_core.workflows.graph import definition_summary


# =============================================================
# Workflow definitions
# =============================================================

class WorkflowDefinitionSerializer(serializers.ModelSerializer):
    is_active = serializers.BooleanField(read_only=True)
    summary = serializers.SerializerMethodField()

    class Meta:
        model = WorkflowDefinition
        fields = [
            "id",
            "lineage",
            "name",
            "description",
            "status",
            "is_active",
            "is_default",
            "is_system_default",
            "version",
            "is_latest",
            "definition",
            "working_statuses",
            "done_statuses",
            "summary",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_summary(self, obj) -> Dict[str, int]:
        return definition_summary(obj.definition)


def _validate_status_list(value):
    if value is None:
        return value
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise serializers.ValidationError("Expected a list of status strings.")
    return value


class WorkflowWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(
        choices=[c for c, _ in WorkflowDefinition.STATUS_CHOICES],
        required=False,
    )
    is_default = serializers.BooleanField(required=False)
    definition = serializers.JSONField(required=False)
    working_statuses = serializers.JSONField(required=False)
    done_statuses = serializers.JSONField(required=False)

    def validate_definition(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Definition must be an object with nodes and edges.")
        for key in ("nodes", "edges"):
            if key in value and not isinstance(value[key], list):
                raise serializers.ValidationError(f"'{key}' must be a list.")
        return value

    def validate_working_statuses(self, value):
        return _validate_status_list(value)

    def validate_done_statuses(self, value):
        return _validate_status_list(value)


class WorkflowActivateSerializer(serializers.Serializer):
    working_statuses = serializers.JSONField(required=False)
    done_statuses = serializers.JSONField(required=False)

    def validate_working_statuses(self, value):
        return _validate_status_list(value)

    def validate_done_statuses(self, value):
        return _validate_status_list(value)


# =============================================================
# Tickets
# =============================================================

class TicketSerializer(serializers.ModelSerializer):
    workflow = serializers.CharField(source="workflow_id", read_only=True, allow_null=True)

    class Meta:
        model = Ticket
        fields = [
            "id",
            "ticket_number",
            "title",
            "description",
            "priority",
            "status",
            "requester",
            "assigned_to",
            "resolution",
            "due_date",
            "closed_at",
            "custom_fields",
            "workflow",
            "workflow_version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TicketCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.ChoiceField(
        choices=[c for c, _ in Ticket.PRIORITY_CHOICES],
        required=False,
        default="MEDIUM",
    )
    due_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    custom_fields = serializers.DictField(required=False, default=dict)


class TicketTransitionSerializer(serializers.Serializer):
    """
    Body:
        { "to_status": "IN_PROGRESS" }
        or
        { "status": "In Progress", "comment": "...", "resolution": "..." }
    """

    to_status = serializers.CharField(required=False)
    status = serializers.CharField(required=False)
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    resolution = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        target = attrs.get("to_status") or attrs.get("status")
        if not target or not str(target).strip():
            raise serializers.ValidationError({"to_status": "This field is required."})
        attrs["target"] = str(target).strip()
        return attrs

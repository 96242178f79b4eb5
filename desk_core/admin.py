# desk_core/admin.py

from django.contrib import admin, messages
from django.core.exceptions import ValidationError

from .models import Tenant, Ticket, UserRole, WorkflowDefinition, WorkflowEvent
from .workflows import store


# =============================================================
# Workflow events (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(WorkflowEvent)
class WorkflowEventAdmin(admin.ModelAdmin):
    list_display = (
        "ticket",
        "event_type",
        "from_status",
        "to_status",
        "performed_by",
        "role",
        "workflow_version",
        "created_at",
    )
    list_filter = ("event_type", "tenant", "to_status")
    search_fields = ("ticket__ticket_number", "performed_by__username")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in WorkflowEvent._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Tenant
# =============================================================

@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    search_fields = ("code", "name")
    list_filter = ("is_active",)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "tenant", "role")
    list_filter = ("tenant", "role")
    search_fields = ("user__username", "role")


# =============================================================
# Workflow definitions
# =============================================================

@admin.register(WorkflowDefinition)
class WorkflowDefinitionAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "tenant",
        "status",
        "version",
        "is_latest",
        "is_default",
        "is_system_default",
        "deleted_at",
    )
    list_filter = ("tenant", "status", "is_latest", "is_system_default")
    search_fields = ("name",)
    ordering = ("tenant", "name", "-version")
    actions = ["activate_selected"]

    # Lifecycle goes through the store; the admin only inspects
    readonly_fields = [f.name for f in WorkflowDefinition._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Activate selected workflow")
    def activate_selected(self, request, queryset):
        if queryset.count() != 1:
            self.message_user(request, "Select exactly one workflow to activate.", messages.ERROR)
            return
        try:
            wf = store.activate_workflow(queryset.first())
        except (store.WorkflowNotFound, ValidationError) as exc:
            self.message_user(request, str(exc), messages.ERROR)
            return
        self.message_user(request, f"Activated {wf}.", messages.SUCCESS)


# =============================================================
# Tickets
# =============================================================

@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("ticket_number", "tenant", "title", "status", "priority", "assigned_to", "created_at")
    list_filter = ("tenant", "status", "priority")
    search_fields = ("ticket_number", "title")
    readonly_fields = ("status", "workflow", "workflow_snapshot", "workflow_version", "closed_at")

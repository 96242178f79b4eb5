# desk_core/urls.py

from django.urls import path

# -------------------------------------------------
# Workflow definitions
# -------------------------------------------------
from .views_workflow_api import (
    ActiveWorkflowView,
    CanCreateTicketView,
    WorkflowActivateView,
    WorkflowDeactivateView,
    WorkflowDetailView,
    WorkflowListCreateView,
    WorkflowSetDefaultView,
    WorkflowStatusCatalogView,
)

# -------------------------------------------------
# Tickets and dashboard
# -------------------------------------------------
from .views_tickets import (
    DashboardStatsView,
    HealthCheckView,
    TicketCreateView,
    TicketTransitionsView,
    TicketTransitionView,
)


app_name = "desk_core"


urlpatterns = [
    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),

    # ============================================================
    # Workflow definitions
    # ============================================================
    path("workflows/", WorkflowListCreateView.as_view(), name="workflow-list"),
    path("workflows/active/", ActiveWorkflowView.as_view(), name="workflow-active"),
    path("workflows/statuses/", WorkflowStatusCatalogView.as_view(), name="workflow-statuses"),
    path("workflows/can-create/", CanCreateTicketView.as_view(), name="workflow-can-create"),
    path("workflows/<uuid:pk>/", WorkflowDetailView.as_view(), name="workflow-detail"),
    path("workflows/<uuid:pk>/activate/", WorkflowActivateView.as_view(), name="workflow-activate"),
    path("workflows/<uuid:pk>/deactivate/", WorkflowDeactivateView.as_view(), name="workflow-deactivate"),
    path("workflows/<uuid:pk>/set-default/", WorkflowSetDefaultView.as_view(), name="workflow-set-default"),

    # ============================================================
    # Tickets
    # ============================================================
    path("tickets/", TicketCreateView.as_view(), name="ticket-create"),
    path("tickets/<int:pk>/transitions/", TicketTransitionsView.as_view(), name="ticket-transitions"),
    path("tickets/<int:pk>/transition/", TicketTransitionView.as_view(), name="ticket-transition"),

    # ============================================================
    # Dashboard
    # ============================================================
    path("dashboard/stats/", DashboardStatsView.as_view(), name="dashboard-stats"),
]

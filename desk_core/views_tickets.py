# desk_core/views_tickets.py

from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status as http
from rest_framework.exceptions import NotAuthenticated
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from desk_core.models import Ticket
from desk_core.permissions import require_tenant
from desk_core.serializers_workflow import (
    TicketCreateSerializer,
    TicketSerializer,
    TicketTransitionSerializer,
)
from desk_core.services.reporting import dashboard_stats
from desk_core.services.workflow_service import (
    create_ticket,
    get_user_roles,
    perform_transition,
    transitions_for,
)


# =============================================================
# Helpers
# =============================================================

def _require_auth(user) -> None:
    """
    Enforce authentication in a way that returns DRF's normal 401/403
    instead of Django login redirects (302) under session-based setups.
    """
    if not user or not getattr(user, "is_authenticated", False):
        raise NotAuthenticated("Authentication credentials were not provided.")


def _ticket_for(request, pk: int) -> Ticket:
    _require_auth(request.user)
    tenant = require_tenant(request)
    return get_object_or_404(Ticket, pk=pk, tenant=tenant)


# =============================================================
# System
# =============================================================

class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "NTG-Desk"})


# =============================================================
# API: Ticket creation (through the create edge)
# =============================================================

class TicketCreateView(APIView):
    """
    POST /desk/tickets/

    The initial status is decided by the active workflow, never by the client.
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Tickets"], request=TicketCreateSerializer, responses=TicketSerializer)
    def post(self, request):
        _require_auth(request.user)
        tenant = require_tenant(request)

        ser = TicketCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        ticket = create_ticket(tenant=tenant, user=request.user, **ser.validated_data)
        return Response(TicketSerializer(ticket).data, status=http.HTTP_201_CREATED)


# =============================================================
# API: Transitions
# =============================================================

class TicketTransitionsView(APIView):
    """
    GET /desk/tickets/<pk>/transitions/

    Outgoing transitions from the current status, flagged per role.
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Tickets"])
    def get(self, request, pk: int):
        ticket = _ticket_for(request, pk)
        roles = get_user_roles(request.user, ticket.tenant_id)
        return Response(
            {
                "ticket": ticket.pk,
                "current": ticket.status,
                "roles": sorted(roles),
                "transitions": transitions_for(ticket, request.user, roles=roles),
            }
        )


class TicketTransitionView(APIView):
    """
    POST /desk/tickets/<pk>/transition/

    This endpoint is the ONLY API-level entry point
    that mutates ticket status.
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Tickets"], request=TicketTransitionSerializer, responses=TicketSerializer)
    def post(self, request, pk: int):
        ticket = _ticket_for(request, pk)

        ser = TicketTransitionSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        ticket = perform_transition(
            ticket=ticket,
            target_status=ser.validated_data["target"],
            user=request.user,
            comment=ser.validated_data.get("comment") or "",
            resolution=ser.validated_data.get("resolution"),
        )
        return Response(TicketSerializer(ticket).data)


# =============================================================
# API: Dashboard
# =============================================================

class DashboardStatsView(APIView):
    """GET /desk/dashboard/stats/ -> {all, working, done, hold}"""
    permission_classes = [AllowAny]

    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        _require_auth(request.user)
        tenant = require_tenant(request)
        return Response(dashboard_stats(tenant, user=request.user))

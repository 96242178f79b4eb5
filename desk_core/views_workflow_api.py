# desk_core/views_workflow_api.py

from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError
from drf_spectacular.utils import extend_schema
from rest_framework import status as http
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from desk_core.permissions import IsWorkflowAdminOrReadOnly
from desk_core.serializers_workflow import (
    WorkflowActivateSerializer,
    WorkflowDefinitionSerializer,
    WorkflowWriteSerializer,
)
from desk_core.services.reporting import workflow_status_catalog
from desk_core.services.workflow_service import creation_eligibility
from desk_core.workflows import store


# =============================================================
# Helpers
# =============================================================

def _store_error(exc: Exception):
    """Translate store exceptions into DRF errors."""
    if isinstance(exc, store.WorkflowNotFound):
        return NotFound(str(exc) or "Workflow not found.")
    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, "message_dict"):
            return ValidationError(exc.message_dict)
        return ValidationError({"detail": exc.messages})
    return exc


def _get_workflow(request, pk):
    try:
        return store.get_workflow_by_id(request.tenant, pk)
    except store.WorkflowNotFound as exc:
        raise _store_error(exc)


def _render(workflow, code=http.HTTP_200_OK):
    return Response(WorkflowDefinitionSerializer(workflow).data, status=code)


class TenantWorkflowView(APIView):
    permission_classes = [IsWorkflowAdminOrReadOnly]


# =============================================================
# API: Workflow collection
# =============================================================

class WorkflowListCreateView(TenantWorkflowView):
    """
    GET  /desk/workflows/?status=ACTIVE
    POST /desk/workflows/
    """

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        qs = store.list_workflows(request.tenant, status=request.query_params.get("status"))
        return Response(WorkflowDefinitionSerializer(qs, many=True).data)

    @extend_schema(tags=["Workflows"], request=WorkflowWriteSerializer)
    def post(self, request):
        ser = WorkflowWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            wf = store.create_workflow(
                request.tenant,
                name=data["name"],
                description=data.get("description", ""),
                definition=data.get("definition"),
                status=data.get("status") or store.DRAFT,
                is_default=data.get("is_default", False),
                working_statuses=data.get("working_statuses"),
                done_statuses=data.get("done_statuses"),
                created_by=request.user,
            )
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return _render(wf, http.HTTP_201_CREATED)


class ActiveWorkflowView(TenantWorkflowView):
    """GET /desk/workflows/active/"""

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        try:
            wf = store.get_active_workflow(request.tenant)
        except store.WorkflowNotFound as exc:
            raise _store_error(exc)
        return _render(wf)


class WorkflowStatusCatalogView(TenantWorkflowView):
    """GET /desk/workflows/statuses/"""

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        return Response(workflow_status_catalog(request.tenant))


class CanCreateTicketView(TenantWorkflowView):
    """
    GET /desk/workflows/can-create/

    Whether the caller may create tickets under the active workflow.
    """

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        return Response(creation_eligibility(request.tenant, request.user))


# =============================================================
# API: Single workflow
# =============================================================

class WorkflowDetailView(TenantWorkflowView):
    """
    GET    /desk/workflows/<uuid>/
    PATCH  /desk/workflows/<uuid>/   (appends a new version)
    DELETE /desk/workflows/<uuid>/
    """

    @extend_schema(tags=["Workflows"])
    def get(self, request, pk):
        return _render(_get_workflow(request, pk))

    @extend_schema(tags=["Workflows"], request=WorkflowWriteSerializer)
    def patch(self, request, pk):
        wf = _get_workflow(request, pk)

        ser = WorkflowWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        changes = dict(ser.validated_data)
        definition = changes.pop("definition", None)
        changes = {k: v for k, v in changes.items() if k in store.EDITABLE_FIELDS}

        try:
            new = store.save_edit(wf, definition=definition, **changes)
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return _render(new)

    @extend_schema(tags=["Workflows"])
    def delete(self, request, pk):
        wf = _get_workflow(request, pk)
        try:
            mode = store.delete_workflow(wf)
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return Response({"id": str(wf.pk), "deleted": mode})


class WorkflowActivateView(TenantWorkflowView):
    """
    POST /desk/workflows/<uuid>/activate/

    Body (optional):
        { "working_statuses": [...], "done_statuses": [...] }
    """

    @extend_schema(tags=["Workflows"], request=WorkflowActivateSerializer)
    def post(self, request, pk):
        wf = _get_workflow(request, pk)
        ser = WorkflowActivateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        try:
            wf = store.activate_workflow(
                wf,
                working_statuses=ser.validated_data.get("working_statuses"),
                done_statuses=ser.validated_data.get("done_statuses"),
            )
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return _render(wf)


class WorkflowDeactivateView(TenantWorkflowView):
    """POST /desk/workflows/<uuid>/deactivate/"""

    @extend_schema(tags=["Workflows"])
    def post(self, request, pk):
        wf = _get_workflow(request, pk)
        try:
            wf = store.deactivate_workflow(wf)
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return _render(wf)


class WorkflowSetDefaultView(TenantWorkflowView):
    """POST /desk/workflows/<uuid>/set-default/"""

    @extend_schema(tags=["Workflows"])
    def post(self, request, pk):
        wf = _get_workflow(request, pk)
        try:
            wf = store.set_default_workflow(wf)
        except (store.WorkflowNotFound, DjangoValidationError) as exc:
            raise _store_error(exc)
        return _render(wf)

# desk_core/tests/test_workflow_service.py

import pytest
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from desk_core.models import Ticket, WorkflowDefinition, WorkflowEvent
from desk_core.services import workflow_service as svc
from desk_core.signals import workflow_action_requested
from desk_core.tests.helpers import edge, node
from desk_core.workflows import store
from desk_core.workflows.snapshots import backfill_missing_snapshots, capture_snapshot


# =============================================================
# Roles
# =============================================================

@pytest.mark.django_db
def test_user_roles_are_normalized(tenant, user_manager, user_staff):
    assert svc.get_user_roles(user_manager, tenant) == {"SUPPORT_MANAGER"}
    assert svc.get_user_roles(user_staff, tenant) == {"SUPPORT_STAFF"}
    assert svc.primary_role({"END_USER", "ADMIN"}) == "ADMIN"


@pytest.mark.django_db
def test_roles_do_not_leak_across_tenants(other_tenant, user_staff):
    assert svc.get_user_roles(user_staff, other_tenant) == set()


# =============================================================
# Creation
# =============================================================

@pytest.mark.django_db
def test_create_ticket_uses_active_workflow(tenant, user_end, system_default):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="VPN down", priority="high")

    assert ticket.status == "NEW"
    assert ticket.priority == "HIGH"
    assert ticket.ticket_number == "TKT-000001"
    assert ticket.workflow_id == system_default.pk
    assert ticket.workflow_version == 1
    assert ticket.workflow_snapshot == capture_snapshot(system_default)

    event = WorkflowEvent.objects.get(ticket=ticket)
    assert event.event_type == WorkflowEvent.CREATED
    assert event.to_status == "NEW"
    assert event.edge_id == "e0-create"
    assert event.role == "END_USER"


@pytest.mark.django_db
def test_create_denied_for_role_outside_create_edge(tenant, user_end, workflow_factory):
    definition = {
        "nodes": [node("start", initial=True), node("triage", "Triage")],
        "edges": [edge("c", "start", "triage", ["SUPPORT_STAFF"], create=True)],
    }
    store.activate_workflow(workflow_factory(definition=definition))

    with pytest.raises(PermissionDenied):
        svc.create_ticket(tenant=tenant, user=user_end, title="Nope")

    eligibility = svc.creation_eligibility(tenant, user_end)
    assert eligibility["canCreate"] is False
    assert eligibility["allowedRoles"] == ["SUPPORT_STAFF"]
    assert eligibility["initialStatus"] == "TRIAGE"


@pytest.mark.django_db
def test_create_requires_active_workflow(tenant, user_end, system_default):
    WorkflowDefinition.objects.filter(pk=system_default.pk).update(status=store.INACTIVE)
    with pytest.raises(ValidationError):
        svc.create_ticket(tenant=tenant, user=user_end, title="Orphan")
    assert svc.creation_eligibility(tenant, user_end)["canCreate"] is False


@pytest.mark.django_db
def test_create_edge_actions_run(tenant, user_staff, workflow_factory):
    definition = {
        "nodes": [node("start", initial=True), node("new", "New")],
        "edges": [
            edge(
                "c",
                "start",
                "new",
                ["SUPPORT_STAFF"],
                create=True,
                actions=[{"type": "ASSIGN_TO_USER", "config": {"assignToCurrentUser": True}}],
            )
        ],
    }
    store.activate_workflow(workflow_factory(definition=definition))
    ticket = svc.create_ticket(tenant=tenant, user=user_staff, title="Self-assigned")
    ticket.refresh_from_db()
    assert ticket.assigned_to_id == user_staff.pk


# =============================================================
# Transitions
# =============================================================

@pytest.mark.django_db
def test_happy_path_to_closed(tenant, user_end, user_staff):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Laptop")

    for target in ("open", "In Progress", "RESOLVED", "closed"):
        ticket = svc.perform_transition(ticket=ticket, target_status=target, user=user_staff)

    assert ticket.status == "CLOSED"
    assert ticket.closed_at is not None
    events = list(
        WorkflowEvent.objects.filter(ticket=ticket, event_type=WorkflowEvent.TRANSITIONED)
        .order_by("id")
        .values_list("from_status", "to_status")
    )
    assert events == [
        ("NEW", "OPEN"),
        ("OPEN", "IN_PROGRESS"),
        ("IN_PROGRESS", "RESOLVED"),
        ("RESOLVED", "CLOSED"),
    ]

    # reopen clears closed_at; end users may reopen
    ticket = svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_end)
    assert ticket.status == "OPEN"
    assert ticket.closed_at is None


@pytest.mark.django_db
def test_end_user_cannot_work_ticket(tenant, user_end):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Mouse")
    with pytest.raises(PermissionDenied):
        svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_end)
    ticket.refresh_from_db()
    assert ticket.status == "NEW"


@pytest.mark.django_db
def test_illegal_jump_is_a_validation_error(tenant, user_end, user_staff):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Screen")
    with pytest.raises(ValidationError) as exc:
        svc.perform_transition(ticket=ticket, target_status="CLOSED", user=user_staff)
    assert exc.value.detail["code"] == "NO_SUCH_TRANSITION"


@pytest.mark.django_db
def test_same_status_is_a_no_op(tenant, user_end, user_staff):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Noop")
    result = svc.perform_transition(ticket=ticket, target_status="new", user=user_staff)
    assert result.status == "NEW"
    assert not WorkflowEvent.objects.filter(ticket=ticket, event_type=WorkflowEvent.TRANSITIONED).exists()


@pytest.mark.django_db
def test_same_status_still_requires_edge_rights(tenant, user_end, workflow_factory, approval_definition):
    store.activate_workflow(workflow_factory(definition=approval_definition))
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Nudge")

    # END_USER only holds the create edge here
    with pytest.raises(PermissionDenied):
        svc.perform_transition(ticket=ticket, target_status="NEW", user=user_end)
    assert not WorkflowEvent.objects.filter(ticket=ticket, event_type=WorkflowEvent.TRANSITIONED).exists()


@pytest.mark.django_db
def test_same_status_outside_workflow_is_unknown(tenant, user_staff, system_default, ticket_factory):
    ticket = ticket_factory(status="PENDING_VENDOR", workflow=system_default)
    with pytest.raises(ValidationError) as exc:
        svc.perform_transition(ticket=ticket, target_status="pending vendor", user=user_staff)
    assert exc.value.detail["code"] == "UNKNOWN_STATUS"


@pytest.mark.django_db
def test_snapshot_survives_workflow_edit(tenant, user_end, user_manager, user_staff, workflow_factory, approval_definition):
    wf = store.activate_workflow(workflow_factory(definition=approval_definition))
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Old rules")

    # new version lets staff open tickets
    relaxed = store.save_edit(
        wf,
        definition={
            "nodes": approval_definition["nodes"],
            "edges": [
                edge("c", "start", "new", ["END_USER"], create=True),
                edge("e1", "new", "open", ["SUPPORT_STAFF"]),
            ],
        },
    )
    assert relaxed.version == 2

    with pytest.raises(PermissionDenied):
        svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_staff)

    ticket = svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_manager)
    assert ticket.status == "OPEN"
    assert ticket.workflow_version == 1


@pytest.mark.django_db
def test_ticket_without_snapshot_uses_active_then_binds(tenant, user_staff, system_default, ticket_factory):
    ticket = ticket_factory(status="new")
    assert ticket.workflow_id is None

    ticket = svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_staff)
    assert ticket.status == "OPEN"
    assert ticket.workflow_id == system_default.pk


@pytest.mark.django_db
def test_no_workflow_is_not_found(tenant, user_staff, system_default, ticket_factory):
    ticket = ticket_factory(status="NEW")
    WorkflowDefinition.objects.filter(pk=system_default.pk).update(status=store.INACTIVE, is_system_default=False)

    with pytest.raises(NotFound):
        svc.perform_transition(ticket=ticket, target_status="OPEN", user=user_staff)


@pytest.mark.django_db
def test_transition_actions_run_after_validation(tenant, user_end, user_staff, workflow_factory):
    definition = {
        "nodes": [node("start", initial=True), node("open", "Open"), node("done", "Done")],
        "edges": [
            edge("c", "start", "open", ["END_USER"], create=True),
            edge(
                "finish",
                "open",
                "done",
                ["SUPPORT_STAFF"],
                conditions=["REQUIRES_COMMENT"],
                actions=[
                    {"type": "CALCULATE_RESOLUTION_TIME"},
                    {"type": "UPDATE_PRIORITY", "config": {"newPriority": "low"}},
                    {"type": "LOG_ACTIVITY", "config": {"message": "Wrapped up"}},
                    {"type": "SEND_NOTIFICATION", "config": {"to": "requester"}},
                    {"type": "NOT_A_REAL_ACTION"},
                ],
            ),
        ],
    }
    store.activate_workflow(workflow_factory(definition=definition, done_statuses=["DONE"]))
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Actions", priority="HIGH")

    received = []

    def _listener(sender, ticket, action_type, config, **kwargs):
        received.append((action_type, config))

    workflow_action_requested.connect(_listener)
    try:
        with pytest.raises(ValidationError):
            svc.perform_transition(ticket=ticket, target_status="DONE", user=user_staff)
        assert received == []

        ticket = svc.perform_transition(ticket=ticket, target_status="DONE", user=user_staff, comment="ok")
    finally:
        workflow_action_requested.disconnect(_listener)

    assert ticket.status == "DONE"
    assert ticket.priority == "LOW"
    assert "resolution_seconds" in ticket.custom_fields
    assert received == [("SEND_NOTIFICATION", {"to": "requester"})]
    assert WorkflowEvent.objects.filter(
        ticket=ticket, event_type=WorkflowEvent.ACTIVITY, comment="Wrapped up"
    ).exists()


@pytest.mark.django_db
def test_available_transitions_for_ticket(tenant, user_end, user_staff):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="List me")
    staff_view = svc.transitions_for(ticket, user_staff)
    assert [(t["toStatus"], t["canExecute"]) for t in staff_view] == [("OPEN", True)]
    end_view = svc.transitions_for(ticket, user_end)
    assert [(t["toStatus"], t["canExecute"]) for t in end_view] == [("OPEN", False)]


# =============================================================
# Snapshot freezing and backfill
# =============================================================

@pytest.mark.django_db
def test_status_and_snapshot_are_guarded(tenant, user_end):
    ticket = svc.create_ticket(tenant=tenant, user=user_end, title="Guarded")

    ticket.status = "CLOSED"
    with pytest.raises(DjangoPermissionDenied):
        ticket.save()

    ticket = Ticket.objects.get(pk=ticket.pk)
    ticket.workflow_snapshot = {"id": "forged"}
    with pytest.raises(DjangoPermissionDenied):
        ticket.save(_workflow_bypass=True)

    ticket = Ticket.objects.get(pk=ticket.pk)
    ticket.title = "Renamed"
    ticket.save()
    assert Ticket.objects.get(pk=ticket.pk).title == "Renamed"


@pytest.mark.django_db
def test_backfill_is_idempotent(tenant, system_default, ticket_factory):
    missing = ticket_factory(workflow=system_default)
    frozen = ticket_factory(workflow=system_default, snapshot={"id": "x", "version": 9, "definition": {}})
    ticket_factory()  # no workflow, not a candidate

    first = backfill_missing_snapshots(tenant, batch_size=1)
    assert first == {"scanned": 1, "updated": 1, "skipped": 0}

    missing.refresh_from_db()
    assert missing.workflow_snapshot == capture_snapshot(system_default)
    assert missing.workflow_version == 1
    frozen.refresh_from_db()
    assert frozen.workflow_version == 9

    assert backfill_missing_snapshots(tenant) == {"scanned": 0, "updated": 0, "skipped": 0}

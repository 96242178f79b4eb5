# desk_core/tests/test_workflow_store.py

import pytest

from desk_core.models import Tenant, WorkflowDefinition
from desk_core.workflows import store
from desk_core.workflows.defaults import SYSTEM_DEFAULT_NAME


def _active_ids(tenant):
    return list(
        WorkflowDefinition.objects.filter(tenant=tenant, status=store.ACTIVE).values_list("pk", flat=True)
    )


@pytest.mark.django_db
def test_new_tenant_gets_active_system_default(tenant):
    wf = store.get_active_workflow(tenant)
    assert wf.is_system_default is True
    assert wf.name == SYSTEM_DEFAULT_NAME
    assert wf.version == 1
    assert wf.working_statuses == ["NEW", "OPEN", "IN_PROGRESS", "REOPENED"]


@pytest.mark.django_db
def test_ensure_system_default_is_idempotent(tenant, system_default):
    wf, created = store.ensure_system_default_workflow(tenant)
    assert created is False
    assert wf.pk == system_default.pk
    assert WorkflowDefinition.objects.filter(tenant=tenant, is_system_default=True).count() == 1


@pytest.mark.django_db
def test_ensure_promotes_existing_workflow():
    tenant = Tenant.objects.bulk_create([Tenant(code="RAW", name="No signal")])[0]
    tenant = Tenant.objects.get(code="RAW")
    assert not WorkflowDefinition.objects.filter(tenant=tenant).exists()

    legacy = WorkflowDefinition.objects.create(tenant=tenant, name="Legacy", status=store.INACTIVE)
    wf, created = store.ensure_system_default_workflow(tenant)

    assert created is False
    assert wf.pk == legacy.pk
    wf.refresh_from_db()
    assert wf.is_system_default is True
    assert wf.status == store.ACTIVE


@pytest.mark.django_db
def test_activation_keeps_a_single_active_workflow(tenant, system_default, workflow_factory):
    first = workflow_factory(name="Hardware")
    second = workflow_factory(name="Software")

    store.activate_workflow(first)
    assert _active_ids(tenant) == [first.pk]

    store.activate_workflow(second, done_statuses=["CLOSED"])
    assert _active_ids(tenant) == [second.pk]

    system_default.refresh_from_db()
    first.refresh_from_db()
    assert system_default.status == store.INACTIVE
    assert first.status == store.INACTIVE
    assert store.get_active_workflow(tenant).done_statuses == ["CLOSED"]


@pytest.mark.django_db
def test_create_as_active_replaces_current(tenant, workflow_factory):
    wf = workflow_factory(name="Escalations", status="active")
    assert _active_ids(tenant) == [wf.pk]


@pytest.mark.django_db
def test_edit_appends_version(tenant, workflow_factory, approval_definition):
    v1 = store.activate_workflow(workflow_factory(name="Helpdesk"))

    v2 = store.save_edit(v1, definition=approval_definition, name="Helpdesk 2")
    assert v2.pk != v1.pk
    assert v2.lineage == v1.lineage
    assert v2.version == 2
    assert v2.is_latest is True
    assert v2.definition == approval_definition

    v1.refresh_from_db()
    assert v1.is_latest is False
    assert v1.status == store.ARCHIVED
    assert v1.name == "Helpdesk"

    v3 = store.save_edit(v2, description="third")
    assert v3.version == 3
    assert v3.definition == approval_definition


@pytest.mark.django_db
def test_edit_active_version_to_active_keeps_single_active(tenant, workflow_factory):
    v1 = store.activate_workflow(workflow_factory(name="Ops"))
    v2 = store.save_edit(v1, status=store.ACTIVE)
    assert _active_ids(tenant) == [v2.pk]


@pytest.mark.django_db
def test_old_versions_are_locked(workflow_factory):
    v1 = workflow_factory(name="Locked")
    store.save_edit(v1, name="Locked 2")
    with pytest.raises(store.WorkflowLocked):
        store.save_edit(v1, name="again")


@pytest.mark.django_db
def test_edit_rejects_unknown_fields(workflow_factory):
    wf = workflow_factory()
    with pytest.raises(store.ValidationError):
        store.save_edit(wf, tenant_id=99)


@pytest.mark.django_db
def test_system_default_cannot_be_changed(system_default):
    with pytest.raises(store.WorkflowLocked):
        store.save_edit(system_default, name="Mine now")
    with pytest.raises(store.WorkflowLocked):
        store.deactivate_workflow(system_default)
    with pytest.raises(store.WorkflowLocked):
        store.delete_workflow(system_default)


@pytest.mark.django_db
def test_deactivating_active_falls_back_to_system_default(tenant, system_default, workflow_factory):
    wf = store.activate_workflow(workflow_factory(name="Temp"))
    store.deactivate_workflow(wf)
    assert _active_ids(tenant) == [system_default.pk]


@pytest.mark.django_db
@pytest.mark.parametrize("new_status", [store.DRAFT, store.INACTIVE, store.ARCHIVED])
def test_editing_active_out_of_active_falls_back_to_system_default(tenant, system_default, workflow_factory, new_status):
    v1 = store.activate_workflow(workflow_factory(name="Temp"))
    v2 = store.save_edit(v1, status=new_status)

    assert v2.status == new_status
    assert _active_ids(tenant) == [system_default.pk]
    assert store.find_active_workflow(tenant).pk == system_default.pk


@pytest.mark.django_db
def test_unreferenced_delete_is_hard(tenant, system_default, workflow_factory):
    wf = store.activate_workflow(workflow_factory(name="Unused"))
    lineage = wf.lineage
    store.save_edit(wf, name="Unused 2")

    assert store.delete_workflow(wf) == "hard"
    assert not WorkflowDefinition.objects.filter(lineage=lineage).exists()
    assert _active_ids(tenant) == [system_default.pk]


@pytest.mark.django_db
def test_referenced_delete_is_soft(tenant, workflow_factory, ticket_factory):
    wf = workflow_factory(name="In use")
    ticket_factory(workflow=wf)

    assert store.delete_workflow(wf) == "soft"
    wf.refresh_from_db()
    assert wf.deleted_at is not None
    assert wf.status == store.ARCHIVED

    with pytest.raises(store.WorkflowNotFound):
        store.get_workflow_by_id(tenant, wf.pk)
    assert store.get_workflow_by_id(tenant, wf.pk, include_deleted=True).pk == wf.pk
    assert wf.pk not in [w.pk for w in store.list_workflows(tenant)]


@pytest.mark.django_db
def test_lookup_is_tenant_scoped(other_tenant, workflow_factory):
    wf = workflow_factory()
    with pytest.raises(store.WorkflowNotFound):
        store.get_workflow_by_id(other_tenant, wf.pk)
    with pytest.raises(store.WorkflowNotFound):
        store.get_workflow_by_id(other_tenant, "not-a-uuid")


@pytest.mark.django_db
def test_set_default_is_exclusive(workflow_factory):
    a = workflow_factory(name="A", is_default=True)
    b = workflow_factory(name="B")
    store.set_default_workflow(b)
    a.refresh_from_db()
    assert a.is_default is False
    b.refresh_from_db()
    assert b.is_default is True


@pytest.mark.django_db
def test_repair_restores_an_active_workflow(tenant, system_default):
    WorkflowDefinition.objects.filter(pk=system_default.pk).update(status=store.INACTIVE)
    assert store.find_active_workflow(tenant) is None

    result = store.repair_active_workflows(tenant)
    assert result == {"kept": str(system_default.pk), "deactivated": 0}
    assert _active_ids(tenant) == [system_default.pk]


@pytest.mark.django_db
def test_list_filters_by_status(tenant, workflow_factory):
    workflow_factory(name="Draft one")
    names = [w.name for w in store.list_workflows(tenant, status="draft")]
    assert names == ["Draft one"]

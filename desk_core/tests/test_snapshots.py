# desk_core/tests/test_snapshots.py

import pytest

from desk_core.workflows.defaults import default_definition
from desk_core.workflows.snapshots import SNAPSHOT_KEYS, capture_snapshot, snapshot_graph
from desk_core.workflows.store import save_edit


def _source():
    return {
        "id": "wf-7",
        "name": "Field service",
        "status": "ACTIVE",
        "version": "3",
        "definition": default_definition(),
        "workingStatuses": ["OPEN"],
        "doneStatuses": ["CLOSED"],
    }


def test_capture_is_deterministic():
    src = _source()
    assert capture_snapshot(src) == capture_snapshot(src)
    snap = capture_snapshot(src)
    assert tuple(snap) == SNAPSHOT_KEYS
    assert snap["version"] == 3
    assert snap["isActive"] is True


def test_capture_is_isolated_from_source():
    src = _source()
    snap = capture_snapshot(src)

    src["definition"]["nodes"].append({"id": "ghost", "data": {"label": "Ghost"}})
    src["workingStatuses"].append("GHOST")

    assert len(snap["definition"]["nodes"]) == 6
    assert snap["workingStatuses"] == ["OPEN"]
    assert snapshot_graph(snap).node("ghost") is None


def test_empty_snapshot_graph():
    assert snapshot_graph(None).is_empty()


@pytest.mark.django_db
def test_model_snapshot_ignores_later_edits(workflow_factory):
    wf = workflow_factory(name="Editable")
    snap = capture_snapshot(wf)

    edited = default_definition()
    edited["nodes"] = edited["nodes"][:2]
    save_edit(wf, definition=edited)

    wf.refresh_from_db()
    assert capture_snapshot(wf) == snap
    assert snap["id"] == str(wf.pk)
    assert snap["version"] == 1

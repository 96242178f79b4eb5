# desk_core/workflows/statuses.py
"""
Status normalization and status-reference resolution.

Ticket statuses are free-form strings. Legacy data disagrees on three axes:

- case ("open" vs "OPEN")
- separators ("in progress" vs "IN_PROGRESS")
- workflow scoping ("workflow-<uuid>-IN_PROGRESS" vs "IN_PROGRESS")

Every comparison of status values in the engine goes through this module.
Two statuses are equal iff their canonical forms match within the same
resolved workflow scope.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)


COMPOSITE_PREFIX = "workflow-"

# uuid segment must be hyphenated hex; the status name is everything after it
_COMPOSITE_RE = re.compile(r"^workflow-([a-f0-9-]+)-(.+)$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

# Used when a workflow leaves its categorization empty
DEFAULT_WORKING_STATUSES: List[str] = ["NEW", "OPEN", "IN_PROGRESS", "REOPENED"]
DEFAULT_DONE_STATUSES: List[str] = ["CLOSED", "RESOLVED"]

BUCKET_WORKING = "working"
BUCKET_DONE = "done"
BUCKET_HOLD = "hold"


# ===============================================================
# Canonical form
# ===============================================================

def canonicalize_status(value: Any) -> str:
    """
    Uppercase, collapse each whitespace run to one underscore, then trim.

    "in progress", "IN_PROGRESS" and "In  Progress" all map to "IN_PROGRESS".
    The function is idempotent.
    """
    s = str(value or "").upper()
    return _WHITESPACE_RE.sub("_", s).strip()


def statuses_equal(a: Any, b: Any) -> bool:
    return canonicalize_status(a) == canonicalize_status(b)


# ===============================================================
# Status references
# ===============================================================

@dataclass(frozen=True)
class StatusRef:
    """
    A status reference decomposed into its scope and name.

    workflow_id None means "whichever workflow is active"; the caller resolves
    that at evaluation time.
    """

    workflow_id: Optional[str]
    status_name: str
    malformed: bool = False

    def scoped_to(self, active_workflow_id: Optional[str]) -> Optional[str]:
        return self.workflow_id if self.workflow_id is not None else active_workflow_id


def resolve_status_reference(reference: Any) -> StatusRef:
    """
    Split "workflow-<uuid>-<name>" into (uuid, name).

    Fallback for malformed legacy entries that still start with "workflow-":
    split at the last hyphen. Anything that fails both is treated as a bare
    status name, never as an error.
    """
    ref = str(reference or "")

    if not ref.startswith(COMPOSITE_PREFIX):
        return StatusRef(workflow_id=None, status_name=ref)

    m = _COMPOSITE_RE.match(ref)
    if m and m.group(1) and m.group(2):
        return StatusRef(workflow_id=m.group(1), status_name=m.group(2))

    cut = ref.rfind("-")
    if len(COMPOSITE_PREFIX) <= cut < len(ref) - 1:
        workflow_part = ref[len(COMPOSITE_PREFIX):cut]
        if workflow_part:
            logger.warning(
                "Composite status %r did not match the uuid pattern; "
                "split at last hyphen (workflow=%r)",
                ref,
                workflow_part,
            )
            return StatusRef(workflow_id=workflow_part, status_name=ref[cut + 1:])

    logger.warning("Malformed composite status %r treated as a bare status", ref)
    return StatusRef(workflow_id=None, status_name=ref, malformed=True)


def compose_status_reference(workflow_id: Any, status_name: str) -> str:
    return f"{COMPOSITE_PREFIX}{workflow_id}-{status_name}"


# ===============================================================
# Bucketization
# ===============================================================

@dataclass
class StatusBuckets:
    working_by_workflow: Dict[str, Set[str]] = field(default_factory=dict)
    done_by_workflow: Dict[str, Set[str]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Dict[str, List[str]]]:
        return {
            "working": {k: sorted(v) for k, v in self.working_by_workflow.items()},
            "done": {k: sorted(v) for k, v in self.done_by_workflow.items()},
        }


def _read(workflow: Any, *names: str) -> Any:
    for name in names:
        if isinstance(workflow, Mapping):
            if name in workflow:
                return workflow[name]
        elif hasattr(workflow, name):
            return getattr(workflow, name)
    return None


def _group(references: Iterable[Any], fallback_workflow_id: Optional[str]) -> Dict[str, Set[str]]:
    grouped: Dict[str, Set[str]] = {}
    for reference in references or []:
        ref = resolve_status_reference(reference)
        scope = ref.scoped_to(fallback_workflow_id)
        if scope is None:
            continue
        grouped.setdefault(str(scope), set()).add(canonicalize_status(ref.status_name))
    return grouped


def bucketize(workflow: Any, active_workflow_id: Any = None) -> StatusBuckets:
    """
    Group a workflow's working/done status references into per-workflow sets
    of canonical statuses.

    Bare references are scoped to active_workflow_id, or to the workflow's
    own id when no active id is given. Accepts a model instance, a snapshot
    dict or any mapping with workingStatuses/doneStatuses.
    """
    own_id = _read(workflow, "id")
    scope = active_workflow_id if active_workflow_id is not None else own_id
    scope = str(scope) if scope is not None else None

    working = _read(workflow, "working_statuses", "workingStatuses") or []
    done = _read(workflow, "done_statuses", "doneStatuses") or []

    return StatusBuckets(
        working_by_workflow=_group(working, scope),
        done_by_workflow=_group(done, scope),
    )


def effective_status_lists(workflow: Any) -> Dict[str, List[str]]:
    """
    Working/done lists with the system defaults substituted for empty lists.
    """
    working = list(_read(workflow, "working_statuses", "workingStatuses") or [])
    done = list(_read(workflow, "done_statuses", "doneStatuses") or [])
    return {
        "workingStatuses": working or list(DEFAULT_WORKING_STATUSES),
        "doneStatuses": done or list(DEFAULT_DONE_STATUSES),
    }


def classify_status(
    status: Any,
    workflow_id: Any,
    buckets: StatusBuckets,
    active_workflow_id: Any = None,
) -> str:
    """
    Place one ticket status into working / done / hold.

    A ticket matches a bucket entry scoped to its own workflow, or one scoped
    to a different workflow when the ticket belongs to the active workflow.
    Callers decide which workflow a ticket without one belongs to.
    """
    canon = canonicalize_status(status)
    wf = str(workflow_id) if workflow_id is not None else None
    active = str(active_workflow_id) if active_workflow_id is not None else None

    def _hit(grouped: Dict[str, Set[str]]) -> bool:
        for scope, names in grouped.items():
            if canon not in names:
                continue
            if wf is None:
                continue
            if scope == wf or (active is not None and wf == active):
                return True
        return False

    if _hit(buckets.working_by_workflow):
        return BUCKET_WORKING
    if _hit(buckets.done_by_workflow):
        return BUCKET_DONE
    return BUCKET_HOLD


__all__ = [
    "COMPOSITE_PREFIX",
    "DEFAULT_WORKING_STATUSES",
    "DEFAULT_DONE_STATUSES",
    "BUCKET_WORKING",
    "BUCKET_DONE",
    "BUCKET_HOLD",
    "StatusRef",
    "StatusBuckets",
    "canonicalize_status",
    "statuses_equal",
    "resolve_status_reference",
    "compose_status_reference",
    "bucketize",
    "effective_status_lists",
    "classify_status",
]

# desk_core/workflows/actions.py
"""
Edge action dispatch.

Runs only after a transition has been validated and persisted. Actions that
touch the ticket write through queryset updates so the status write guard
never sees them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from django.utils import timezone

from desk_core.models import Ticket, WorkflowEvent
from desk_core.signals import workflow_action_requested
from desk_core.workflows.statuses import DEFAULT_DONE_STATUSES, canonicalize_status

logger = logging.getLogger(__name__)


SEND_NOTIFICATION = "SEND_NOTIFICATION"
ASSIGN_TO_USER = "ASSIGN_TO_USER"
CALCULATE_RESOLUTION_TIME = "CALCULATE_RESOLUTION_TIME"
UPDATE_PRIORITY = "UPDATE_PRIORITY"
SEND_EMAIL = "SEND_EMAIL"
LOG_ACTIVITY = "LOG_ACTIVITY"

PRIORITIES = {code for code, _ in Ticket.PRIORITY_CHOICES}


def action_descriptor(action: Any) -> Dict[str, Any]:
    if isinstance(action, str):
        return {"type": action.strip().upper(), "isActive": True, "config": {}}
    if isinstance(action, Mapping):
        return {
            "type": str(action.get("type") or "").strip().upper(),
            "isActive": bool(action.get("isActive", True)),
            "config": dict(action.get("config") or {}),
        }
    return {"type": "", "isActive": False, "config": {}}


class ActionDispatcher:
    """
    context keys used: user, workflow_id, workflow_version, to_status,
    done_statuses.
    """

    def dispatch(self, action: Any, ticket: Ticket, context: Optional[Mapping[str, Any]] = None) -> bool:
        ctx = context or {}
        desc = action_descriptor(action)
        if not desc["isActive"]:
            return False

        kind = desc["type"]
        handler = getattr(self, f"_do_{kind.lower()}", None)
        if handler is None:
            logger.debug("Ignoring unknown action type %r", kind)
            return False

        handler(ticket, desc["config"], ctx)
        return True

    # -----------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------
    def _do_assign_to_user(self, ticket: Ticket, config, ctx) -> None:
        user = ctx.get("user")
        if config.get("assignToCurrentUser") and user is not None and user.is_authenticated:
            assignee_id = user.pk
        elif config.get("userId"):
            assignee_id = config["userId"]
        else:
            return
        Ticket.objects.filter(pk=ticket.pk).update(assigned_to_id=assignee_id, updated_at=timezone.now())
        ticket.assigned_to_id = assignee_id

    def _do_update_priority(self, ticket: Ticket, config, ctx) -> None:
        priority = str(config.get("newPriority") or "").strip().upper()
        if priority not in PRIORITIES:
            return
        Ticket.objects.filter(pk=ticket.pk).update(priority=priority, updated_at=timezone.now())
        ticket.priority = priority

    def _do_calculate_resolution_time(self, ticket: Ticket, config, ctx) -> None:
        done = {canonicalize_status(s) for s in (ctx.get("done_statuses") or DEFAULT_DONE_STATUSES)}
        if canonicalize_status(ctx.get("to_status") or ticket.status) not in done:
            return
        seconds = max(0, int((timezone.now() - ticket.created_at).total_seconds()))
        fields = dict(ticket.custom_fields or {})
        fields["resolution_seconds"] = seconds
        Ticket.objects.filter(pk=ticket.pk).update(custom_fields=fields)
        ticket.custom_fields = fields

    def _do_log_activity(self, ticket: Ticket, config, ctx) -> None:
        user = ctx.get("user")
        WorkflowEvent.objects.create(
            event_type=WorkflowEvent.ACTIVITY,
            ticket=ticket,
            tenant_id=ticket.tenant_id,
            workflow_id=ctx.get("workflow_id"),
            workflow_version=ctx.get("workflow_version"),
            from_status=ticket.status,
            to_status=ticket.status,
            performed_by=user if user is not None and user.is_authenticated else None,
            comment=config.get("message") or "Workflow action executed",
        )

    def _request(self, kind: str, ticket: Ticket, config, ctx) -> None:
        workflow_action_requested.send(
            sender=Ticket,
            ticket=ticket,
            action_type=kind,
            config=dict(config),
            user=ctx.get("user"),
        )

    def _do_send_notification(self, ticket: Ticket, config, ctx) -> None:
        self._request(SEND_NOTIFICATION, ticket, config, ctx)

    def _do_send_email(self, ticket: Ticket, config, ctx) -> None:
        self._request(SEND_EMAIL, ticket, config, ctx)


def dispatch_actions(
    edge: Any,
    ticket: Ticket,
    context: Optional[Mapping[str, Any]] = None,
    dispatcher: Optional[ActionDispatcher] = None,
) -> List[str]:
    """Run an edge's actions in order; returns the types that ran."""
    d = dispatcher or ActionDispatcher()
    ran: List[str] = []
    for action in getattr(edge, "actions", ()) or ():
        if d.dispatch(action, ticket, context):
            ran.append(action_descriptor(action)["type"])
    return ran


__all__ = [
    "SEND_NOTIFICATION",
    "ASSIGN_TO_USER",
    "CALCULATE_RESOLUTION_TIME",
    "UPDATE_PRIORITY",
    "SEND_EMAIL",
    "LOG_ACTIVITY",
    "ActionDispatcher",
    "action_descriptor",
    "dispatch_actions",
]

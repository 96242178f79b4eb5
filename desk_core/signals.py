# desk_core/signals.py
from __future__ import annotations

import logging
from threading import local

from django.db.backends.signals import connection_created
from django.db.models.signals import post_save
from django.dispatch import Signal, receiver

from desk_core.models import Tenant

logger = logging.getLogger(__name__)

# ===============================================================
# Thread-local user storage (safe + explicit)
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


# ===============================================================
# Workflow signals
# ===============================================================

# sent after a transition has been committed
# kwargs: ticket, event, from_status, to_status, user
ticket_transitioned = Signal()

# SEND_NOTIFICATION / SEND_EMAIL actions; delivery belongs to whoever listens
# kwargs: ticket, action_type, config, user
workflow_action_requested = Signal()


@receiver(ticket_transitioned)
def log_ticket_transition(sender, ticket, from_status, to_status, user=None, **kwargs):
    logger.info(
        "Ticket %s moved %s -> %s by %s",
        ticket.ticket_number,
        from_status,
        to_status,
        getattr(user, "username", "system"),
    )


# ===============================================================
# Tenant bootstrap
# ===============================================================
@receiver(post_save, sender=Tenant)
def seed_tenant_workflow(sender, instance: Tenant, created: bool, **kwargs):
    """Every new tenant starts with the system default workflow."""
    if not created or kwargs.get("raw"):
        return

    from desk_core.workflows.store import ensure_system_default_workflow

    user = get_current_user()
    ensure_system_default_workflow(
        instance,
        created_by=user if user is not None and user.is_authenticated else None,
    )


# ===============================================================
# SQLite status canonicalization
# ===============================================================
@receiver(connection_created)
def register_sqlite_functions(sender, connection, **kwargs):
    """Lets dashboard queries canonicalize statuses exactly like the engine."""
    if connection.vendor != "sqlite":
        return

    from desk_core.services.reporting import SQLITE_CANONICAL_FUNCTION
    from desk_core.workflows.statuses import canonicalize_status

    connection.connection.create_function(
        SQLITE_CANONICAL_FUNCTION, 1, canonicalize_status, deterministic=True
    )

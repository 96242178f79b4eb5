# desk_core/tests/conftest.py

from __future__ import annotations

import copy
import uuid
from typing import Any, Callable, Dict, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from desk_core.models import Tenant, Ticket, UserRole
from desk_core.tests.helpers import edge, node
from desk_core.workflows import store
from desk_core.workflows.defaults import default_definition


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # DRF's force_authenticate(user=None) calls self.logout() internally
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


# =============================================================
# Tenant and users
# =============================================================

@pytest.fixture
def tenant(db) -> Tenant:
    """New tenants are seeded with an ACTIVE system default workflow."""
    return Tenant.objects.create(code=_rand("T"), name="Acme Support")


@pytest.fixture
def other_tenant(db) -> Tenant:
    return Tenant.objects.create(code=_rand("O"), name="Other Support")


def _user(username: str):
    User = get_user_model()
    user, _ = User.objects.get_or_create(username=username, defaults={"is_staff": False, "is_superuser": False})
    user.set_password("pass123")
    user.save(update_fields=["password"])
    return user


@pytest.fixture
def user_admin(db, tenant):
    user = _user("desk_admin")
    UserRole.objects.get_or_create(user=user, tenant=tenant, role=UserRole.ADMIN)
    return user


@pytest.fixture
def user_manager(db, tenant):
    user = _user("manager")
    UserRole.objects.get_or_create(user=user, tenant=tenant, role="MANAGER")
    return user


@pytest.fixture
def user_staff(db, tenant):
    user = _user("agent")
    UserRole.objects.get_or_create(user=user, tenant=tenant, role="STAFF")
    return user


@pytest.fixture
def user_end(db, tenant):
    user = _user("customer")
    UserRole.objects.get_or_create(user=user, tenant=tenant, role=UserRole.END_USER)
    return user


# =============================================================
# Workflows and tickets
# =============================================================

@pytest.fixture
def system_default(tenant):
    return store.get_system_default_workflow(tenant)


@pytest.fixture
def default_graph() -> Dict[str, Any]:
    return default_definition()


@pytest.fixture
def approval_definition() -> Dict[str, Any]:
    """
    new -> open (manager), open -> closed (staff), closed -> open (manager)
    """
    return {
        "nodes": [
            node("start", "Create Ticket", initial=True),
            node("new", "New"),
            node("open", "Open"),
            node("closed", "Closed"),
        ],
        "edges": [
            edge("c", "start", "new", ["END_USER", "SUPPORT_STAFF", "SUPPORT_MANAGER", "ADMIN"], create=True),
            edge("e1", "new", "open", ["SUPPORT_MANAGER"]),
            edge("e2", "open", "closed", ["SUPPORT_STAFF"]),
            edge("e3", "closed", "open", ["SUPPORT_MANAGER"]),
        ],
    }


@pytest.fixture
def workflow_factory(tenant) -> Callable[..., Any]:
    def _factory(*, name: Optional[str] = None, definition=None, status: str = store.DRAFT, **extra):
        return store.create_workflow(
            tenant,
            name=name or _rand("Workflow"),
            definition=copy.deepcopy(definition) if definition is not None else default_definition(),
            status=status,
            **extra,
        )

    return _factory


@pytest.fixture
def ticket_factory(tenant, user_end) -> Callable[..., Ticket]:
    """
    Tickets built straight through the ORM, for tests that need a given
    status or workflow binding without going through the create edge.
    """

    def _factory(*, status: str = "NEW", workflow=None, snapshot=None, requester=None, **extra) -> Ticket:
        return Ticket.objects.create(
            tenant=extra.pop("tenant", tenant),
            ticket_number=_rand("TKT"),
            title=extra.pop("title", "Printer on fire"),
            status=status,
            requester=requester or user_end,
            workflow=workflow,
            workflow_snapshot=snapshot,
            workflow_version=snapshot["version"] if snapshot else None,
            **extra,
        )

    return _factory


@pytest.fixture
def tenant_headers(tenant) -> Dict[str, str]:
    return {"HTTP_X_TENANT": tenant.code}

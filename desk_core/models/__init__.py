from .core import TimeStampedModel, Tenant, UserRole, Ticket
from .workflow import WorkflowDefinition
from .workflow_event import WorkflowEvent

__all__ = [
    "TimeStampedModel",
    "Tenant",
    "UserRole",
    "Ticket",
    "WorkflowDefinition",
    "WorkflowEvent",
]

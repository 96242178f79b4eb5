# desk_core/workflows/conditions.py
"""
Edge condition evaluation.

Conditions are opaque to the validator: it only asks an evaluator for a
pass/fail verdict and, on failure, a reason that is shown to the user as-is.
BuiltinConditionEvaluator covers the condition types the workflow editor can
produce. Unknown types pass so graphs authored for newer evaluators still load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)


REQUIRES_COMMENT = "REQUIRES_COMMENT"
REQUIRES_RESOLUTION = "REQUIRES_RESOLUTION"
REQUIRES_ASSIGNMENT = "REQUIRES_ASSIGNMENT"
REQUIRES_APPROVAL = "REQUIRES_APPROVAL"
PRIORITY_HIGH = "PRIORITY_HIGH"
CUSTOM_FIELD_VALUE = "CUSTOM_FIELD_VALUE"

HIGH_PRIORITIES = {"HIGH", "CRITICAL"}


@dataclass(frozen=True)
class ConditionResult:
    passed: bool
    reason: str = ""

    @classmethod
    def ok(cls) -> "ConditionResult":
        return cls(passed=True)

    @classmethod
    def fail(cls, reason: str) -> "ConditionResult":
        return cls(passed=False, reason=reason)


class ConditionEvaluator(Protocol):
    def evaluate(
        self,
        condition: Any,
        ticket: Any,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ConditionResult:
        ...


def ticket_value(ticket: Any, *names: str) -> Any:
    """Read a field from a model instance or a plain dict ticket."""
    for name in names:
        if isinstance(ticket, Mapping):
            if name in ticket:
                return ticket[name]
        elif ticket is not None and hasattr(ticket, name):
            return getattr(ticket, name)
    return None


def condition_descriptor(condition: Any) -> Dict[str, Any]:
    """
    Normalize a descriptor. Plain strings are shorthand for a required
    condition of that type.
    """
    if isinstance(condition, str):
        return {"type": condition.strip().upper(), "isRequired": True, "config": {}}
    if isinstance(condition, Mapping):
        # editor writes field/operator/value either flat or under "config"
        config = dict(condition.get("config") or {})
        for key in ("field", "operator", "value"):
            if key in condition and key not in config:
                config[key] = condition[key]
        return {
            "type": str(condition.get("type") or "").strip().upper(),
            "isRequired": bool(condition.get("isRequired", True)),
            "config": config,
        }
    return {"type": "", "isRequired": False, "config": {}}


class BuiltinConditionEvaluator:
    def evaluate(
        self,
        condition: Any,
        ticket: Any,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ConditionResult:
        ctx = context or {}
        desc = condition_descriptor(condition)

        if not desc["isRequired"]:
            return ConditionResult.ok()

        kind = desc["type"]
        config = desc["config"]

        if kind == REQUIRES_COMMENT:
            if not str(ctx.get("comment") or "").strip():
                return ConditionResult.fail("A comment is required for this transition")
            return ConditionResult.ok()

        if kind == REQUIRES_RESOLUTION:
            resolution = ctx.get("resolution") or ticket_value(ticket, "resolution")
            if not str(resolution or "").strip():
                return ConditionResult.fail("Resolution is required for this transition")
            return ConditionResult.ok()

        if kind == REQUIRES_ASSIGNMENT:
            if not ticket_value(ticket, "assigned_to_id", "assignedToId", "assigned_to"):
                return ConditionResult.fail("Ticket must be assigned before this transition")
            return ConditionResult.ok()

        if kind == REQUIRES_APPROVAL:
            # approvals live outside the desk; nothing to check here yet
            return ConditionResult.ok()

        if kind == PRIORITY_HIGH:
            priority = str(ticket_value(ticket, "priority") or "").strip().upper()
            if priority not in HIGH_PRIORITIES:
                return ConditionResult.fail("This transition requires high priority")
            return ConditionResult.ok()

        if kind == CUSTOM_FIELD_VALUE:
            field_name = config.get("field")
            if not field_name:
                return ConditionResult.ok()
            fields = ticket_value(ticket, "custom_fields", "customFields") or {}
            actual = fields.get(field_name) if isinstance(fields, Mapping) else None
            operator = str(config.get("operator") or "equals").strip().lower()
            expected = config.get("value")

            if operator == "exists":
                if actual in (None, ""):
                    return ConditionResult.fail(f"Custom field '{field_name}' is required")
                return ConditionResult.ok()
            if operator == "not_equals":
                if actual == expected:
                    return ConditionResult.fail(
                        f"Custom field '{field_name}' must not equal {expected!r}"
                    )
                return ConditionResult.ok()
            if actual != expected:
                return ConditionResult.fail(
                    f"Custom field '{field_name}' must equal {expected!r}"
                )
            return ConditionResult.ok()

        logger.debug("Ignoring unknown condition type %r", kind)
        return ConditionResult.ok()


def evaluate_conditions(
    conditions: Any,
    ticket: Any,
    context: Optional[Mapping[str, Any]] = None,
    evaluator: Optional[ConditionEvaluator] = None,
) -> ConditionResult:
    """First failing condition wins."""
    ev = evaluator or BuiltinConditionEvaluator()
    for condition in conditions or ():
        result = ev.evaluate(condition, ticket, context)
        if not result.passed:
            return result
    return ConditionResult.ok()


__all__ = [
    "REQUIRES_COMMENT",
    "REQUIRES_RESOLUTION",
    "REQUIRES_ASSIGNMENT",
    "REQUIRES_APPROVAL",
    "PRIORITY_HIGH",
    "CUSTOM_FIELD_VALUE",
    "ConditionResult",
    "ConditionEvaluator",
    "BuiltinConditionEvaluator",
    "ticket_value",
    "condition_descriptor",
    "evaluate_conditions",
]

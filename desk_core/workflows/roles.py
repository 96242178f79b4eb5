# desk_core/workflows/roles.py
from __future__ import annotations

import re
from typing import Dict, Iterable, Set


# ===============================================================
# Role normalization
# ===============================================================

ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": "ADMIN",
    "SYSTEM_ADMIN": "ADMIN",
    "SUPERUSER": "ADMIN",
    "SUPPORT_MANAGER": "SUPPORT_MANAGER",
    "MANAGER": "SUPPORT_MANAGER",
    "SUPPORT_STAFF": "SUPPORT_STAFF",
    "STAFF": "SUPPORT_STAFF",
    "AGENT": "SUPPORT_STAFF",
    "END_USER": "END_USER",
    "USER": "END_USER",
    "CUSTOMER": "END_USER",
}

KNOWN_ROLES = ("ADMIN", "SUPPORT_MANAGER", "SUPPORT_STAFF", "END_USER")


def normalize_role(value: str) -> str:
    """
    "support staff", "Support-Staff" and "STAFF" all become SUPPORT_STAFF.
    Unknown roles pass through uppercased so custom graph roles still match.
    """
    raw = str(value or "").strip().upper()
    raw = re.sub(r"[\s\-]+", "_", raw)
    raw = re.sub(r"_+", "_", raw)
    return ROLE_ALIASES.get(raw, raw)


def normalize_roles(values: Iterable[str]) -> Set[str]:
    return {r for r in (normalize_role(v) for v in values or []) if r}


__all__ = ["ROLE_ALIASES", "KNOWN_ROLES", "normalize_role", "normalize_roles"]

# escort/auth/permissions.py
"""Role-based access control.

`PERMISSIONS` is the single source of truth: role -> resource -> action.
Row-level rules narrow `view_own` / `update_own` to records that belong
to the user. Anything not listed is denied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

ROLES = ("admin", "dispatcher", "rider")

_ALL = {"view_all": True, "create": True, "edit": True, "delete": True}

PERMISSIONS: dict[str, dict[str, dict[str, bool]]] = {
    "admin": {
        "requests": dict(_ALL),
        "riders": {**_ALL, "export": True},
        "assignments": {**_ALL, "assign": True},
        "notifications": {"view_all": True, "send": True},
        "reports": {"view_all": True, "export": True},
        "users": dict(_ALL),
        "system": {"edit": True},
    },
    "dispatcher": {
        "requests": {"view_all": True, "create": True, "edit": True},
        "riders": {"view_all": True, "export": True},
        "assignments": {"view_all": True, "create": True, "edit": True, "assign": True},
        "notifications": {"view_all": True, "send": True},
        "reports": {"view_all": True},
    },
    "rider": {
        "requests": {"view_all": False},
        "riders": {"view_all": False, "view_own": True},
        "assignments": {"view_all": False, "view_own": True, "update_own": True},
    },
}

# Flat capability names exposed to page scripts.
ROLE_CAPABILITIES: dict[str, list[str]] = {
    "admin": [
        "view",
        "create_request",
        "assign_riders",
        "send_notifications",
        "update_status",
        "manage_users",
        "view_reports",
        "system_config",
        "export_data",
    ],
    "dispatcher": [
        "view",
        "create_request",
        "assign_riders",
        "send_notifications",
        "update_status",
        "view_reports",
    ],
    "rider": ["view", "view_own_assignments", "update_own_status"],
}


@dataclass(frozen=True)
class User:
    email: str
    name: str
    role: str
    auth_method: str = "identity"
    rider_id: str = ""

    @property
    def capabilities(self) -> list[str]:
        return list(ROLE_CAPABILITIES.get(self.role, []))

    def context(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "authMethod": self.auth_method,
            "riderId": self.rider_id,
            "permissions": self.capabilities,
        }


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def _owns_assignment(user: User, record: dict[str, Any]) -> bool:
    if user.rider_id and _norm(record.get("JP Number")) == _norm(user.rider_id):
        return True
    return bool(user.name) and _norm(record.get("Rider Name")) == _norm(user.name)


def _owns_rider_row(user: User, record: dict[str, Any]) -> bool:
    if user.rider_id and _norm(record.get("Rider ID")) == _norm(user.rider_id):
        return True
    return bool(user.email) and _norm(record.get("Email")) == _norm(user.email)


ROW_RULES: dict[str, Callable[[User, dict[str, Any]], bool]] = {
    "assignments": _owns_assignment,
    "riders": _owns_rider_row,
}


def role_permissions(role: str, resource: str) -> dict[str, bool]:
    return dict(PERMISSIONS.get(role, {}).get(resource, {}))


def has_permission(user: User | None, resource: str, action: str) -> bool:
    if user is None:
        return False
    return bool(PERMISSIONS.get(user.role, {}).get(resource, {}).get(action, False))


def can_access_record(user: User | None, resource: str, record: dict[str, Any], action: str = "view") -> bool:
    """Record-level check. `action` is "view" or "update"."""
    if user is None:
        return False
    perms = PERMISSIONS.get(user.role, {}).get(resource, {})
    if action == "view" and perms.get("view_all"):
        return True
    if action == "update" and perms.get("edit"):
        return True
    if not perms.get(f"{action}_own"):
        return False
    rule = ROW_RULES.get(resource)
    return bool(rule and rule(user, record))


def filter_records(user: User | None, resource: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [r for r in records if can_access_record(user, resource, r)]


# page -> roles allowed to open it
PAGE_ACCESS: dict[str, frozenset[str]] = {
    "dashboard": frozenset({"admin", "dispatcher", "rider"}),
    "requests": frozenset({"admin", "dispatcher"}),
    "assignments": frozenset({"admin", "dispatcher"}),
    "riders": frozenset({"admin", "dispatcher"}),
    "notifications": frozenset({"admin", "dispatcher"}),
    "reports": frozenset({"admin", "dispatcher"}),
    "my-schedule": frozenset({"rider"}),
    "users": frozenset({"admin"}),
}

# (page, label) in menu order
NAV_ITEMS: list[tuple[str, str]] = [
    ("dashboard", "Dashboard"),
    ("requests", "Requests"),
    ("assignments", "Assignments"),
    ("riders", "Riders"),
    ("notifications", "Notifications"),
    ("reports", "Reports"),
    ("my-schedule", "My Schedule"),
    ("users", "Users"),
]


def can_view_page(role: str, page: str) -> bool:
    return role in PAGE_ACCESS.get(page, frozenset())


def nav_items_for(role: str) -> list[tuple[str, str]]:
    return [(page, label) for page, label in NAV_ITEMS if can_view_page(role, page)]

"""Authorization policy shared by every handler.

Each action maps to one rule: who may perform it (voter or admin), and for
admins which roles or which permission grant it. ``super_admin`` holds every
role and every permission implicitly. Resource-level rules (protecting
super-admin accounts, self-deletion) are evaluated after the action rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.utils.errors import ForbiddenError, UnauthorizedError

SUPER_ADMIN = "super_admin"
ELECTION_COMMISSIONER = "election_commissioner"
RETURNING_OFFICER = "returning_officer"
ADMIN_OFFICER = "admin_officer"

ADMIN_ROLES = (SUPER_ADMIN, ELECTION_COMMISSIONER, RETURNING_OFFICER, ADMIN_OFFICER)
COMMISSION_ROLES = frozenset({SUPER_ADMIN, ELECTION_COMMISSIONER})

PERMISSIONS = (
    "manage_elections",
    "manage_candidates",
    "manage_voters",
    "view_results",
    "manage_admins",
    "system_settings",
    "audit_logs",
    "generate_reports",
)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller resolved from a bearer token."""

    user_type: str
    id: str
    record: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_admin(self) -> bool:
        return self.user_type == "admin"

    @property
    def is_voter(self) -> bool:
        return self.user_type == "voter"

    @property
    def role(self) -> str | None:
        return self.record.get("role") if self.is_admin else None

    @property
    def permissions(self) -> frozenset[str]:
        if not self.is_admin:
            return frozenset()
        return frozenset(self.record.get("permissions") or [])


@dataclass(frozen=True)
class Rule:
    user_type: str
    roles: frozenset[str] | None = None
    permission: str | None = None
    message: str | None = None


ACTIONS: dict[str, Rule] = {
    # Elections
    "election:create": Rule(
        "admin",
        roles=COMMISSION_ROLES,
        message="Only election commissioner or super admin can create elections",
    ),
    "election:update": Rule("admin", permission="manage_elections"),
    "election:update_status": Rule("admin", permission="manage_elections"),
    "election:declare_results": Rule(
        "admin",
        roles=COMMISSION_ROLES,
        message="Only election commissioner or super admin can declare results",
    ),
    "election:stats": Rule("admin", permission="view_results"),
    # Candidates
    "candidate:view_all": Rule("admin"),
    "candidate:create": Rule("admin", permission="manage_candidates"),
    "candidate:update": Rule("admin", permission="manage_candidates"),
    "candidate:delete": Rule("admin", permission="manage_candidates"),
    "candidate:approve": Rule(
        "admin",
        roles=COMMISSION_ROLES,
        message="Only election commissioner or super admin can approve candidates",
    ),
    "candidate:stats": Rule("admin", permission="view_results"),
    # Votes
    "vote:cast": Rule("voter", message="Access denied. Voter privileges required."),
    "vote:history": Rule("voter", message="Access denied. Voter privileges required."),
    "vote:list": Rule("admin", permission="audit_logs"),
    "vote:update_status": Rule("admin", permission="audit_logs"),
    "vote:results": Rule("admin", permission="view_results"),
    "vote:stats": Rule("admin", permission="view_results"),
    # Voters
    "voter:manage": Rule("admin", permission="manage_voters"),
    "voter:stats": Rule("admin", permission="view_results"),
    "voter:delete": Rule(
        "admin",
        roles=COMMISSION_ROLES,
        message="Only super admin or election commissioner can delete voter accounts",
    ),
    # Administration
    "admin:dashboard": Rule("admin"),
    "admin:reports": Rule("admin", permission="generate_reports"),
    "admin:audit_logs": Rule("admin", permission="audit_logs"),
    "admin:list": Rule("admin", roles=frozenset({SUPER_ADMIN})),
    "admin:create": Rule("admin", roles=frozenset({SUPER_ADMIN})),
    "admin:update": Rule("admin", roles=frozenset({SUPER_ADMIN})),
    "admin:delete": Rule("admin", roles=frozenset({SUPER_ADMIN})),
}


def has_permission(identity: Identity, permission: str) -> bool:
    """Admin holds a permission iff explicitly granted or is super-admin."""
    return identity.is_admin and (
        permission in identity.permissions or identity.role == SUPER_ADMIN
    )


def has_role(identity: Identity, roles: frozenset[str] | set[str]) -> bool:
    """Admin matches iff its role is one of ``roles`` or it is super-admin."""
    return identity.is_admin and (identity.role in roles or identity.role == SUPER_ADMIN)


def _denial(identity: Identity | None, action: str, resource: Any = None) -> str | None:
    rule = ACTIONS.get(action)
    if rule is None:
        return f"Unknown action: {action}"
    if identity is None:
        return "Authentication required"

    if identity.user_type != rule.user_type:
        if rule.user_type == "admin":
            return "Access denied. Admin privileges required."
        return rule.message or "Access denied. Voter privileges required."

    if rule.roles is not None and not has_role(identity, rule.roles):
        required = " or ".join(sorted(rule.roles))
        return rule.message or f"Access denied. {required} role required."

    if rule.permission is not None and not has_permission(identity, rule.permission):
        return rule.message or f"Access denied. {rule.permission} permission required."

    return _resource_denial(identity, action, resource)


def _resource_denial(identity: Identity, action: str, resource: Any) -> str | None:
    if not isinstance(resource, dict):
        return None

    if action == "admin:update":
        if resource.get("role") == SUPER_ADMIN and str(resource.get("id")) != identity.id:
            return "Cannot modify super admin account"
    if action == "admin:delete":
        if resource.get("role") == SUPER_ADMIN:
            return "Cannot delete super admin account"
        if str(resource.get("id")) == identity.id:
            return "Cannot delete your own account"
    return None


def is_allowed(identity: Identity | None, action: str, resource: Any = None) -> bool:
    """Return True when ``identity`` may perform ``action`` on ``resource``."""
    return _denial(identity, action, resource) is None


def authorize(identity: Identity | None, action: str, resource: Any = None) -> None:
    """Raise ForbiddenError unless ``identity`` may perform ``action``."""
    if identity is None:
        raise UnauthorizedError("Access denied. No token provided.")
    reason = _denial(identity, action, resource)
    if reason is not None:
        raise ForbiddenError(reason)

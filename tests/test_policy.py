"""Authorization policy tests."""

from __future__ import annotations

import pytest

from app.services.policy import ACTIONS, Identity, authorize, has_permission, is_allowed
from app.utils.errors import ForbiddenError, UnauthorizedError


def _admin(role: str, permissions: list[str] | None = None, admin_id: str = "a1") -> Identity:
    return Identity("admin", admin_id, {"role": role, "permissions": permissions or []})


VOTER = Identity("voter", "v1", {})
SUPER = _admin("super_admin")
COMMISSIONER = _admin("election_commissioner", ["manage_elections"])
OFFICER = _admin("admin_officer", ["manage_voters"])


def test_super_admin_is_allowed_every_admin_action() -> None:
    """Super-admins hold every role and permission implicitly."""
    for action, rule in ACTIONS.items():
        if rule.user_type == "admin":
            assert is_allowed(SUPER, action), action


def test_voter_actions_exclude_admins() -> None:
    """Casting and history are voter-only, even for super-admins."""
    assert is_allowed(VOTER, "vote:cast")
    assert not is_allowed(SUPER, "vote:cast")
    assert not is_allowed(VOTER, "admin:dashboard")


@pytest.mark.parametrize(
    ("identity", "action", "allowed"),
    [
        (COMMISSIONER, "election:create", True),
        (COMMISSIONER, "election:declare_results", True),
        (COMMISSIONER, "candidate:approve", True),
        (OFFICER, "election:create", False),
        (_admin("admin_officer", ["manage_elections"]), "election:create", False),
        (_admin("admin_officer", ["manage_elections"]), "election:update", True),
        (OFFICER, "voter:manage", True),
        (OFFICER, "voter:delete", False),
        (OFFICER, "admin:dashboard", True),
        (OFFICER, "admin:list", False),
    ],
)
def test_role_and_permission_rules(identity: Identity, action: str, allowed: bool) -> None:
    """Role-gated and permission-gated actions are evaluated independently."""
    assert is_allowed(identity, action) is allowed


def test_unknown_action_is_denied() -> None:
    """Actions missing from the table are never allowed."""
    assert not is_allowed(SUPER, "election:explode")


def test_authorize_messages() -> None:
    """Denials carry the reason shown to the caller."""
    with pytest.raises(UnauthorizedError) as excinfo:
        authorize(None, "vote:cast")
    assert excinfo.value.message == "Access denied. No token provided."

    with pytest.raises(ForbiddenError) as excinfo:
        authorize(OFFICER, "election:create")
    assert "election commissioner" in excinfo.value.message

    with pytest.raises(ForbiddenError) as excinfo:
        authorize(VOTER, "admin:dashboard")
    assert excinfo.value.message == "Access denied. Admin privileges required."


def test_super_admin_accounts_are_protected() -> None:
    """Other super-admins cannot be modified and no super-admin can be deleted."""
    other_super = {"id": "a2", "role": "super_admin"}
    with pytest.raises(ForbiddenError, match="Cannot modify super admin account"):
        authorize(SUPER, "admin:update", other_super)
    with pytest.raises(ForbiddenError, match="Cannot delete super admin account"):
        authorize(SUPER, "admin:delete", other_super)

    authorize(SUPER, "admin:update", {"id": "a1", "role": "super_admin"})


def test_admin_cannot_delete_self() -> None:
    """Self-deletion is refused."""
    admin = _admin("super_admin", admin_id="a9")
    with pytest.raises(ForbiddenError, match="Cannot delete your own account"):
        authorize(admin, "admin:delete", {"id": "a9", "role": "admin_officer"})


def test_has_permission_for_voters_is_false() -> None:
    """Voters never hold admin permissions."""
    assert not has_permission(VOTER, "view_results")
    assert has_permission(SUPER, "view_results")
    assert not has_permission(OFFICER, "view_results")

"""Administrator accounts, login lockout, dashboard and reports."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, count_by, ilike_any, pick
from app.services.policy import ADMIN_ROLES, PERMISSIONS, Identity, authorize
from app.services.results_service import TabulationService
from app.utils.errors import (
    AccountLockedError,
    DuplicateKeyError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from app.utils.security import create_access_token, hash_password, verify_password
from app.utils.time import now_utc, parse_timestamp, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

_STARTED = time.monotonic()

PRIVATE_FIELDS = ("password_hash", "two_factor_secret", "password_reset_token")
UPDATABLE_FIELDS = frozenset(
    {"full_name", "phone_number", "designation", "department", "role", "permissions", "is_active"}
)
REPORT_TYPES = ("election", "voter", "system")


def sanitize_admin(admin: dict[str, Any]) -> dict[str, Any]:
    """Drop credential material from an admin row."""
    return {key: value for key, value in admin.items() if key not in PRIVATE_FIELDS}


def is_locked(admin: dict[str, Any], now: datetime) -> bool:
    lock_until = admin.get("lock_until")
    return bool(lock_until) and parse_timestamp(lock_until) > now


def failed_login_changes(
    admin: dict[str, Any],
    now: datetime,
    max_attempts: int,
    lock_minutes: int,
) -> dict[str, Any]:
    """Counter update after a wrong password.

    An expired lock restarts the count at one; reaching ``max_attempts``
    sets a fresh lock.
    """
    lock_until = admin.get("lock_until")
    if lock_until and parse_timestamp(lock_until) <= now:
        return {"login_attempts": 1, "lock_until": None}

    attempts = int(admin.get("login_attempts") or 0) + 1
    changes: dict[str, Any] = {"login_attempts": attempts}
    if attempts >= max_attempts and not is_locked(admin, now):
        changes["lock_until"] = to_iso(now + timedelta(minutes=lock_minutes))
    return changes


def append_activity(
    log: list[dict[str, Any]] | None,
    entry: dict[str, Any],
    limit: int,
) -> list[dict[str, Any]]:
    """Append ``entry`` keeping only the newest ``limit`` entries."""
    entries = list(log or [])
    entries.append(entry)
    return entries[-limit:]


class AdminService:
    """Manage administrator accounts and system-wide views."""

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock
        self.tabulation = TabulationService(client)

    def log_activity(
        self,
        admin: dict[str, Any],
        action: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        now = to_iso(self.clock())
        entry = {
            "action": action,
            "timestamp": now,
            "ip_address": ip_address,
            "user_agent": user_agent,
        }
        log = append_activity(admin.get("activity_log"), entry, settings.admin_activity_log_limit)
        self.db.update(
            "admins",
            {"id": admin["id"]},
            {"activity_log": log, "last_activity": now, **(extra or {})},
        )

    def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Authenticate an admin, enforcing the failed-attempt lockout."""
        now = self.clock()
        admin = self.db.find_one("admins", {"email": email.strip().lower()})
        if admin is None:
            raise UnauthorizedError("Invalid credentials")
        if is_locked(admin, now):
            raise AccountLockedError()
        if not admin.get("is_active"):
            raise UnauthorizedError("Your account has been deactivated")

        if not verify_password(password, admin.get("password_hash")):
            changes = failed_login_changes(
                admin, now, settings.admin_max_login_attempts, settings.admin_lock_minutes
            )
            self.db.update("admins", {"id": admin["id"]}, changes)
            if changes.get("lock_until"):
                logger.warning("Admin %s locked after repeated failed logins", admin["id"])
            raise UnauthorizedError("Invalid credentials")

        self.log_activity(
            admin,
            "login",
            ip_address,
            user_agent,
            extra={"login_attempts": 0, "lock_until": None, "last_login": to_iso(now)},
        )
        admin.update({"login_attempts": 0, "lock_until": None, "last_login": to_iso(now)})
        return {
            "admin": sanitize_admin(admin),
            "token": create_access_token(admin["id"], "admin"),
        }

    def profile(self, identity: Identity) -> dict[str, Any]:
        admin = self.db.select_one("admins", {"id": identity.id}, not_found_label="Admin")
        return sanitize_admin(admin)

    def list_admins(
        self,
        actor: Identity,
        page: int = 1,
        limit: int = 10,
        role: str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        authorize(actor, "admin:list")
        query = self.db.client.table("admins").select("*", count="exact")
        if role:
            query = query.eq("role", role)
        if is_active is not None:
            query = query.eq("is_active", is_active)
        if search:
            query = query.or_(ilike_any(["full_name", "email"], search))
        query = query.order("created_at", desc=True)

        rows, total = self.db.select_page(query, page, limit)
        return [sanitize_admin(row) for row in rows], total

    def create(self, actor: Identity, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an administrator account (super-admin only)."""
        authorize(actor, "admin:create")
        if payload["role"] not in ADMIN_ROLES:
            raise InvalidInputError("Invalid role")
        permissions = list(payload.get("permissions") or [])
        unknown = sorted(set(permissions) - set(PERMISSIONS))
        if unknown:
            raise InvalidInputError(f"Unknown permissions: {', '.join(unknown)}")

        email = payload["email"].strip().lower()
        if self.db.find_one("admins", {"email": email}, columns="id") is not None:
            raise DuplicateKeyError("email")

        record = pick(payload, {"full_name", "phone_number", "designation", "department", "role"})
        record.update(
            {
                "email": email,
                "password_hash": hash_password(payload["password"]),
                "permissions": permissions,
                "is_active": True,
                "is_email_verified": True,
                "login_attempts": 0,
                "lock_until": None,
                "activity_log": [],
                "created_by": actor.id,
            }
        )
        admin = self.db.insert_one("admins", record)
        logger.info("Admin %s created by %s", admin["id"], actor.id)
        return sanitize_admin(admin)

    def update(self, actor: Identity, admin_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        target = self.db.find_one("admins", {"id": admin_id})
        if target is None:
            authorize(actor, "admin:update")
            raise NotFoundError("Admin")
        authorize(actor, "admin:update", target)

        updates = pick(changes, UPDATABLE_FIELDS)
        if "role" in updates and updates["role"] not in ADMIN_ROLES:
            raise InvalidInputError("Invalid role")
        if "permissions" in updates:
            unknown = sorted(set(updates["permissions"] or []) - set(PERMISSIONS))
            if unknown:
                raise InvalidInputError(f"Unknown permissions: {', '.join(unknown)}")
        if not updates:
            return sanitize_admin(target)

        updates["updated_at"] = to_iso(self.clock())
        return sanitize_admin(self.db.update_one("admins", admin_id, updates, "Admin"))

    def delete(self, actor: Identity, admin_id: str) -> dict[str, Any]:
        target = self.db.find_one("admins", {"id": admin_id}, columns="id,role")
        if target is None:
            authorize(actor, "admin:delete")
            raise NotFoundError("Admin")
        authorize(actor, "admin:delete", target)

        self.db.delete("admins", {"id": admin_id})
        logger.info("Admin %s deleted by %s", admin_id, actor.id)
        return {"admin_id": admin_id, "deleted": True}

    def _uptime_seconds(self) -> float:
        return round(time.monotonic() - _STARTED, 1)

    def dashboard(self, actor: Identity) -> dict[str, Any]:
        """System-wide counters and the most recent elections."""
        authorize(actor, "admin:dashboard")
        now = self.clock()
        since = to_iso(now - timedelta(hours=24))
        recent_votes = self.db.execute_with_count(
            self.db.client.table("votes")
            .select("id", count="exact", head=True)
            .eq("status", "valid")
            .gte("voted_at", since)
        )[1]

        elections = self.db.select_many("elections", columns="id,status")
        election_status = count_by(elections, "status")
        recent_elections = self.db.select_many(
            "elections",
            columns="id,title,type,status,voting_start_date,voting_end_date,created_at",
            order_by="created_at",
            descending=True,
            limit=5,
        )
        return {
            "overview": {
                "voters": {
                    "total": self.db.count("voters"),
                    "active": self.db.count("voters", {"is_active": True}),
                    "verified": self.db.count("voters", {"is_verified": True}),
                },
                "elections": {
                    "total": len(elections),
                    "active": election_status.get("active", 0),
                    "upcoming": election_status.get("upcoming", 0),
                    "completed": election_status.get("completed", 0),
                },
                "candidates": {
                    "total": self.db.count("candidates"),
                    "approved": self.db.count("candidates", {"is_approved": True}),
                },
                "votes": {
                    "total": self.db.count("votes"),
                    "valid": self.db.count("votes", {"status": "valid"}),
                },
                "recent_votes_24h": recent_votes,
            },
            "recent_elections": recent_elections,
            "system_health": {
                "status": "healthy",
                "uptime_seconds": self._uptime_seconds(),
                "timestamp": to_iso(now),
            },
        }

    def report(
        self,
        actor: Identity,
        report_type: str = "system",
        election_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Build an election, voter or system report."""
        authorize(actor, "admin:reports")
        if report_type not in REPORT_TYPES:
            raise InvalidInputError(f"Unknown report type: {report_type}")
        if report_type == "election":
            if not election_id:
                raise InvalidInputError("election_id is required for election reports")
            return self._election_report(election_id)
        if report_type == "voter":
            return self._voter_report(start_date, end_date)
        return {
            "type": "system",
            "timestamp": to_iso(self.clock()),
            "summary": {
                "total_voters": self.db.count("voters", {"is_active": True}),
                "total_elections": self.db.count("elections", {"is_active": True}),
                "total_candidates": self.db.count("candidates", {"is_active": True}),
                "total_votes": self.db.count("votes", {"status": "valid"}),
            },
            "system_health": {"status": "operational", "uptime_seconds": self._uptime_seconds()},
        }

    def _election_report(self, election_id: str) -> dict[str, Any]:
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        candidates = self.db.select_many(
            "candidates",
            filters={"election_id": election_id, "is_active": True},
            order_by="nomination_date",
        )
        tally = self.tabulation.results(election_id)
        return {
            "type": "election",
            "election": election,
            "summary": {
                "total_candidates": len(candidates),
                "total_votes": tally["total_votes"],
                "turnout_percentage": election.get("turnout_percentage", 0),
            },
            "candidates": candidates,
            "results": tally["results"],
            "winner": tally["winner"],
            "timeline": {
                "registration_start_date": election["registration_start_date"],
                "registration_end_date": election["registration_end_date"],
                "voting_start_date": election["voting_start_date"],
                "voting_end_date": election["voting_end_date"],
                "result_date": election["result_date"],
            },
        }

    def _voter_report(
        self, start_date: datetime | None, end_date: datetime | None
    ) -> dict[str, Any]:
        query = self.db.client.table("voters").select(
            "id,is_active,is_verified,has_voted,gender"
        )
        if start_date and end_date:
            query = query.gte("registered_at", to_iso(start_date)).lte(
                "registered_at", to_iso(end_date)
            )
        rows = self.db.execute(query, default=[])
        active = [row for row in rows if row.get("is_active")]
        return {
            "type": "voter",
            "period": (
                f"{to_iso(start_date)} - {to_iso(end_date)}"
                if start_date and end_date
                else "All time"
            ),
            "summary": {
                "total": len(rows),
                "active": len(active),
                "verified": sum(1 for row in rows if row.get("is_verified")),
                "voted": sum(1 for row in rows if row.get("has_voted")),
            },
            "demographics": {"gender": count_by(active, "gender")},
        }

    def audit_logs(
        self, actor: Identity, page: int = 1, limit: int = 50
    ) -> tuple[list[dict[str, Any]], int]:
        """Flattened admin activity, newest first."""
        authorize(actor, "admin:audit_logs")
        admins = self.db.select_many(
            "admins",
            filters={"is_active": True},
            columns="id,full_name,email,role,activity_log",
        )
        entries = [
            {
                "admin_id": admin["id"],
                "admin_name": admin.get("full_name"),
                "admin_email": admin.get("email"),
                "admin_role": admin.get("role"),
                **entry,
            }
            for admin in admins
            for entry in admin.get("activity_log") or []
        ]
        entries.sort(key=lambda entry: parse_timestamp(entry["timestamp"]), reverse=True)
        start = (max(1, page) - 1) * limit
        return entries[start : start + limit], len(entries)

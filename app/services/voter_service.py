"""Voter registration, authentication and administration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, count_by, ilike_any
from app.services.policy import Identity, authorize
from app.utils.errors import (
    ConflictError,
    DuplicateKeyError,
    InvalidInputError,
    UnauthorizedError,
)
from app.utils.security import create_access_token, hash_password, verify_password
from app.utils.time import age_on, now_utc, parse_iso_date, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

PRIVATE_FIELDS = ("password_hash", "verification_token")


def sanitize_voter(voter: dict[str, Any]) -> dict[str, Any]:
    """Drop credential material from a voter row."""
    return {key: value for key, value in voter.items() if key not in PRIVATE_FIELDS}


def normalize_identifier(identifier: str) -> tuple[str, str]:
    """Return the column and value a login identifier should match."""
    value = identifier.strip()
    if "@" in value:
        return "email", value.lower()
    return "phone_number", value


class VoterService:
    """Manage voter accounts."""

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock

    def register(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a voter account and return the profile with a token."""
        birth_date = parse_iso_date(payload["date_of_birth"])
        if age_on(birth_date, self.clock().date()) < settings.minimum_voter_age:
            raise InvalidInputError(
                f"Voter must be at least {settings.minimum_voter_age} years old",
                errors=[{"field": "date_of_birth", "message": "Voter is under age"}],
            )

        email = payload["email"].strip().lower()
        for column, value in (
            ("email", email),
            ("phone_number", payload["phone_number"]),
            ("national_id", payload["national_id"]),
        ):
            if self.db.find_one("voters", {column: value}, columns="id") is not None:
                raise DuplicateKeyError(column)

        record = {
            key: value
            for key, value in payload.items()
            if key not in {"password", "email", "date_of_birth"}
        }
        record.update(
            {
                "email": email,
                "date_of_birth": birth_date.isoformat(),
                "password_hash": hash_password(payload["password"]),
                "is_verified": False,
                "is_active": True,
                "voting_history": [],
                "has_voted": False,
                "registered_at": to_iso(self.clock()),
                "last_login": None,
            }
        )
        voter = self.db.insert_one("voters", record)
        logger.info("Voter %s registered", voter["id"])
        return {
            "voter": sanitize_voter(voter),
            "token": create_access_token(voter["id"], "voter"),
        }

    def login(self, identifier: str, password: str) -> dict[str, Any]:
        """Authenticate by email or phone number."""
        column, value = normalize_identifier(identifier)
        voter = self.db.find_one("voters", {column: value})
        if voter is None or not verify_password(password, voter.get("password_hash")):
            raise UnauthorizedError("Invalid credentials")
        if not voter.get("is_active"):
            raise UnauthorizedError("Your account has been deactivated")

        now = to_iso(self.clock())
        self.db.update("voters", {"id": voter["id"]}, {"last_login": now})
        voter["last_login"] = now
        return {
            "voter": sanitize_voter(voter),
            "token": create_access_token(voter["id"], "voter"),
        }

    def profile(self, identity: Identity) -> dict[str, Any]:
        """Return the calling voter's own profile."""
        voter = self.db.select_one("voters", {"id": identity.id}, not_found_label="Voter")
        return sanitize_voter(voter)

    def list_voters(
        self,
        actor: Identity,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        is_verified: bool | None = None,
        is_active: bool | None = None,
        has_voted: bool | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Paginated voter directory for administrators."""
        authorize(actor, "voter:manage")
        query = self.db.client.table("voters").select("*", count="exact")
        if is_verified is not None:
            query = query.eq("is_verified", is_verified)
        if is_active is not None:
            query = query.eq("is_active", is_active)
        if has_voted is not None:
            query = query.eq("has_voted", has_voted)
        if search:
            query = query.or_(ilike_any(["full_name", "email", "phone_number"], search))
        query = query.order("registered_at", desc=True)

        rows, total = self.db.select_page(query, page, limit)
        return [sanitize_voter(row) for row in rows], total

    def get(self, actor: Identity, voter_id: str) -> dict[str, Any]:
        """Voter profile plus the ballots they have cast."""
        authorize(actor, "voter:manage")
        voter = self.db.select_one("voters", {"id": voter_id}, not_found_label="Voter")
        votes = self.db.select_many(
            "votes",
            filters={"voter_id": voter_id},
            columns="id,election_id,voted_at,status,verification_code",
            order_by="voted_at",
            descending=True,
        )
        elections = self.db.get_map(
            "elections",
            [vote["election_id"] for vote in votes],
            columns="id,title,type,constituency",
        )
        for vote in votes:
            vote["election"] = elections.get(str(vote["election_id"]))
        return {"voter": sanitize_voter(voter), "votes": votes}

    def update_status(
        self,
        actor: Identity,
        voter_id: str,
        is_verified: bool | None = None,
        is_active: bool | None = None,
    ) -> dict[str, Any]:
        """Toggle verification or activation."""
        authorize(actor, "voter:manage")
        changes: dict[str, Any] = {}
        if is_verified is not None:
            changes["is_verified"] = is_verified
        if is_active is not None:
            changes["is_active"] = is_active
        if not changes:
            raise InvalidInputError("Nothing to update")

        changes["updated_at"] = to_iso(self.clock())
        voter = self.db.update_one("voters", voter_id, changes, "Voter")
        logger.info("Voter %s status updated by %s: %s", voter_id, actor.id, changes)
        return sanitize_voter(voter)

    def delete(self, actor: Identity, voter_id: str) -> dict[str, Any]:
        """Delete a voter that has never cast a ballot."""
        authorize(actor, "voter:delete")
        self.db.select_one("voters", {"id": voter_id}, columns="id", not_found_label="Voter")
        if self.db.count("votes", {"voter_id": voter_id}) > 0:
            raise ConflictError(
                "Cannot delete voter who has cast votes. Consider deactivating instead.",
                code="VOTER_HAS_VOTES",
            )
        self.db.delete("voters", {"id": voter_id})
        logger.info("Voter %s deleted by %s", voter_id, actor.id)
        return {"voter_id": voter_id, "deleted": True}

    def stats_overview(self, actor: Identity) -> dict[str, Any]:
        """Voter totals plus state and gender breakdowns."""
        authorize(actor, "voter:stats")
        rows = self.db.select_many(
            "voters", columns="id,is_verified,is_active,has_voted,gender,address"
        )
        states = count_by(
            [{"state": (row.get("address") or {}).get("state")} for row in rows], "state"
        )
        top_states = sorted(states.items(), key=lambda item: item[1], reverse=True)[:10]
        return {
            "overview": {
                "total_voters": len(rows),
                "verified_voters": sum(1 for row in rows if row.get("is_verified")),
                "active_voters": sum(1 for row in rows if row.get("is_active")),
                "voters_who_voted": sum(1 for row in rows if row.get("has_voted")),
            },
            "state_distribution": [{"state": state, "count": total} for state, total in top_states],
            "gender_distribution": count_by(rows, "gender"),
        }

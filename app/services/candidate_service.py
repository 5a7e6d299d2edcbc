"""Candidate nominations, approval and listing."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.services.common import SupabaseService, count_by, ilike_any, pick
from app.services.election_service import TERMINAL_STATUSES, voting_has_started
from app.services.policy import COMMISSION_ROLES, Identity, authorize, has_role
from app.services.tally_service import TallyService
from app.utils.errors import ConflictError, InvalidInputError, NotFoundError
from app.utils.time import now_utc, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

MIN_CANDIDATE_AGE = 25
MAX_CANDIDATE_AGE = 100

EDITABLE_FIELDS = frozenset(
    {
        "full_name",
        "age",
        "political_party",
        "party_symbol",
        "constituency",
        "profile_photo",
        "education",
        "occupation",
        "experience",
        "manifesto",
        "campaign_slogan",
        "contact_info",
        "criminal_record",
        "assets_value",
    }
)

PUBLIC_COLUMNS = (
    "id,election_id,full_name,age,political_party,party_symbol,constituency,profile_photo,"
    "education,occupation,experience,manifesto,campaign_slogan,criminal_record,assets_value,"
    "vote_count,nomination_date,is_approved,is_active"
)


def validate_candidate_age(age: int) -> int:
    """Reject candidates younger than 25 or older than 100."""
    if age < MIN_CANDIDATE_AGE or age > MAX_CANDIDATE_AGE:
        raise InvalidInputError(
            f"Candidate must be between {MIN_CANDIDATE_AGE} and {MAX_CANDIDATE_AGE} years old",
            errors=[{"field": "age", "message": "Candidate age out of range"}],
        )
    return age


def candidates_locked(election: dict[str, Any], now: datetime) -> bool:
    """Nominations freeze when voting opens or the election is closed out."""
    return election.get("status") in TERMINAL_STATUSES or voting_has_started(election, now)


class CandidateService:
    """Manage candidates and their approval state."""

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock
        self.tallies = TallyService(client, clock=clock)

    def _election(self, election_id: str) -> dict[str, Any]:
        return self.db.select_one("elections", {"id": election_id}, not_found_label="Election")

    def _ensure_mutable(self, election: dict[str, Any]) -> None:
        if candidates_locked(election, self.clock()):
            raise ConflictError(
                "Cannot modify candidates after voting has started",
                code="CANDIDATES_LOCKED",
            )

    def _attach_elections(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        elections = self.db.get_map(
            "elections",
            [row["election_id"] for row in rows],
            columns="id,title,type,constituency,state,status",
        )
        for row in rows:
            row["election"] = elections.get(str(row["election_id"]))
        return rows

    def list_candidates(
        self,
        viewer: Identity | None = None,
        page: int = 1,
        limit: int = 10,
        election_id: str | None = None,
        constituency: str | None = None,
        political_party: str | None = None,
        is_approved: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Public callers see approved, active candidates only."""
        is_admin = viewer is not None and viewer.is_admin
        columns = "*" if is_admin else PUBLIC_COLUMNS
        query = self.db.client.table("candidates").select(columns, count="exact")
        if is_admin:
            if is_approved is not None:
                query = query.eq("is_approved", is_approved)
        else:
            query = query.eq("is_active", True).eq("is_approved", True)
        if election_id:
            query = query.eq("election_id", election_id)
        if constituency:
            query = query.ilike("constituency", f"%{constituency}%")
        if political_party:
            query = query.ilike("political_party", f"%{political_party}%")
        if search:
            query = query.or_(ilike_any(["full_name", "political_party", "constituency"], search))
        query = query.order("nomination_date", desc=True)

        rows, total = self.db.select_page(query, page, limit)
        return self._attach_elections(rows), total

    def by_election(self, election_id: str) -> list[dict[str, Any]]:
        """Approved, active candidates of one election in ballot order."""
        self._election(election_id)
        return self.db.select_many(
            "candidates",
            filters={"election_id": election_id, "is_active": True, "is_approved": True},
            columns=PUBLIC_COLUMNS,
            order_by="nomination_date",
        )

    def get(self, candidate_id: str, viewer: Identity | None = None) -> dict[str, Any]:
        """Unapproved or withdrawn candidates are visible to admins only."""
        is_admin = viewer is not None and viewer.is_admin
        candidate = self.db.find_one(
            "candidates", {"id": candidate_id}, columns="*" if is_admin else PUBLIC_COLUMNS
        )
        if candidate is None:
            raise NotFoundError("Candidate")
        if not is_admin and not (candidate.get("is_active") and candidate.get("is_approved")):
            raise NotFoundError("Candidate")
        return self._attach_elections([candidate])[0]

    def create(self, actor: Identity, payload: dict[str, Any]) -> dict[str, Any]:
        """Nominate a candidate; commission roles approve on creation."""
        authorize(actor, "candidate:create")
        election_id = str(payload["election_id"])
        election = self._election(election_id)
        self._ensure_mutable(election)
        validate_candidate_age(int(payload["age"]))

        existing = self.db.find_one(
            "candidates",
            {
                "election_id": election_id,
                "full_name": payload["full_name"],
                "constituency": payload["constituency"],
                "is_active": True,
            },
            columns="id",
        )
        if existing is not None:
            raise ConflictError(
                "Candidate already nominated for this election",
                code="DUPLICATE_NOMINATION",
            )

        now = to_iso(self.clock())
        auto_approve = has_role(actor, COMMISSION_ROLES)
        record = pick(payload, EDITABLE_FIELDS)
        record.update(
            {
                "election_id": election_id,
                "nomination_date": now,
                "nominated_by": actor.id,
                "is_approved": auto_approve,
                "approved_by": actor.id if auto_approve else None,
                "approved_at": now if auto_approve else None,
                "is_active": True,
                "vote_count": 0,
            }
        )
        candidate = self.db.insert_one("candidates", record)
        self.tallies.refresh_election(election_id)
        logger.info("Candidate %s nominated in election %s", candidate["id"], election_id)
        return candidate

    def update(self, actor: Identity, candidate_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Edit nomination details until voting opens."""
        authorize(actor, "candidate:update")
        candidate = self.db.select_one(
            "candidates", {"id": candidate_id}, not_found_label="Candidate"
        )
        self._ensure_mutable(self._election(str(candidate["election_id"])))

        updates = pick(changes, EDITABLE_FIELDS)
        if "age" in updates:
            validate_candidate_age(int(updates["age"]))
        if not updates:
            return candidate
        updates["updated_at"] = to_iso(self.clock())
        return self.db.update_one("candidates", candidate_id, updates, "Candidate")

    def set_approval(self, actor: Identity, candidate_id: str, is_approved: bool) -> dict[str, Any]:
        """Approve or revoke approval until voting opens."""
        authorize(actor, "candidate:approve")
        candidate = self.db.select_one(
            "candidates", {"id": candidate_id}, not_found_label="Candidate"
        )
        self._ensure_mutable(self._election(str(candidate["election_id"])))

        now = to_iso(self.clock())
        updated = self.db.update_one(
            "candidates",
            candidate_id,
            {
                "is_approved": is_approved,
                "approved_by": actor.id if is_approved else None,
                "approved_at": now if is_approved else None,
                "updated_at": now,
            },
            "Candidate",
        )
        logger.info(
            "Candidate %s %s by %s",
            candidate_id,
            "approved" if is_approved else "unapproved",
            actor.id,
        )
        return updated

    def delete(self, actor: Identity, candidate_id: str) -> dict[str, Any]:
        """Remove a nomination; candidates with ballots are deactivated instead."""
        authorize(actor, "candidate:delete")
        candidate = self.db.select_one(
            "candidates", {"id": candidate_id}, not_found_label="Candidate"
        )
        election_id = str(candidate["election_id"])
        self._ensure_mutable(self._election(election_id))

        if self.db.count("votes", {"candidate_id": candidate_id}) > 0:
            self.db.update_one(
                "candidates",
                candidate_id,
                {"is_active": False, "updated_at": to_iso(self.clock())},
                "Candidate",
            )
            outcome = {"deleted": False, "deactivated": True}
        else:
            self.db.delete("candidates", {"id": candidate_id})
            outcome = {"deleted": True, "deactivated": False}

        self.tallies.refresh_election(election_id)
        return {"candidate_id": candidate_id, **outcome}

    def stats_overview(self, actor: Identity) -> dict[str, Any]:
        """Candidate counts plus party and criminal record breakdowns."""
        authorize(actor, "candidate:stats")
        rows = self.db.select_many(
            "candidates", columns="id,is_approved,is_active,political_party,criminal_record"
        )
        active = [row for row in rows if row.get("is_active")]
        approved = [row for row in active if row.get("is_approved")]
        parties = sorted(
            count_by(active, "political_party").items(), key=lambda item: item[1], reverse=True
        )
        return {
            "overview": {
                "total_candidates": len(rows),
                "active_candidates": len(active),
                "approved_candidates": len(approved),
                "pending_approval": len(active) - len(approved),
            },
            "party_distribution": [
                {"party": party, "count": total} for party, total in parties[:10]
            ],
            "criminal_record_distribution": count_by(active, "criminal_record"),
        }

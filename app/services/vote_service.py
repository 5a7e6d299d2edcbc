"""Ballot casting, verification and vote ledger administration."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, count_by
from app.services.election_service import is_voting_accepted
from app.services.policy import Identity, authorize
from app.services.results_service import TabulationService, hourly_distribution
from app.services.tally_service import TallyService
from app.utils.errors import (
    ConflictError,
    ConsistencyError,
    DuplicateKeyError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from app.utils.security import hash_client_address
from app.utils.time import now_utc, parse_timestamp, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

VOTE_STATUSES = ("valid", "invalid", "disputed", "under_review")
VERIFICATION_CODE_ATTEMPTS = 5


def compute_vote_hash(
    voter_id: str,
    candidate_id: str,
    election_id: str,
    voted_at: datetime | str,
) -> str:
    """SHA-256 over the ballot's identifying fields and its canonical timestamp."""
    stamp = to_iso(parse_timestamp(voted_at))
    material = f"{voter_id}_{candidate_id}_{election_id}_{stamp}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def compute_voter_hash(voter_id: str, election_id: str, secret: str | None = None) -> str:
    """Keyed per-election voter digest; not reversible without the secret."""
    key = (secret or settings.voter_hash_secret).encode("utf-8")
    return hmac.new(key, f"{voter_id}:{election_id}".encode("utf-8"), hashlib.sha256).hexdigest()


def generate_verification_code() -> str:
    """32 upper-case hex characters from a CSPRNG."""
    return secrets.token_hex(16).upper()


def verify_integrity(vote: dict[str, Any]) -> bool:
    """Recompute the ballot hash and compare it with the stored one."""
    expected = compute_vote_hash(
        str(vote["voter_id"]),
        str(vote["candidate_id"]),
        str(vote["election_id"]),
        vote["voted_at"],
    )
    return hmac.compare_digest(expected, str(vote.get("vote_hash") or ""))


def device_fingerprint(user_agent: str | None, ip_address: str | None) -> dict[str, Any]:
    """Device details kept with a ballot; the client address is stored hashed."""
    return {
        "user_agent": (user_agent or "")[:512] or None,
        "ip_hash": hash_client_address(ip_address),
    }


class VoteService:
    """Cast and audit ballots."""

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock
        self.tallies = TallyService(client, clock=clock)
        self.tabulation = TabulationService(client)

    def cast(
        self,
        actor: Identity,
        election_id: str,
        candidate_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Record one ballot for the authenticated voter.

        The ballot row is the source of truth; the unique key on
        ``(voter_id, election_id)`` rejects a second ballot even when two
        requests pass the pre-checks at the same time. Tallies are refreshed
        afterwards and a failure there surfaces as a consistency error that
        still carries the receipt, since the ballot itself is stored.
        """
        authorize(actor, "vote:cast")
        now = self.clock()

        election = self.db.find_one("elections", {"id": election_id, "is_active": True})
        if election is None:
            raise NotFoundError("Election")
        if not is_voting_accepted(election, now):
            raise ConflictError(
                "Voting is not currently active for this election",
                code="VOTING_NOT_ACTIVE",
            )

        existing = self.db.find_one(
            "votes", {"voter_id": actor.id, "election_id": election_id}, columns="id"
        )
        if existing is not None:
            raise ConflictError("You have already voted in this election", code="ALREADY_VOTED")

        candidate = self.db.find_one(
            "candidates", {"id": candidate_id, "election_id": election_id}
        )
        if candidate is None:
            raise NotFoundError("Candidate")
        if not (candidate.get("is_active") and candidate.get("is_approved")):
            raise ConflictError(
                "Candidate is not approved for this election",
                code="CANDIDATE_NOT_ELIGIBLE",
            )

        voter = self.db.find_one("voters", {"id": actor.id})
        if voter is None or not voter.get("is_active"):
            raise ForbiddenError("Your account is not active")
        if not voter.get("is_verified"):
            raise ForbiddenError("Your account must be verified to vote")

        vote = self._insert_ballot(actor.id, election_id, candidate_id, now, user_agent, ip_address)
        logger.info("Vote %s recorded for election %s", vote["id"], election_id)

        receipt = {
            "vote_id": vote["id"],
            "verification_code": vote["verification_code"],
            "voted_at": vote["voted_at"],
            "election": election.get("title"),
            "candidate": candidate.get("full_name"),
        }
        try:
            self.tallies.project_vote(vote)
        except Exception as exc:
            logger.error(
                "Vote %s stored but tally refresh failed for election %s: %s",
                vote["id"],
                election_id,
                exc,
            )
            raise ConsistencyError(
                "Vote recorded but tallies could not be updated",
                data=receipt,
            ) from exc
        return receipt

    def _insert_ballot(
        self,
        voter_id: str,
        election_id: str,
        candidate_id: str,
        now: datetime,
        user_agent: str | None,
        ip_address: str | None,
    ) -> dict[str, Any]:
        voted_at = to_iso(now)
        base = {
            "voter_id": voter_id,
            "election_id": election_id,
            "candidate_id": candidate_id,
            "voted_at": voted_at,
            "vote_hash": compute_vote_hash(voter_id, candidate_id, election_id, voted_at),
            "voter_hash": compute_voter_hash(voter_id, election_id),
            "device_info": device_fingerprint(user_agent, ip_address),
            "status": "valid",
            "is_verified": False,
            "audit_log": [],
        }
        for _ in range(VERIFICATION_CODE_ATTEMPTS):
            try:
                return self.db.insert_one(
                    "votes", {**base, "verification_code": generate_verification_code()}
                )
            except DuplicateKeyError as exc:
                if exc.field != "verification_code":
                    raise
                logger.warning("Verification code collision, regenerating")
        raise ConflictError(
            "Could not allocate a verification code", code="DUPLICATE_VERIFICATION_CODE"
        )

    def verify(self, verification_code: str) -> dict[str, Any]:
        """Public receipt check; never reveals who cast the ballot."""
        code = (verification_code or "").strip().upper()
        if not code:
            raise InvalidInputError("Verification code is required")

        vote = self.db.find_one("votes", {"verification_code": code})
        if vote is None:
            raise NotFoundError("Verification code")

        election = self.db.find_one(
            "elections", {"id": vote["election_id"]}, columns="id,title,constituency,state"
        ) or {}
        candidate = self.db.find_one(
            "candidates", {"id": vote["candidate_id"]}, columns="id,full_name,political_party"
        ) or {}
        return {
            "vote_id": vote["id"],
            "voted_at": vote["voted_at"],
            "status": vote.get("status"),
            "is_verified": bool(vote.get("is_verified")),
            "integrity_check": verify_integrity(vote),
            "election": {
                "title": election.get("title"),
                "constituency": election.get("constituency"),
                "state": election.get("state"),
            },
            "candidate": {
                "name": candidate.get("full_name"),
                "party": candidate.get("political_party"),
            },
        }

    def history(self, actor: Identity) -> list[dict[str, Any]]:
        """Ballots cast by the authenticated voter, newest first."""
        authorize(actor, "vote:history")
        votes = self.db.select_many(
            "votes",
            filters={"voter_id": actor.id},
            order_by="voted_at",
            descending=True,
        )
        elections = self.db.get_map(
            "elections",
            [vote["election_id"] for vote in votes],
            columns="id,title,type,constituency,state,voting_start_date,voting_end_date",
        )
        candidates = self.db.get_map(
            "candidates",
            [vote["candidate_id"] for vote in votes],
            columns="id,full_name,political_party,party_symbol",
        )
        return [
            {
                "vote_id": vote["id"],
                "verification_code": vote["verification_code"],
                "voted_at": vote["voted_at"],
                "status": vote.get("status"),
                "election": elections.get(str(vote["election_id"])),
                "candidate": candidates.get(str(vote["candidate_id"])),
            }
            for vote in votes
        ]

    def list_votes(
        self,
        actor: Identity,
        page: int = 1,
        limit: int = 20,
        election_id: str | None = None,
        candidate_id: str | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Paginated audit listing of ballots."""
        authorize(actor, "vote:list")
        query = self.db.client.table("votes").select("*", count="exact")
        if election_id:
            query = query.eq("election_id", election_id)
        if candidate_id:
            query = query.eq("candidate_id", candidate_id)
        if status:
            query = query.eq("status", status)
        if start_date:
            query = query.gte("voted_at", to_iso(start_date))
        if end_date:
            query = query.lte("voted_at", to_iso(end_date))
        query = query.order("voted_at", desc=True)

        rows, total = self.db.select_page(query, page, limit)
        voters = self.db.get_map(
            "voters", [row["voter_id"] for row in rows], columns="id,full_name,email,phone_number"
        )
        elections = self.db.get_map(
            "elections", [row["election_id"] for row in rows], columns="id,title,constituency"
        )
        candidates = self.db.get_map(
            "candidates",
            [row["candidate_id"] for row in rows],
            columns="id,full_name,political_party",
        )
        for row in rows:
            row["voter"] = voters.get(str(row["voter_id"]))
            row["election"] = elections.get(str(row["election_id"]))
            row["candidate"] = candidates.get(str(row["candidate_id"]))
        return rows, total

    def election_results(self, actor: Identity, election_id: str) -> dict[str, Any]:
        """Full tabulation plus timing statistics for administrators."""
        authorize(actor, "vote:results")
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        tally = self.tabulation.results(election_id)
        return {
            "election": {
                "id": election["id"],
                "title": election.get("title"),
                "constituency": election.get("constituency"),
                "state": election.get("state"),
                "status": election.get("status"),
                "total_registered_voters": election.get("total_registered_voters", 0),
                "total_votes_cast": election.get("total_votes_cast", 0),
                "turnout_percentage": election.get("turnout_percentage", 0),
            },
            "results": tally["results"],
            "winner": tally["winner"],
            "is_tie": tally["is_tie"],
            "total_votes": tally["total_votes"],
            "statistics": self.tabulation.statistics(election_id),
        }

    def update_status(
        self,
        actor: Identity,
        vote_id: str,
        status: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Change a ballot's status and append an audit entry."""
        authorize(actor, "vote:update_status")
        if status not in VOTE_STATUSES:
            raise InvalidInputError("Invalid status")

        vote = self.db.select_one("votes", {"id": vote_id}, not_found_label="Vote")
        now = to_iso(self.clock())
        audit_log = list(vote.get("audit_log") or [])
        audit_log.append(
            {
                "action": f"Status changed to {status}",
                "previous_status": vote.get("status"),
                "performed_by": actor.id,
                "reason": reason,
                "timestamp": now,
            }
        )
        self.db.update_one(
            "votes",
            vote_id,
            {"status": status, "audit_log": audit_log, "updated_at": now},
            "Vote",
        )
        self.tallies.refresh_candidate(str(vote["candidate_id"]))
        self.tallies.refresh_election(str(vote["election_id"]))
        logger.info("Vote %s status %s -> %s by %s", vote_id, vote.get("status"), status, actor.id)
        return {
            "vote_id": vote_id,
            "new_status": status,
            "updated_at": now,
            "updated_by": actor.id,
        }

    def stats_overview(self, actor: Identity) -> dict[str, Any]:
        """Ballot totals by status plus the last day's hourly distribution."""
        authorize(actor, "vote:stats")
        votes = self.db.select_many("votes", columns="id,status,voted_at")
        by_status = count_by(votes, "status")
        since = self.clock() - timedelta(hours=24)
        recent = [vote for vote in votes if parse_timestamp(vote["voted_at"]) >= since]
        return {
            "overview": {
                "total_votes": len(votes),
                "valid_votes": by_status.get("valid", 0),
                "invalid_votes": by_status.get("invalid", 0),
                "disputed_votes": by_status.get("disputed", 0),
                "under_review_votes": by_status.get("under_review", 0),
            },
            "hourly_distribution": hourly_distribution(recent),
        }

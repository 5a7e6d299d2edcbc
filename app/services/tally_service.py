"""Derived vote tallies recomputed from the vote ledger."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from app.config import settings
from app.services.common import SupabaseService
from app.utils.time import now_utc, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_turnout(votes_cast: int, registered_voters: int) -> float:
    """Turnout percentage clamped to ``[0, 100]``; 0 when nobody is registered."""
    if registered_voters <= 0:
        return 0.0
    turnout = votes_cast / registered_voters * 100
    return round(min(100.0, max(0.0, turnout)), 2)


def with_retries(action: Callable[[], T], attempts: int, label: str) -> T:
    """Run ``action`` up to ``attempts`` times, re-raising the last failure."""
    attempts = max(1, attempts)
    for attempt in range(1, attempts):
        try:
            return action()
        except Exception:
            logger.warning("%s failed (attempt %d/%d), retrying", label, attempt, attempts)
    return action()


class TallyService:
    """Keep candidate, election and voter counters in step with the ledger.

    Every refresh recounts from ``votes`` instead of incrementing, so a
    refresh can run any number of times and always converges.
    """

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock

    def refresh_candidate(self, candidate_id: str) -> int:
        """Recount valid votes for one candidate."""
        total = self.db.count("votes", {"candidate_id": candidate_id, "status": "valid"})
        self.db.update(
            "candidates",
            {"id": candidate_id},
            {"vote_count": total, "updated_at": to_iso(self.clock())},
        )
        return total

    def registered_voters(self) -> int:
        """Voters eligible to cast a ballot: active and verified."""
        return self.db.count("voters", {"is_active": True, "is_verified": True})

    def refresh_election(self, election_id: str) -> dict[str, Any]:
        """Recount ballots, candidates and turnout for one election."""
        votes_cast = self.db.count("votes", {"election_id": election_id})
        candidates = self.db.count("candidates", {"election_id": election_id, "is_active": True})
        registered = self.registered_voters()
        counters = {
            "total_votes_cast": votes_cast,
            "total_candidates": candidates,
            "total_registered_voters": registered,
            "turnout_percentage": compute_turnout(votes_cast, registered),
            "updated_at": to_iso(self.clock()),
        }
        self.db.update("elections", {"id": election_id}, counters)
        return counters

    def refresh_voter_history(self, voter_id: str) -> list[dict[str, Any]]:
        """Rebuild a voter's participation record from their ballots."""
        ballots = self.db.select_many(
            "votes",
            filters={"voter_id": voter_id},
            columns="election_id,voted_at",
            order_by="voted_at",
        )
        history: list[dict[str, Any]] = []
        seen: set[str] = set()
        for ballot in ballots:
            election_id = str(ballot["election_id"])
            if election_id in seen:
                continue
            seen.add(election_id)
            history.append({"election_id": election_id, "voted_at": ballot.get("voted_at")})
        self.db.update(
            "voters",
            {"id": voter_id},
            {"voting_history": history, "has_voted": bool(history)},
        )
        return history

    def project_vote(self, vote: dict[str, Any]) -> None:
        """Apply every projection a freshly recorded vote affects."""
        attempts = settings.vote_side_effect_max_attempts
        with_retries(
            lambda: self.refresh_candidate(str(vote["candidate_id"])),
            attempts,
            "Candidate tally refresh",
        )
        with_retries(
            lambda: self.refresh_election(str(vote["election_id"])),
            attempts,
            "Election tally refresh",
        )
        with_retries(
            lambda: self.refresh_voter_history(str(vote["voter_id"])),
            attempts,
            "Voter history refresh",
        )

    def reconcile(self, election_id: str) -> dict[str, Any]:
        """Recount every candidate of an election, its voters' histories, then the election."""
        candidates = self.db.select_many(
            "candidates", filters={"election_id": election_id}, columns="id"
        )
        for candidate in candidates:
            self.refresh_candidate(str(candidate["id"]))
        ballots = self.db.select_many(
            "votes", filters={"election_id": election_id}, columns="voter_id"
        )
        for voter_id in sorted({str(ballot["voter_id"]) for ballot in ballots}):
            self.refresh_voter_history(voter_id)
        return self.refresh_election(election_id)

    def reconcile_open_elections(self) -> int:
        """Reconcile every election that is not yet closed out."""
        elections = self.db.select_many(
            "elections",
            filters={"is_active": True, "status": ["registration", "active"]},
            columns="id",
        )
        for election in elections:
            self.reconcile(str(election["id"]))
        return len(elections)

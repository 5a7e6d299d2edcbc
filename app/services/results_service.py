"""Result tabulation over the vote ledger."""

from __future__ import annotations

from collections import Counter
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, count_by
from app.utils.time import parse_timestamp, to_iso
from supabase import Client

CANDIDATE_COLUMNS = "id,full_name,political_party,party_symbol,profile_photo,nomination_date,is_active,is_approved"


def _first_valid_vote(votes: list[dict[str, Any]]) -> dict[str, str]:
    first_seen: dict[str, str] = {}
    for vote in sorted(votes, key=lambda row: parse_timestamp(row["voted_at"])):
        candidate = str(vote["candidate_id"])
        first_seen.setdefault(candidate, vote["voted_at"])
    return first_seen


def tabulate(
    votes: list[dict[str, Any]],
    candidates: list[dict[str, Any]],
    tie_break: str = "reject",
) -> dict[str, Any]:
    """Count valid votes per candidate and resolve the winner.

    Results are ordered by vote count, highest first, falling back to the
    order ``candidates`` were given in. When several candidates share the
    top count the winner depends on ``tie_break``: ``earliest_vote`` picks
    the one whose first valid vote came earliest, anything else leaves the
    winner empty and flags the tie.
    """
    valid_votes = [vote for vote in votes if vote.get("status", "valid") == "valid"]
    counts = Counter(str(vote["candidate_id"]) for vote in valid_votes)
    total = sum(counts.values())

    ordered: list[dict[str, Any]] = []
    seen: set[str] = set()
    for candidate in candidates:
        candidate_id = str(candidate["id"])
        if candidate_id in seen:
            continue
        seen.add(candidate_id)
        ordered.append(candidate)

    results = []
    for position, candidate in enumerate(ordered):
        candidate_id = str(candidate["id"])
        vote_count = counts.get(candidate_id, 0)
        results.append(
            {
                "candidate_id": candidate_id,
                "full_name": candidate.get("full_name"),
                "political_party": candidate.get("political_party"),
                "party_symbol": candidate.get("party_symbol"),
                "profile_photo": candidate.get("profile_photo"),
                "vote_count": vote_count,
                "percentage": round(vote_count / total * 100, 2) if total else 0.0,
                "_position": position,
            }
        )
    results.sort(key=lambda row: (-row["vote_count"], row["_position"]))
    for row in results:
        row.pop("_position")

    winner = None
    tied_ids: list[str] = []
    if total:
        top = results[0]["vote_count"]
        tied_ids = [row["candidate_id"] for row in results if row["vote_count"] == top]
        if len(tied_ids) == 1:
            winner = results[0]
        elif tie_break == "earliest_vote":
            first_seen = _first_valid_vote(valid_votes)
            chosen = min(tied_ids, key=lambda cid: parse_timestamp(first_seen[cid]))
            winner = next(row for row in results if row["candidate_id"] == chosen)

    return {
        "results": results,
        "total_votes": total,
        "winner": winner,
        "is_tie": len(tied_ids) > 1,
        "tied_candidate_ids": tied_ids if len(tied_ids) > 1 else [],
    }


def hourly_distribution(votes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Bucket votes by UTC hour, oldest first."""
    buckets = Counter(
        parse_timestamp(vote["voted_at"]).strftime("%Y-%m-%dT%H:00:00Z") for vote in votes
    )
    return [{"hour": hour, "count": buckets[hour]} for hour in sorted(buckets)]


class TabulationService:
    """Read-only result computation for elections."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def _ballots(self, election_id: str) -> list[dict[str, Any]]:
        return self.db.select_many(
            "votes",
            filters={"election_id": election_id},
            columns="id,candidate_id,status,voted_at",
            order_by="voted_at",
        )

    def _candidates(self, election_id: str, ballots: list[dict[str, Any]]) -> list[dict[str, Any]]:
        rows = self.db.select_many(
            "candidates",
            filters={"election_id": election_id},
            columns=CANDIDATE_COLUMNS,
            order_by="nomination_date",
        )
        voted_for = {str(ballot["candidate_id"]) for ballot in ballots}
        return [
            row
            for row in rows
            if (row.get("is_active") and row.get("is_approved")) or str(row["id"]) in voted_for
        ]

    def results(self, election_id: str, tie_break: str | None = None) -> dict[str, Any]:
        """Tabulate the current ledger for one election."""
        ballots = self._ballots(election_id)
        candidates = self._candidates(election_id, ballots)
        return tabulate(ballots, candidates, tie_break or settings.result_tie_break)

    def statistics(self, election_id: str) -> dict[str, Any]:
        """Timing and status breakdown of the ballots cast in one election."""
        ballots = self._ballots(election_id)
        timestamps = [parse_timestamp(ballot["voted_at"]) for ballot in ballots]
        return {
            "total_votes": len(ballots),
            "status_breakdown": count_by(ballots, "status"),
            "first_vote": to_iso(min(timestamps)) if timestamps else None,
            "last_vote": to_iso(max(timestamps)) if timestamps else None,
            "hourly_distribution": hourly_distribution(ballots),
        }

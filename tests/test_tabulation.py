"""Result tabulation, tie handling and tally recounts."""

from __future__ import annotations

import pytest

from app.services.results_service import TabulationService, hourly_distribution, tabulate
from app.services.tally_service import TallyService, compute_turnout, with_retries
from tests.factories import make_candidate, make_election, make_voter

CANDIDATES = [
    {"id": "a", "full_name": "Asha", "political_party": "P1"},
    {"id": "b", "full_name": "Bala", "political_party": "P2"},
    {"id": "c", "full_name": "Chen", "political_party": "P3"},
]


def _vote(candidate_id: str, minute: int, status: str = "valid") -> dict:
    return {
        "candidate_id": candidate_id,
        "status": status,
        "voted_at": f"2026-03-15T10:{minute:02d}:00+00:00",
    }


def test_tabulate_orders_by_count() -> None:
    """Results are sorted by valid votes with percentages of the valid total."""
    votes = [_vote("b", 1), _vote("b", 2), _vote("a", 3), _vote("c", 4, status="invalid")]

    tally = tabulate(votes, CANDIDATES)

    assert [row["candidate_id"] for row in tally["results"]] == ["b", "a", "c"]
    assert [row["vote_count"] for row in tally["results"]] == [2, 1, 0]
    assert tally["results"][0]["percentage"] == 66.67
    assert tally["total_votes"] == 3
    assert tally["winner"]["candidate_id"] == "b"
    assert tally["is_tie"] is False


def test_tabulate_counts_sum_to_total() -> None:
    """Per-candidate counts always add up to the valid total."""
    votes = [_vote(cid, minute) for minute, cid in enumerate("abcabcaab")]
    votes.append(_vote("a", 30, status="disputed"))

    tally = tabulate(votes, CANDIDATES)

    assert sum(row["vote_count"] for row in tally["results"]) == tally["total_votes"] == 9


def test_tabulate_without_votes() -> None:
    """No ballots means no winner and zero percentages."""
    tally = tabulate([], CANDIDATES)
    assert tally["winner"] is None
    assert tally["total_votes"] == 0
    assert all(row["percentage"] == 0.0 for row in tally["results"])


@pytest.mark.parametrize("policy", ["reject", "no_winner"])
def test_tie_without_earliest_policy_has_no_winner(policy: str) -> None:
    """A shared top count leaves the winner empty unless told how to break it."""
    votes = [_vote("a", 5), _vote("b", 1), _vote("c", 2)]

    tally = tabulate(votes, CANDIDATES, tie_break=policy)

    assert tally["is_tie"] is True
    assert tally["winner"] is None
    assert tally["tied_candidate_ids"] == ["a", "b", "c"]


def test_tie_broken_by_earliest_vote() -> None:
    """``earliest_vote`` picks the tied candidate whose first ballot came first."""
    votes = [_vote("a", 5), _vote("a", 6), _vote("b", 2), _vote("b", 9), _vote("c", 1)]

    tally = tabulate(votes, CANDIDATES, tie_break="earliest_vote")

    assert tally["is_tie"] is True
    assert tally["tied_candidate_ids"] == ["a", "b"]
    assert tally["winner"]["candidate_id"] == "b"


@pytest.mark.parametrize(
    ("cast", "registered", "expected"),
    [(0, 0, 0.0), (5, 0, 0.0), (1, 3, 33.33), (3, 3, 100.0), (7, 3, 100.0)],
)
def test_compute_turnout_is_clamped(cast: int, registered: int, expected: float) -> None:
    """Turnout stays inside 0-100 even when counts disagree."""
    assert compute_turnout(cast, registered) == expected


def test_with_retries_returns_after_transient_failure() -> None:
    """Failures before the last attempt are retried."""
    calls = {"count": 0}

    def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise RuntimeError("boom")
        return "done"

    assert with_retries(flaky, attempts=3, label="flaky") == "done"
    assert calls["count"] == 3


def test_with_retries_raises_last_failure() -> None:
    """The final failure propagates to the caller."""
    calls = {"count": 0}

    def broken() -> None:
        calls["count"] += 1
        raise RuntimeError(f"attempt {calls['count']}")

    with pytest.raises(RuntimeError, match="attempt 2"):
        with_retries(broken, attempts=2, label="broken")


def test_hourly_distribution_buckets() -> None:
    """Ballots are grouped by UTC hour, oldest first."""
    votes = [
        {"voted_at": "2026-03-15T11:59:00+00:00"},
        {"voted_at": "2026-03-15T10:01:00+00:00"},
        {"voted_at": "2026-03-15T11:00:00+00:00"},
    ]
    assert hourly_distribution(votes) == [
        {"hour": "2026-03-15T10:00:00Z", "count": 1},
        {"hour": "2026-03-15T11:00:00Z", "count": 2},
    ]


def test_reconcile_repairs_drifted_counters(db, clock) -> None:
    """A recount overwrites counters that drifted from the ledger."""
    election = make_election(db, clock.now, "voting", total_votes_cast=40)
    candidate = make_candidate(db, election, vote_count=17)
    voter = make_voter(db)
    make_voter(db, is_verified=False)
    db.seed(
        "votes",
        {
            "voter_id": voter["id"],
            "election_id": election["id"],
            "candidate_id": candidate["id"],
            "status": "valid",
            "voted_at": "2026-03-15T10:00:00.000000+00:00",
        },
    )

    counters = TallyService(db, clock=clock).reconcile(election["id"])

    assert counters["total_votes_cast"] == 1
    assert counters["total_registered_voters"] == 1
    assert counters["turnout_percentage"] == 100.0
    stored = next(row for row in db.rows("candidates") if row["id"] == candidate["id"])
    assert stored["vote_count"] == 1


def test_reconcile_rebuilds_voter_history(db, clock) -> None:
    """Lost participation entries come back from the ballots on a recount."""
    first = make_election(db, clock.now, "voting")
    second = make_election(db, clock.now, "voting")
    voter = make_voter(db)
    for election, minute in ((second, 5), (first, 1)):
        db.seed(
            "votes",
            {
                "voter_id": voter["id"],
                "election_id": election["id"],
                "candidate_id": make_candidate(db, election)["id"],
                "status": "valid",
                "voted_at": f"2026-03-15T10:{minute:02d}:00.000000+00:00",
            },
        )
    for row in db.tables["voters"]:
        row.update({"voting_history": [{"election_id": second["id"]}], "has_voted": True})

    TallyService(db, clock=clock).reconcile(first["id"])

    stored = db.rows("voters")[0]
    assert [entry["election_id"] for entry in stored["voting_history"]] == [
        first["id"],
        second["id"],
    ]
    assert stored["has_voted"] is True


def test_voter_history_clears_without_ballots(db, clock) -> None:
    """A voter with no ballots left has an empty history."""
    voter = make_voter(db, has_voted=True, voting_history=[{"election_id": "gone"}])

    assert TallyService(db, clock=clock).refresh_voter_history(voter["id"]) == []
    assert db.rows("voters")[0]["has_voted"] is False


def test_results_include_candidates_with_votes_after_withdrawal(db, clock) -> None:
    """A withdrawn candidate who already received ballots stays in the results."""
    election = make_election(db, clock.now, "voting")
    active = make_candidate(db, election)
    withdrawn = make_candidate(db, election, is_active=False)
    make_candidate(db, election, is_approved=False)
    voter = make_voter(db)
    db.seed(
        "votes",
        {
            "voter_id": voter["id"],
            "election_id": election["id"],
            "candidate_id": withdrawn["id"],
            "status": "valid",
            "voted_at": "2026-03-15T10:00:00.000000+00:00",
        },
    )

    tally = TabulationService(db).results(election["id"])

    assert [row["candidate_id"] for row in tally["results"]] == [withdrawn["id"], active["id"]]
    assert tally["winner"]["candidate_id"] == withdrawn["id"]

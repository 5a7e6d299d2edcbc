"""Ballot casting, receipts and ledger projections."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from app.services import vote_service
from app.services.vote_service import (
    VoteService,
    compute_vote_hash,
    compute_voter_hash,
    device_fingerprint,
    generate_verification_code,
    verify_integrity,
)
from app.utils.errors import (
    AppError,
    ConflictError,
    ConsistencyError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from tests.factories import (
    admin_identity,
    make_admin,
    make_candidate,
    make_election,
    make_voter,
    voter_identity,
)


@pytest.fixture
def ballot(db, clock):
    """An open election with two approved candidates and a verified voter."""
    election = make_election(db, clock.now, "voting")
    first = make_candidate(db, election)
    second = make_candidate(db, election)
    voter = make_voter(db)
    return election, first, second, voter


def test_cast_records_ballot_and_projections(db, clock, ballot) -> None:
    """A successful cast stores one ballot and refreshes every counter."""
    election, first, _, voter = ballot
    service = VoteService(db, clock=clock)

    receipt = service.cast(voter_identity(voter), election["id"], first["id"], "pytest", "10.0.0.1")

    assert receipt["election"] == election["title"]
    assert receipt["candidate"] == first["full_name"]
    assert len(receipt["verification_code"]) == 32

    votes = db.rows("votes")
    assert len(votes) == 1
    vote = votes[0]
    assert vote["status"] == "valid"
    assert vote["device_info"]["user_agent"] == "pytest"
    assert vote["device_info"]["ip_hash"] != "10.0.0.1"
    assert verify_integrity(vote)

    candidate = next(row for row in db.rows("candidates") if row["id"] == first["id"])
    assert candidate["vote_count"] == 1
    stored_election = db.rows("elections")[0]
    assert stored_election["total_votes_cast"] == 1
    assert stored_election["total_registered_voters"] == 1
    assert stored_election["turnout_percentage"] == 100.0
    stored_voter = db.rows("voters")[0]
    assert stored_voter["has_voted"] is True
    assert [entry["election_id"] for entry in stored_voter["voting_history"]] == [election["id"]]


def test_second_cast_is_rejected(db, clock, ballot) -> None:
    """The same voter cannot vote twice in one election."""
    election, first, second, voter = ballot
    service = VoteService(db, clock=clock)
    service.cast(voter_identity(voter), election["id"], first["id"])

    with pytest.raises(ConflictError) as excinfo:
        service.cast(voter_identity(voter), election["id"], second["id"])
    assert excinfo.value.code == "ALREADY_VOTED"
    assert len(db.rows("votes")) == 1


def test_unique_key_rejects_when_precheck_is_bypassed(db, clock, ballot, monkeypatch) -> None:
    """The ledger's unique key is the last line against double voting."""
    election, first, _, voter = ballot
    service = VoteService(db, clock=clock)
    service.cast(voter_identity(voter), election["id"], first["id"])

    original = service.db.find_one

    def skip_vote_lookup(table, filters, columns="*"):
        if table == "votes":
            return None
        return original(table, filters, columns=columns)

    monkeypatch.setattr(service.db, "find_one", skip_vote_lookup)
    with pytest.raises(ConflictError) as excinfo:
        service.cast(voter_identity(voter), election["id"], first["id"])
    assert excinfo.value.code == "ALREADY_VOTED"
    assert len(db.rows("votes")) == 1


def test_verification_code_collision_is_regenerated(db, clock, ballot, monkeypatch) -> None:
    """A receipt code already on the ledger is replaced by a fresh one."""
    election, first, _, voter = ballot
    other = make_voter(db)
    service = VoteService(db, clock=clock)
    taken = service.cast(voter_identity(other), election["id"], first["id"])["verification_code"]
    codes = iter([taken, "F" * 32])
    monkeypatch.setattr(vote_service, "generate_verification_code", lambda: next(codes))

    receipt = service.cast(voter_identity(voter), election["id"], first["id"])

    assert receipt["verification_code"] == "F" * 32
    assert len(db.rows("votes")) == 2


def test_exhausted_verification_codes_conflict(db, clock, ballot, monkeypatch) -> None:
    """Every regenerated code colliding ends in a conflict and no ballot."""
    election, first, _, voter = ballot
    other = make_voter(db)
    service = VoteService(db, clock=clock)
    taken = service.cast(voter_identity(other), election["id"], first["id"])["verification_code"]
    monkeypatch.setattr(vote_service, "generate_verification_code", lambda: taken)

    with pytest.raises(ConflictError) as excinfo:
        service.cast(voter_identity(voter), election["id"], first["id"])

    assert excinfo.value.code == "DUPLICATE_VERIFICATION_CODE"
    assert len(db.rows("votes")) == 1
def test_concurrent_casts_store_exactly_one_ballot(db, clock, ballot) -> None:
    """Parallel submissions by one voter end with a single stored ballot."""
    election, first, second, voter = ballot
    identity = voter_identity(voter)

    def attempt(candidate_id: str) -> str:
        try:
            VoteService(db, clock=clock).cast(identity, election["id"], candidate_id)
        except ConflictError as exc:
            return exc.code
        return "ok"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, [first["id"], second["id"]] * 4))

    assert outcomes.count("ok") == 1
    assert set(outcomes) - {"ok"} == {"ALREADY_VOTED"}
    assert len(db.rows("votes")) == 1


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"status": "registration"}, "VOTING_NOT_ACTIVE"),
        ({"status": "cancelled"}, "VOTING_NOT_ACTIVE"),
        ({"status": "completed"}, "VOTING_NOT_ACTIVE"),
    ],
)
def test_cast_requires_active_election(db, clock, overrides, code) -> None:
    """Ballots are refused unless the election status is active."""
    election = make_election(db, clock.now, "voting", **overrides)
    candidate = make_candidate(db, election)
    voter = make_voter(db)

    with pytest.raises(ConflictError) as excinfo:
        VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], candidate["id"])
    assert excinfo.value.code == code


def test_cast_outside_window_is_rejected(db, clock) -> None:
    """An active status alone does not open voting once the window has passed."""
    election = make_election(db, clock.now, "counting")
    candidate = make_candidate(db, election)
    voter = make_voter(db)

    with pytest.raises(ConflictError) as excinfo:
        VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], candidate["id"])
    assert excinfo.value.code == "VOTING_NOT_ACTIVE"


def test_cast_unknown_election(db, clock) -> None:
    """Missing and deactivated elections are not found."""
    voter = make_voter(db)
    hidden = make_election(db, clock.now, "voting", is_active=False)
    service = VoteService(db, clock=clock)

    with pytest.raises(NotFoundError):
        service.cast(voter_identity(voter), "missing", "missing")
    with pytest.raises(NotFoundError):
        service.cast(voter_identity(voter), hidden["id"], "missing")


def test_cast_candidate_from_other_election(db, clock, ballot) -> None:
    """A candidate must belong to the election the ballot is for."""
    election, _, _, voter = ballot
    other = make_election(db, clock.now, "voting")
    stranger = make_candidate(db, other)

    with pytest.raises(NotFoundError) as excinfo:
        VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], stranger["id"])
    assert excinfo.value.message == "Candidate not found"


@pytest.mark.parametrize("overrides", [{"is_approved": False}, {"is_active": False}])
def test_cast_for_ineligible_candidate(db, clock, overrides) -> None:
    """Unapproved or withdrawn candidates cannot receive ballots."""
    election = make_election(db, clock.now, "voting")
    candidate = make_candidate(db, election, **overrides)
    voter = make_voter(db)

    with pytest.raises(ConflictError) as excinfo:
        VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], candidate["id"])
    assert excinfo.value.code == "CANDIDATE_NOT_ELIGIBLE"


def test_cast_requires_verified_active_voter(db, clock, ballot) -> None:
    """Voter state is re-read from the store at cast time."""
    election, first, _, _ = ballot
    unverified = make_voter(db, is_verified=False)
    inactive = make_voter(db, is_active=False)
    service = VoteService(db, clock=clock)

    with pytest.raises(ForbiddenError) as excinfo:
        service.cast(voter_identity(unverified), election["id"], first["id"])
    assert excinfo.value.message == "Your account must be verified to vote"

    with pytest.raises(ForbiddenError) as excinfo:
        service.cast(voter_identity(inactive), election["id"], first["id"])
    assert excinfo.value.message == "Your account is not active"
    assert db.rows("votes") == []


def test_cast_requires_voter_identity(db, clock, ballot) -> None:
    """Admins and anonymous callers cannot cast ballots."""
    election, first, _, _ = ballot
    admin = make_admin(db)
    service = VoteService(db, clock=clock)

    with pytest.raises(ForbiddenError):
        service.cast(admin_identity(admin), election["id"], first["id"])
    with pytest.raises(UnauthorizedError):
        service.cast(None, election["id"], first["id"])


def test_projection_failure_keeps_ballot(db, clock, ballot) -> None:
    """If tallies cannot be refreshed the ballot stays and the receipt is returned."""
    election, first, _, voter = ballot
    db.fail_next("candidates", "update", times=3)

    with pytest.raises(ConsistencyError) as excinfo:
        VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], first["id"])

    error = excinfo.value
    assert error.status_code == 500
    assert error.code == "DATA_CONSISTENCY_ERROR"
    assert error.data["verification_code"] == db.rows("votes")[0]["verification_code"]


def test_projection_retries_transient_failures(db, clock, ballot) -> None:
    """A failure that clears before the last attempt is absorbed."""
    election, first, _, voter = ballot
    db.fail_next("candidates", "update", times=2)

    VoteService(db, clock=clock).cast(voter_identity(voter), election["id"], first["id"])

    candidate = next(row for row in db.rows("candidates") if row["id"] == first["id"])
    assert candidate["vote_count"] == 1


def test_verify_receipt(db, clock, ballot) -> None:
    """Receipts verify case-insensitively and reveal no voter details."""
    election, first, _, voter = ballot
    service = VoteService(db, clock=clock)
    receipt = service.cast(voter_identity(voter), election["id"], first["id"])

    result = service.verify(f"  {receipt['verification_code'].lower()} ")

    assert result["vote_id"] == receipt["vote_id"]
    assert result["integrity_check"] is True
    assert result["candidate"] == {"name": first["full_name"], "party": first["political_party"]}
    assert "voter_id" not in result
    with pytest.raises(NotFoundError) as excinfo:
        service.verify("0" * 32)
    assert excinfo.value.message == "Verification code not found"


def test_verify_detects_tampering(db, clock, ballot) -> None:
    """Changing a stored ballot's candidate breaks its integrity check."""
    election, first, second, voter = ballot
    service = VoteService(db, clock=clock)
    receipt = service.cast(voter_identity(voter), election["id"], first["id"])

    db.tables["votes"][0]["candidate_id"] = second["id"]

    assert service.verify(receipt["verification_code"])["integrity_check"] is False


def test_vote_hash_is_deterministic() -> None:
    """Equivalent timestamps in different spellings hash identically."""
    first = compute_vote_hash("v", "c", "e", "2026-03-15T12:00:00Z")
    second = compute_vote_hash("v", "c", "e", "2026-03-15T12:00:00.000000+00:00")
    assert first == second
    assert first != compute_vote_hash("v", "c2", "e", "2026-03-15T12:00:00Z")
    assert len(first) == 64


def test_voter_hash_is_keyed() -> None:
    """The voter digest changes with the secret and the election."""
    base = compute_voter_hash("voter", "election", secret="one")
    assert base == compute_voter_hash("voter", "election", secret="one")
    assert base != compute_voter_hash("voter", "election", secret="two")
    assert base != compute_voter_hash("voter", "other", secret="one")


def test_verification_codes_are_upper_hex() -> None:
    """Codes are 32 upper-case hex characters and do not repeat."""
    codes = {generate_verification_code() for _ in range(50)}
    assert len(codes) == 50
    assert all(len(code) == 32 and code == code.upper() for code in codes)
    assert all(int(code, 16) >= 0 for code in codes)


def test_device_fingerprint_hashes_address() -> None:
    """Raw client addresses never reach the ballot row."""
    info = device_fingerprint("x" * 600, "192.168.1.5")
    assert len(info["user_agent"]) == 512
    assert info["ip_hash"] and "192.168" not in info["ip_hash"]
    assert device_fingerprint(None, None) == {"user_agent": None, "ip_hash": None}


def test_update_status_recounts_tallies(db, clock, ballot) -> None:
    """Invalidating a ballot drops it from the candidate count but not from turnout."""
    election, first, _, voter = ballot
    auditor = make_admin(db)
    service = VoteService(db, clock=clock)
    receipt = service.cast(voter_identity(voter), election["id"], first["id"])

    result = service.update_status(admin_identity(auditor), receipt["vote_id"], "invalid", "dup")

    assert result["new_status"] == "invalid"
    vote = db.rows("votes")[0]
    assert vote["audit_log"][0]["previous_status"] == "valid"
    assert vote["audit_log"][0]["reason"] == "dup"
    candidate = next(row for row in db.rows("candidates") if row["id"] == first["id"])
    assert candidate["vote_count"] == 0
    assert db.rows("elections")[0]["total_votes_cast"] == 1


def test_update_status_requires_audit_permission(db, clock, ballot) -> None:
    """Officers without the audit permission cannot change ballot status."""
    election, first, _, voter = ballot
    officer = make_admin(db, role="returning_officer", permissions=["view_results"])
    service = VoteService(db, clock=clock)
    receipt = service.cast(voter_identity(voter), election["id"], first["id"])

    with pytest.raises(ForbiddenError):
        service.update_status(admin_identity(officer), receipt["vote_id"], "invalid")


def test_history_lists_own_ballots(db, clock, ballot) -> None:
    """Voting history resolves election and candidate details."""
    election, first, _, voter = ballot
    service = VoteService(db, clock=clock)
    service.cast(voter_identity(voter), election["id"], first["id"])

    history = service.history(voter_identity(voter))

    assert len(history) == 1
    assert history[0]["election"]["title"] == election["title"]
    assert history[0]["candidate"]["full_name"] == first["full_name"]


def test_cast_errors_share_app_error_envelope(db, clock, ballot) -> None:
    """Domain errors serialize to the failure envelope."""
    election, first, _, voter = ballot
    service = VoteService(db, clock=clock)
    service.cast(voter_identity(voter), election["id"], first["id"])

    with pytest.raises(AppError) as excinfo:
        service.cast(voter_identity(voter), election["id"], first["id"])
    assert excinfo.value.to_dict() == {
        "success": False,
        "message": "You have already voted in this election",
        "code": "ALREADY_VOTED",
    }

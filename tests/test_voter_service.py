"""Voter registration, login and administration tests."""

from __future__ import annotations

import pytest

from app.services.voter_service import VoterService, normalize_identifier
from app.utils.errors import ConflictError, DuplicateKeyError, InvalidInputError, UnauthorizedError
from app.utils.security import decode_access_token
from tests.factories import PASSWORD, admin_identity, make_admin, make_voter


def _registration(**overrides) -> dict:
    payload = {
        "full_name": "Anita Desai",
        "date_of_birth": "1994-08-21",
        "gender": "female",
        "email": "Anita@Example.com",
        "phone_number": "9876543210",
        "national_id": "1234 5678 9012",
        "address": {"street": "4 Lake Rd", "city": "Pune", "state": "MH", "pincode": "411002"},
        "password": "Voting2026",
    }
    payload.update(overrides)
    return payload


def test_normalize_identifier() -> None:
    """Identifiers containing @ are emails, anything else a phone number."""
    assert normalize_identifier(" Me@Example.com ") == ("email", "me@example.com")
    assert normalize_identifier("9876543210") == ("phone_number", "9876543210")


def test_register_returns_token_without_secrets(db, clock) -> None:
    """New voters start unverified and receive a voter token."""
    result = VoterService(db, clock=clock).register(_registration())

    voter = result["voter"]
    assert voter["email"] == "anita@example.com"
    assert voter["is_verified"] is False
    assert "password_hash" not in voter
    claims = decode_access_token(result["token"])
    assert claims["sub"] == voter["id"]
    assert claims["user_type"] == "voter"


def test_register_rejects_minors(db, clock) -> None:
    """Voters must be at least 18 on the day they register."""
    with pytest.raises(InvalidInputError):
        VoterService(db, clock=clock).register(_registration(date_of_birth="2010-01-01"))


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("email", "anita@example.com"),
        ("phone_number", "9876543210"),
        ("national_id", "1234 5678 9012"),
    ],
)
def test_register_duplicates_name_the_field(db, clock, field, value) -> None:
    """Each unique identity field reports its own conflict."""
    service = VoterService(db, clock=clock)
    service.register(_registration())
    fresh = _registration(
        email="other@example.com", phone_number="9123456780", national_id="9999 8888 7777"
    )
    fresh[field] = value

    with pytest.raises(DuplicateKeyError) as excinfo:
        service.register(fresh)
    assert excinfo.value.field == field
    assert excinfo.value.status_code == 409


def test_login_by_email_or_phone(db, clock) -> None:
    """Voters sign in with either identifier; wrong passwords are rejected."""
    voter = make_voter(db, email="sam@example.com", phone_number="9000000001")
    service = VoterService(db, clock=clock)

    assert service.login("SAM@example.com", PASSWORD)["voter"]["id"] == voter["id"]
    assert service.login("9000000001", PASSWORD)["voter"]["id"] == voter["id"]
    with pytest.raises(UnauthorizedError, match="Invalid credentials"):
        service.login("sam@example.com", "nope")


def test_login_deactivated_voter(db, clock) -> None:
    """Deactivated voters cannot sign in."""
    make_voter(db, email="off@example.com", is_active=False)

    with pytest.raises(UnauthorizedError, match="deactivated"):
        VoterService(db, clock=clock).login("off@example.com", PASSWORD)


def test_delete_voter_with_ballots_is_refused(db, clock) -> None:
    """Voters who have voted can only be deactivated."""
    root = admin_identity(make_admin(db))
    voter = make_voter(db)
    idle = make_voter(db)
    db.seed(
        "votes",
        {"voter_id": voter["id"], "election_id": "e", "candidate_id": "c", "status": "valid"},
    )
    service = VoterService(db, clock=clock)

    with pytest.raises(ConflictError) as excinfo:
        service.delete(root, voter["id"])
    assert excinfo.value.code == "VOTER_HAS_VOTES"
    assert service.delete(root, idle["id"]) == {"voter_id": idle["id"], "deleted": True}


def test_update_status_toggles_flags(db, clock) -> None:
    """Administrators verify and deactivate voters."""
    manager = admin_identity(
        make_admin(db, role="admin_officer", permissions=["manage_voters"])
    )
    voter = make_voter(db, is_verified=False)
    service = VoterService(db, clock=clock)

    updated = service.update_status(manager, voter["id"], is_verified=True)

    assert updated["is_verified"] is True
    with pytest.raises(InvalidInputError):
        service.update_status(manager, voter["id"])

"""Admin seed script tests."""

from __future__ import annotations

import pytest

from app.utils.security import verify_password
from scripts.seed_admin import seed


def test_seed_creates_accounts_once(db) -> None:
    """Running the seed twice creates each account only once."""
    first = seed("Root@Example.com", "RootPass123", "chief@example.com", "ChiefPass123", client=db)
    second = seed("root@example.com", "RootPass123", "chief@example.com", "ChiefPass123", client=db)

    assert first == [
        ("root@example.com", "super_admin", True),
        ("chief@example.com", "election_commissioner", True),
    ]
    assert [created for _, _, created in second] == [False, False]

    admins = {row["email"]: row for row in db.rows("admins")}
    assert len(admins) == 2
    assert verify_password("RootPass123", admins["root@example.com"]["password_hash"])
    assert admins["chief@example.com"]["created_by"] == admins["root@example.com"]["id"]


def test_seed_rejects_short_password(db) -> None:
    """Seed passwords follow the account password minimum."""
    with pytest.raises(ValueError):
        seed("root@example.com", "short", client=db)

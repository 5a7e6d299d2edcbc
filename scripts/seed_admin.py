"""Create the first super-admin (and optionally a commissioner) in Supabase."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ALL_PERMISSIONS = [
    "manage_elections",
    "manage_candidates",
    "manage_voters",
    "view_results",
    "manage_admins",
    "system_settings",
    "audit_logs",
    "generate_reports",
]
COMMISSIONER_PERMISSIONS = [
    "manage_elections",
    "manage_candidates",
    "view_results",
    "generate_reports",
]


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Seed administrator accounts in public.admins.",
    )
    parser.add_argument(
        "--email",
        type=str,
        default=os.environ.get("ADMIN_EMAIL", "admin@evoting.gov.in"),
        help="Super-admin email (default: $ADMIN_EMAIL).",
    )
    parser.add_argument(
        "--password",
        type=str,
        default=os.environ.get("ADMIN_PASSWORD"),
        help="Super-admin password (default: $ADMIN_PASSWORD).",
    )
    parser.add_argument(
        "--commissioner-email",
        type=str,
        default="commissioner@evoting.gov.in",
        help="Email of the sample election commissioner.",
    )
    parser.add_argument(
        "--commissioner-password",
        type=str,
        default=os.environ.get("COMMISSIONER_PASSWORD"),
        help="Create the sample commissioner with this password.",
    )
    return parser.parse_args()


def ensure_admin(client: Any, record: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Insert ``record`` unless an admin with its email exists; return (row, created)."""
    from app.services.common import SupabaseService

    db = SupabaseService(client)
    existing = db.find_one("admins", {"email": record["email"]})
    if existing is not None:
        return existing, False
    return db.insert_one("admins", record), True


def seed(
    email: str,
    password: str,
    commissioner_email: str | None = None,
    commissioner_password: str | None = None,
    client: Any = None,
) -> list[tuple[str, str, bool]]:
    """Create seed accounts; safe to run repeatedly."""
    if len(password) < 8:
        raise ValueError("password must be at least 8 characters")

    from app.services.common import SupabaseService
    from app.utils.security import hash_password
    from app.utils.supabase_client import get_service_client

    client = client or get_service_client()
    db = SupabaseService(client)
    seeded: list[tuple[str, str, bool]] = []

    super_admin = db.find_one("admins", {"role": "super_admin"})
    if super_admin is None:
        super_admin, created = ensure_admin(
            client,
            {
                "full_name": "Super Administrator",
                "email": email.strip().lower(),
                "password_hash": hash_password(password),
                "role": "super_admin",
                "permissions": ALL_PERMISSIONS,
                "designation": "System Administrator",
                "department": "Information Technology",
                "is_active": True,
                "is_email_verified": True,
                "login_attempts": 0,
                "activity_log": [],
            },
        )
    else:
        created = False
    seeded.append((super_admin["email"], "super_admin", created))

    if commissioner_email and commissioner_password:
        commissioner, created = ensure_admin(
            client,
            {
                "full_name": "Election Commissioner",
                "email": commissioner_email.strip().lower(),
                "password_hash": hash_password(commissioner_password),
                "role": "election_commissioner",
                "permissions": COMMISSIONER_PERMISSIONS,
                "designation": "Chief Election Commissioner",
                "department": "Election Commission",
                "is_active": True,
                "is_email_verified": True,
                "login_attempts": 0,
                "activity_log": [],
                "created_by": super_admin["id"],
            },
        )
        seeded.append((commissioner["email"], "election_commissioner", created))

    return seeded


def main() -> None:
    """CLI entry point."""
    args = parse_args()
    if not args.password:
        raise SystemExit("A super-admin password is required (--password or $ADMIN_PASSWORD)")

    seeded = seed(
        email=args.email,
        password=args.password,
        commissioner_email=args.commissioner_email,
        commissioner_password=args.commissioner_password,
    )
    for email, role, created in seeded:
        state = "created" if created else "already exists"
        print(f"{role}: {email} ({state})")


if __name__ == "__main__":
    main()

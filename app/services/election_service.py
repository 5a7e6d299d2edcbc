"""Election registry: scheduling, phase derivation, lifecycle and results."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, count_by, ilike_any, pick
from app.services.policy import Identity, authorize
from app.services.results_service import TabulationService
from app.services.tally_service import TallyService
from app.utils.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.utils.time import now_utc, parse_timestamp, to_iso
from supabase import Client

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "registration_start_date",
    "registration_end_date",
    "voting_start_date",
    "voting_end_date",
    "result_date",
)

# Derived phases, in the order time moves through them.
PHASES = ("upcoming", "registration", "waiting", "voting", "counting", "completed")
PHASE_RANK = {phase: rank for rank, phase in enumerate(PHASES)}

STATUSES = ("upcoming", "registration", "active", "completed", "cancelled")
TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
LOCKED_STATUSES = frozenset({"active", "completed", "cancelled"})
STATUS_RANK = {"upcoming": 0, "registration": 1, "active": 2, "completed": 3}

ELECTION_TYPES = ("general", "assembly", "local", "by-election", "presidential")
ELECTION_SCOPES = ("national", "state", "district", "constituency", "local")

EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "registration_start_date",
        "registration_end_date",
        "voting_start_date",
        "voting_end_date",
        "result_date",
        "allow_evms",
        "allow_paper_ballots",
        "require_voter_id_verification",
    }
)
# Operational fields that stay editable once the election is locked.
LOCKED_EDITABLE_FIELDS = frozenset(
    {"description", "allow_evms", "allow_paper_ballots", "require_voter_id_verification"}
)

# Stored status the sync job moves a non-terminal election to, per phase.
PHASE_TO_STATUS = {
    "upcoming": "upcoming",
    "registration": "registration",
    "waiting": "registration",
    "voting": "active",
    "completed": "completed",
}


def schedule_of(election: dict[str, Any]) -> tuple[datetime, datetime, datetime, datetime, datetime]:
    """Return the five scheduling timestamps as aware datetimes."""
    return tuple(parse_timestamp(election[field]) for field in SCHEDULE_FIELDS)  # type: ignore[return-value]


def compute_phase(election: dict[str, Any], now: datetime) -> str:
    """Derive the election phase from ``now`` and the five timestamps.

    Total over all instants: any gap the schedule leaves uncovered maps to
    ``waiting``. Boundaries are inclusive on the open side of each window,
    and an instant shared by registration close and voting open is voting,
    matching when ballots are accepted.
    """
    reg_start, reg_end, vote_start, vote_end, result_date = schedule_of(election)
    if now < reg_start:
        return "upcoming"
    if vote_start <= now <= vote_end:
        return "voting"
    if reg_start <= now <= reg_end:
        return "registration"
    if vote_end < now < result_date:
        return "counting"
    if now >= result_date:
        return "completed"
    return "waiting"


def validate_schedule(
    registration_start: datetime,
    registration_end: datetime,
    voting_start: datetime,
    voting_end: datetime,
    result_date: datetime,
) -> None:
    """Require ``reg_start < reg_end <= vote_start < vote_end <= result_date``."""
    errors: list[dict[str, str]] = []
    if registration_start >= registration_end:
        errors.append(
            {
                "field": "registration_end_date",
                "message": "Registration end date must be after start date",
            }
        )
    if registration_end > voting_start:
        errors.append(
            {
                "field": "voting_start_date",
                "message": "Voting cannot start before registration ends",
            }
        )
    if voting_start >= voting_end:
        errors.append(
            {"field": "voting_end_date", "message": "Voting end date must be after start date"}
        )
    if voting_end > result_date:
        errors.append(
            {"field": "result_date", "message": "Result date cannot be before voting ends"}
        )
    if errors:
        raise InvalidInputError(errors[0]["message"], errors=errors)


def is_voting_window_open(election: dict[str, Any], now: datetime) -> bool:
    """Return True when ``now`` lies within the voting window."""
    _, _, vote_start, vote_end, _ = schedule_of(election)
    return vote_start <= now <= vote_end


def is_voting_accepted(election: dict[str, Any], now: datetime) -> bool:
    """Votes are accepted only inside the window and with status ``active``."""
    return (
        bool(election.get("is_active", True))
        and election.get("status") == "active"
        and is_voting_window_open(election, now)
    )


def is_registration_open(election: dict[str, Any], now: datetime) -> bool:
    """Return True when ``now`` lies within the registration window."""
    reg_start, reg_end, _, _, _ = schedule_of(election)
    return reg_start <= now <= reg_end


def voting_has_started(election: dict[str, Any], now: datetime) -> bool:
    """Return True once the voting window has opened (or already closed)."""
    _, _, vote_start, _, _ = schedule_of(election)
    return now >= vote_start


def initial_status(registration_start: datetime, now: datetime) -> str:
    """Status assigned at creation time."""
    return "upcoming" if registration_start > now else "registration"


def is_locked(election: dict[str, Any]) -> bool:
    """Elections are frozen once status reaches ``active`` or later."""
    return election.get("status") in LOCKED_STATUSES


def results_visible(election: dict[str, Any], now: datetime) -> bool:
    """Public results require the result date, a declaration, or completion."""
    _, _, _, _, result_date = schedule_of(election)
    return (
        now >= result_date
        or bool(election.get("is_result_declared"))
        or election.get("status") == "completed"
    )


def synced_status(election: dict[str, Any], now: datetime) -> str | None:
    """Return the status the election should move to, or None to leave it.

    Only moves forward and never touches ``completed`` or ``cancelled``.
    """
    current = election.get("status")
    if current in TERMINAL_STATUSES:
        return None
    target = PHASE_TO_STATUS.get(compute_phase(election, now))
    if target is None or target == current:
        return None
    if STATUS_RANK.get(target, -1) <= STATUS_RANK.get(str(current), -1):
        return None
    return target


class ElectionService:
    """Manage election registry, lifecycle and declared results."""

    def __init__(self, client: Client, clock: Callable[[], datetime] = now_utc) -> None:
        self.db = SupabaseService(client)
        self.clock = clock
        self.tallies = TallyService(client, clock=clock)
        self.tabulation = TabulationService(client)

    def present(self, election: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
        """Attach derived phase flags to a stored election row."""
        moment = now or self.clock()
        payload = dict(election)
        payload["current_phase"] = compute_phase(election, moment)
        payload["is_voting_active"] = is_voting_accepted(election, moment)
        payload["is_registration_open"] = is_registration_open(election, moment)
        return payload

    def get_row(self, election_id: str) -> dict[str, Any]:
        """Return the raw election row."""
        return self.db.select_one("elections", {"id": election_id}, not_found_label="Election")

    def list_elections(
        self,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        election_type: str | None = None,
        constituency: str | None = None,
        state: str | None = None,
        search: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of active elections, newest voting window first."""
        query = (
            self.db.client.table("elections")
            .select("*", count="exact")
            .eq("is_active", True)
        )
        if status:
            query = query.eq("status", status)
        if election_type:
            query = query.eq("type", election_type)
        if constituency:
            query = query.ilike("constituency", f"%{constituency}%")
        if state:
            query = query.ilike("state", f"%{state}%")
        if search:
            query = query.or_(ilike_any(["title", "constituency", "state"], search))

        query = query.order("voting_start_date", desc=True)
        rows, total = self.db.select_page(query, page, limit)
        now = self.clock()
        return [self.present(row, now) for row in rows], total

    def get(self, election_id: str) -> dict[str, Any]:
        """Return one active election with its approved, active candidates."""
        election = self.db.find_one("elections", {"id": election_id, "is_active": True})
        if election is None:
            raise NotFoundError("Election")

        payload = self.present(election)
        payload["candidates"] = self.db.select_many(
            "candidates",
            filters={"election_id": election_id, "is_active": True, "is_approved": True},
            columns="id,full_name,political_party,party_symbol,profile_photo,vote_count",
            order_by="nomination_date",
        )
        return payload

    def by_phase(self, phase: str) -> list[dict[str, Any]]:
        """Return active elections whose derived phase equals ``phase``."""
        if phase not in PHASE_RANK:
            raise InvalidInputError(f"Unknown phase: {phase}")

        now = self.clock()
        rows = self.db.select_many(
            "elections",
            filters={"is_active": True},
            order_by="voting_start_date",
        )
        return [self.present(row, now) for row in rows if compute_phase(row, now) == phase]

    def create(self, actor: Identity, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an election after validating its schedule."""
        authorize(actor, "election:create")

        schedule = [parse_timestamp(payload[field]) for field in SCHEDULE_FIELDS]
        validate_schedule(*schedule)

        now = self.clock()
        record = dict(payload)
        for field, value in zip(SCHEDULE_FIELDS, schedule):
            record[field] = to_iso(value)
        record.update(
            {
                "status": initial_status(schedule[0], now),
                "is_active": True,
                "created_by": actor.id,
                "total_registered_voters": 0,
                "total_votes_cast": 0,
                "total_candidates": 0,
                "turnout_percentage": 0.0,
                "winner_id": None,
                "is_result_declared": False,
                "result_declared_at": None,
                "result_snapshot": None,
            }
        )
        election = self.db.insert_one("elections", record)
        logger.info("Election %s created by admin %s", election["id"], actor.id)
        return self.present(election, now)

    def update(self, actor: Identity, election_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Update editable fields; only operational fields once locked."""
        authorize(actor, "election:update")
        election = self.get_row(election_id)

        allowed = LOCKED_EDITABLE_FIELDS if is_locked(election) else EDITABLE_FIELDS
        blocked = sorted(set(changes) - allowed)
        if is_locked(election) and blocked:
            raise ConflictError(
                "Cannot modify election after voting has started",
                code="ELECTION_LOCKED",
            )

        updates = pick(changes, allowed)
        if not updates:
            return self.present(election)

        missing = [field for field in SCHEDULE_FIELDS if field in updates and updates[field] is None]
        if missing:
            raise InvalidInputError(
                "Validation failed",
                errors=[{"field": field, "message": "Date is required"} for field in missing],
            )

        if any(field in updates for field in SCHEDULE_FIELDS):
            merged = {**election, **updates}
            schedule = [parse_timestamp(merged[field]) for field in SCHEDULE_FIELDS]
            validate_schedule(*schedule)
            for field, value in zip(SCHEDULE_FIELDS, schedule):
                if field in updates:
                    updates[field] = to_iso(value)

        updates["updated_at"] = to_iso(self.clock())
        updated = self.db.update_one("elections", election_id, updates, "Election")
        return self.present(updated)

    def update_status(self, actor: Identity, election_id: str, status: str) -> dict[str, Any]:
        """Set the administrative status; terminal states cannot be left."""
        authorize(actor, "election:update_status")
        if status not in STATUSES:
            raise InvalidInputError("Invalid status")

        election = self.get_row(election_id)
        current = election.get("status")
        if current in TERMINAL_STATUSES and status != current:
            raise ConflictError(
                f"Election is already {current}",
                code="ELECTION_TERMINAL",
            )

        updated = self.db.update_one(
            "elections",
            election_id,
            {"status": status, "updated_at": to_iso(self.clock())},
            "Election",
        )
        logger.info("Election %s status %s -> %s by %s", election_id, current, status, actor.id)
        return self.present(updated)

    def public_results(self, election_id: str) -> dict[str, Any]:
        """Return results once they are publicly visible."""
        election = self.get_row(election_id)
        if not results_visible(election, self.clock()):
            raise ForbiddenError("Results not yet available")

        tally = self.tabulation.results(election_id)
        return {
            "election": {
                "id": election["id"],
                "title": election.get("title"),
                "constituency": election.get("constituency"),
                "state": election.get("state"),
                "total_votes": tally["total_votes"],
                "turnout_percentage": election.get("turnout_percentage", 0),
            },
            "results": tally["results"],
            "winner": tally["winner"],
            "is_tie": tally["is_tie"],
            "total_votes": tally["total_votes"],
            "result_declared_at": election.get("result_declared_at"),
        }

    def declare_results(self, actor: Identity, election_id: str) -> dict[str, Any]:
        """Declare results once; repeated calls return the stored declaration."""
        authorize(actor, "election:declare_results")
        election = self.get_row(election_id)

        if election.get("is_result_declared") and election.get("result_snapshot"):
            return {"already_declared": True, **election["result_snapshot"]}

        now = self.clock()
        _, _, _, vote_end, _ = schedule_of(election)
        if election.get("status") != "completed" and now < vote_end:
            raise ConflictError(
                "Cannot declare results before voting ends",
                code="RESULTS_NOT_READY",
            )
        if election.get("status") == "cancelled":
            raise ConflictError("Election was cancelled", code="ELECTION_CANCELLED")

        tally = self.tabulation.results(election_id, tie_break=settings.result_tie_break)
        if tally["total_votes"] == 0:
            raise ConflictError("No votes found for this election", code="NO_VOTES")
        if tally["is_tie"] and tally["winner"] is None and settings.result_tie_break == "reject":
            raise ConflictError(
                "Top candidates are tied; result needs a tie-break decision",
                code="TIED_RESULT",
            )

        winner = tally["winner"]
        snapshot = {
            "election": election_id,
            "winner": winner,
            "is_tie": tally["is_tie"],
            "results": tally["results"],
            "total_votes": tally["total_votes"],
            "tie_break": settings.result_tie_break,
            "declared_at": to_iso(now),
        }
        self.db.update_one(
            "elections",
            election_id,
            {
                "is_result_declared": True,
                "result_declared_at": to_iso(now),
                "winner_id": winner["candidate_id"] if winner else None,
                "status": "completed",
                "result_snapshot": snapshot,
                "updated_at": to_iso(now),
            },
            "Election",
        )
        self.tallies.refresh_election(election_id)
        logger.info("Results declared for election %s by %s", election_id, actor.id)
        return {"already_declared": False, **snapshot}

    def stats_overview(self, actor: Identity) -> dict[str, Any]:
        """Return election counts by status and by type."""
        authorize(actor, "election:stats")
        rows = self.db.select_many("elections", columns="id,status,type")
        by_status = count_by(rows, "status")
        return {
            "overview": {
                "total_elections": len(rows),
                "upcoming_elections": by_status.get("upcoming", 0),
                "active_elections": by_status.get("active", 0),
                "completed_elections": by_status.get("completed", 0),
            },
            "type_distribution": count_by(rows, "type"),
        }

    def sync_statuses(self) -> int:
        """Advance stored statuses to match derived phases; return changes."""
        now = self.clock()
        changed = 0
        rows = self.db.select_many("elections", filters={"is_active": True})
        for election in rows:
            target = synced_status(election, now)
            if target is None:
                continue
            self.db.update(
                "elections",
                {"id": election["id"], "status": election["status"]},
                {"status": target, "updated_at": to_iso(now)},
            )
            changed += 1
        return changed

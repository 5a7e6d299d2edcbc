"""Vote endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request

from app.dependencies import client_address, get_current_identity, get_db_client
from app.schemas.vote import VoteCast, VoteReceipt, VoteStatusUpdate
from app.services.policy import Identity
from app.services.vote_service import VoteService
from app.utils.responses import pagination_meta, success
from supabase import Client

router = APIRouter()


@router.post("/cast", status_code=201)
def cast_vote(
    payload: VoteCast,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Cast the caller's ballot in an election."""
    receipt = VoteService(client).cast(
        identity,
        payload.election_id,
        payload.candidate_id,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_address(request),
    )
    return success(VoteReceipt(**receipt).model_dump(), "Vote cast successfully")


@router.get("/verify/{verification_code}")
def verify_vote(verification_code: str, client: Client = Depends(get_db_client)) -> dict:
    """Check a ballot receipt without revealing the voter."""
    return success(VoteService(client).verify(verification_code), "Vote verified successfully")


@router.get("/history")
def voting_history(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Ballots cast by the caller."""
    rows = VoteService(client).history(identity)
    return success(rows, count=len(rows))


@router.get("/stats/overview")
def vote_stats(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Ballot totals and recent hourly distribution."""
    return success(VoteService(client).stats_overview(identity))


@router.get("/results/{election_id}")
def election_results(
    election_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Detailed tabulation for administrators."""
    return success(VoteService(client).election_results(identity, election_id))


@router.get("")
def list_votes(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    election: str | None = None,
    candidate: str | None = None,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Audit listing of ballots."""
    rows, total = VoteService(client).list_votes(
        identity,
        page=page,
        limit=limit,
        election_id=election,
        candidate_id=candidate,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )


@router.patch("/{vote_id}/status")
def update_vote_status(
    vote_id: str,
    payload: VoteStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Mark a ballot valid, invalid, disputed or under review."""
    result = VoteService(client).update_status(identity, vote_id, payload.status, payload.reason)
    return success(result, "Vote status updated successfully")

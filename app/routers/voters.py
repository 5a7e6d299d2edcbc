"""Voter administration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_identity, get_db_client
from app.schemas.admin import VoterStatusUpdate
from app.services.policy import Identity
from app.services.voter_service import VoterService
from app.utils.responses import pagination_meta, success
from supabase import Client

router = APIRouter()


@router.get("")
def list_voters(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str | None = None,
    verified: bool | None = None,
    active: bool | None = None,
    has_voted: bool | None = None,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Paginated voter directory."""
    rows, total = VoterService(client).list_voters(
        identity,
        page=page,
        limit=limit,
        search=search,
        is_verified=verified,
        is_active=active,
        has_voted=has_voted,
    )
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )


@router.get("/stats/overview")
def voter_stats(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Voter totals and breakdowns."""
    return success(VoterService(client).stats_overview(identity))


@router.get("/{voter_id}")
def get_voter(
    voter_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """One voter with their ballots."""
    return success(VoterService(client).get(identity, voter_id))


@router.patch("/{voter_id}/status")
def update_voter_status(
    voter_id: str,
    payload: VoterStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Verify, unverify, activate or deactivate a voter."""
    voter = VoterService(client).update_status(
        identity, voter_id, is_verified=payload.is_verified, is_active=payload.is_active
    )
    return success(voter, "Voter status updated successfully")


@router.delete("/{voter_id}")
def delete_voter(
    voter_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Delete a voter who has not voted."""
    return success(VoterService(client).delete(identity, voter_id), "Voter deleted successfully")

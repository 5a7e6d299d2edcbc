"""Candidate endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.config import settings
from app.dependencies import get_current_identity, get_db_client, get_optional_identity
from app.schemas.candidate import CandidateApproval, CandidateCreate, CandidateUpdate
from app.services.candidate_service import CandidateService
from app.services.policy import Identity
from app.utils.responses import pagination_meta, success
from supabase import Client

router = APIRouter()


@router.get("")
def list_candidates(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    election: str | None = None,
    constituency: str | None = None,
    party: str | None = None,
    approved: bool | None = None,
    search: str | None = None,
    viewer: Identity | None = Depends(get_optional_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """List candidates; unapproved ones are visible to admins only."""
    rows, total = CandidateService(client).list_candidates(
        viewer=viewer,
        page=page,
        limit=limit,
        election_id=election,
        constituency=constituency,
        political_party=party,
        is_approved=approved,
        search=search,
    )
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )


@router.get("/stats/overview")
def candidate_stats(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Candidate counts and breakdowns."""
    return success(CandidateService(client).stats_overview(identity))


@router.get("/election/{election_id}")
def candidates_by_election(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Approved candidates standing in one election."""
    rows = CandidateService(client).by_election(election_id)
    return success(rows, count=len(rows))


@router.get("/{candidate_id}")
def get_candidate(
    candidate_id: str,
    viewer: Identity | None = Depends(get_optional_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return one candidate."""
    return success(CandidateService(client).get(candidate_id, viewer))


@router.post("", status_code=201)
def create_candidate(
    payload: CandidateCreate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Nominate a candidate."""
    candidate = CandidateService(client).create(identity, payload.model_dump(mode="json"))
    return success(candidate, "Candidate nominated successfully")


@router.put("/{candidate_id}")
def update_candidate(
    candidate_id: str,
    payload: CandidateUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Edit nomination details."""
    candidate = CandidateService(client).update(
        identity, candidate_id, payload.model_dump(mode="json", exclude_unset=True)
    )
    return success(candidate, "Candidate updated successfully")


@router.patch("/{candidate_id}/approve")
def approve_candidate(
    candidate_id: str,
    payload: CandidateApproval,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Approve or revoke a nomination."""
    candidate = CandidateService(client).set_approval(identity, candidate_id, payload.is_approved)
    verb = "approved" if payload.is_approved else "unapproved"
    return success(candidate, f"Candidate {verb} successfully")


@router.delete("/{candidate_id}")
def delete_candidate(
    candidate_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Delete a nomination, or deactivate it once it has votes."""
    outcome = CandidateService(client).delete(identity, candidate_id)
    message = (
        "Candidate deleted successfully"
        if outcome["deleted"]
        else "Candidate deactivated (has existing votes)"
    )
    return success(outcome, message)

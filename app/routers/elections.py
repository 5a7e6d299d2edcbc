"""Election endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.config import settings
from app.dependencies import get_current_identity, get_db_client
from app.schemas.election import ElectionCreate, ElectionStatusUpdate, ElectionUpdate
from app.services.election_service import ElectionService
from app.services.policy import Identity
from app.utils.responses import pagination_meta, success
from supabase import Client

router = APIRouter()


@router.get("")
def list_elections(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    status: str | None = None,
    type: str | None = None,
    constituency: str | None = None,
    state: str | None = None,
    search: str | None = None,
    client: Client = Depends(get_db_client),
) -> dict:
    """List active elections."""
    rows, total = ElectionService(client).list_elections(
        page=page,
        limit=limit,
        status=status,
        election_type=type,
        constituency=constituency,
        state=state,
        search=search,
    )
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )


@router.get("/stats/overview")
def election_stats(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Election counts by status and type."""
    return success(ElectionService(client).stats_overview(identity))


@router.get("/phase/{phase}")
def elections_by_phase(phase: str, client: Client = Depends(get_db_client)) -> dict:
    """List elections currently in the given phase."""
    rows = ElectionService(client).by_phase(phase)
    return success(rows, count=len(rows))


@router.get("/{election_id}")
def get_election(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Return one election with its approved candidates."""
    return success(ElectionService(client).get(election_id))


@router.post("", status_code=201)
def create_election(
    payload: ElectionCreate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create a new election."""
    election = ElectionService(client).create(identity, payload.model_dump(mode="json"))
    return success(election, "Election created successfully")


@router.put("/{election_id}")
def update_election(
    election_id: str,
    payload: ElectionUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Update an election's editable fields."""
    election = ElectionService(client).update(
        identity, election_id, payload.model_dump(mode="json", exclude_unset=True)
    )
    return success(election, "Election updated successfully")


@router.patch("/{election_id}/status")
def update_election_status(
    election_id: str,
    payload: ElectionStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Change an election's administrative status."""
    election = ElectionService(client).update_status(identity, election_id, payload.status)
    return success(election, f"Election status updated to {payload.status}")


@router.get("/{election_id}/results")
def election_results(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Public results once they are available."""
    return success(ElectionService(client).public_results(election_id))


@router.post("/{election_id}/declare-results")
def declare_results(
    election_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Declare an election's results."""
    declaration = ElectionService(client).declare_results(identity, election_id)
    message = (
        "Results were already declared"
        if declaration["already_declared"]
        else "Results declared successfully"
    )
    return success(declaration, message)

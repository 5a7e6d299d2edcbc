"""Administration endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_identity, get_db_client
from app.schemas.admin import AdminCreate, AdminUpdate
from app.services.admin_service import AdminService
from app.services.policy import Identity
from app.utils.responses import pagination_meta, success
from supabase import Client

router = APIRouter()


@router.get("/dashboard")
def dashboard(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """System overview for administrators."""
    return success(AdminService(client).dashboard(identity))


@router.get("/admins")
def list_admins(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """List administrator accounts."""
    rows, total = AdminService(client).list_admins(
        identity, page=page, limit=limit, role=role, is_active=active, search=search
    )
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )


@router.post("/admins", status_code=201)
def create_admin(
    payload: AdminCreate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create an administrator account."""
    admin = AdminService(client).create(identity, payload.model_dump(mode="json"))
    return success(admin, "Admin created successfully")


@router.put("/admins/{admin_id}")
def update_admin(
    admin_id: str,
    payload: AdminUpdate,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Update an administrator account."""
    admin = AdminService(client).update(
        identity, admin_id, payload.model_dump(mode="json", exclude_unset=True)
    )
    return success(admin, "Admin updated successfully")


@router.delete("/admins/{admin_id}")
def delete_admin(
    admin_id: str,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Delete an administrator account."""
    return success(AdminService(client).delete(identity, admin_id), "Admin deleted successfully")


@router.get("/reports")
def reports(
    type: str = "system",
    election_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Election, voter or system report."""
    report = AdminService(client).report(
        identity,
        report_type=type,
        election_id=election_id,
        start_date=start_date,
        end_date=end_date,
    )
    return success(report)


@router.get("/audit-logs")
def audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Administrator activity, newest first."""
    rows, total = AdminService(client).audit_logs(identity, page=page, limit=limit)
    return success(
        rows, count=len(rows), total=total, pagination=pagination_meta(page, limit, total)
    )

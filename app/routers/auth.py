"""Authentication endpoints."""

from fastapi import APIRouter, Depends, Request

from app.dependencies import (
    client_address,
    get_current_identity,
    get_db_client,
    limiter,
    login_limit,
)
from app.schemas.auth import AdminLogin, VoterLogin, VoterRegister
from app.services.admin_service import AdminService
from app.services.policy import Identity
from app.services.voter_service import VoterService
from app.utils.responses import success
from supabase import Client

router = APIRouter()


@router.post("/register", status_code=201)
def register_voter(payload: VoterRegister, client: Client = Depends(get_db_client)) -> dict:
    """Register a new voter account."""
    result = VoterService(client).register(payload.model_dump(mode="json"))
    return success(result, "Voter registered successfully")


@router.post("/login")
@limiter.limit(login_limit)
def login_voter(
    request: Request,
    payload: VoterLogin,
    client: Client = Depends(get_db_client),
) -> dict:
    """Log a voter in by email or phone number."""
    result = VoterService(client).login(payload.identifier, payload.password)
    return success(result, "Login successful")


@router.post("/admin/login")
@limiter.limit(login_limit)
def login_admin(
    request: Request,
    payload: AdminLogin,
    client: Client = Depends(get_db_client),
) -> dict:
    """Log an administrator in."""
    result = AdminService(client).login(
        payload.email,
        payload.password,
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    return success(result, "Admin login successful")


@router.get("/profile")
def profile(
    identity: Identity = Depends(get_current_identity),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return the caller's own profile."""
    if identity.is_admin:
        account = AdminService(client).profile(identity)
    else:
        account = VoterService(client).profile(identity)
    return success({"user_type": identity.user_type, "profile": account})

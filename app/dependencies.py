"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Depends, Header, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings
from app.services.common import SupabaseService
from app.services.policy import Identity
from app.utils.errors import UnauthorizedError
from app.utils.security import decode_access_token
from app.utils.supabase_client import get_service_client
from supabase import Client

IDENTITY_TABLES = {"voter": "voters", "admin": "admins"}

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.login_rate_limit_attempts > 0,
)


def login_limit() -> str:
    """Per-IP login budget, read on every request so tests can tighten it."""
    return (
        f"{settings.login_rate_limit_attempts} per "
        f"{settings.login_rate_limit_window_seconds} seconds"
    )


def reset_login_rate_limit() -> None:
    """Forget all login attempt windows."""
    limiter.reset()


def client_address(request: Request) -> str | None:
    """Best-effort client IP, honouring the first ``X-Forwarded-For`` hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def get_db_client() -> Client:
    """Return the privileged Supabase client used by backend services."""
    return get_service_client()


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def resolve_identity(token: str, client: Client) -> Identity:
    """Verify a bearer token and load the active account it names.

    Raises:
        UnauthorizedError: 401 if the token is invalid or the account is
            missing or deactivated.
    """
    claims = decode_access_token(token)
    user_type = claims["user_type"]
    record = SupabaseService(client).find_one(IDENTITY_TABLES[user_type], {"id": claims["sub"]})
    if record is None or not record.get("is_active"):
        raise UnauthorizedError(f"Invalid token or {user_type} account is inactive.")
    record.pop("password_hash", None)
    return Identity(user_type=user_type, id=str(record["id"]), record=record)


def get_current_identity(
    authorization: str = Header(None),
    client: Client = Depends(get_db_client),
) -> Identity:
    """Return the authenticated voter or admin for protected routes."""
    token = _bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Access denied. No token provided.")
    return resolve_identity(token, client)


def get_optional_identity(
    authorization: str = Header(None),
    client: Client = Depends(get_db_client),
) -> Identity | None:
    """Return the caller when a valid token is sent, otherwise None."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return resolve_identity(token, client)
    except UnauthorizedError:
        return None

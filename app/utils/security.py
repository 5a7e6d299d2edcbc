"""Password hashing and bearer token helpers."""

from __future__ import annotations

import hashlib
import hmac
from datetime import timedelta
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.utils.errors import UnauthorizedError
from app.utils.time import now_utc

USER_TYPES = {"voter", "admin"}


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    """Return True when ``password`` matches the stored bcrypt hash."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(subject: str, user_type: str, expires_minutes: int | None = None) -> str:
    """Issue a signed JWT for a voter or admin."""
    if user_type not in USER_TYPES:
        raise ValueError(f"Unknown user type: {user_type}")

    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expire_minutes
    issued_at = now_utc()
    claims = {
        "sub": str(subject),
        "user_type": user_type,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify a JWT and return its claims.

    Raises:
        UnauthorizedError: 401 when the token is expired, tampered with, or
            carries an unknown user type.
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise UnauthorizedError("Token expired") from exc
    except JWTError as exc:
        raise UnauthorizedError("Invalid token") from exc

    if claims.get("user_type") not in USER_TYPES or not claims.get("sub"):
        raise UnauthorizedError("Invalid token type")
    return claims


def hash_client_address(ip_address: str | None) -> str | None:
    """Return a keyed digest of a client IP so raw addresses are never stored."""
    if not ip_address:
        return None
    return hmac.new(
        settings.voter_hash_secret.encode("utf-8"),
        ip_address.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

"""Custom exception hierarchy for the e-voting API."""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        errors: list[dict[str, Any]] | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.errors = errors
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error in the API envelope shape."""
        payload: dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        if self.errors:
            payload["errors"] = self.errors
        if self.data:
            payload["data"] = self.data
        return payload


class InvalidInputError(AppError):
    """Raised for request payload or parameter validation issues."""

    def __init__(self, reason: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=400, errors=errors)


class UnauthorizedError(AppError):
    """Raised when the caller is not authenticated."""

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(message=reason, code="UNAUTHORIZED", status_code=401)


class ForbiddenError(AppError):
    """Raised when the caller lacks the role or permission for the action."""

    def __init__(self, reason: str = "You don't have permission") -> None:
        super().__init__(message=reason, code="FORBIDDEN", status_code=403)


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str) -> None:
        super().__init__(message=f"{resource} not found", code="NOT_FOUND", status_code=404)


class ConflictError(AppError):
    """Raised on duplicate or state-conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class AccountLockedError(AppError):
    """Raised when an admin account is locked after repeated failed logins."""

    def __init__(
        self,
        reason: str = "Account is temporarily locked due to too many failed login attempts",
    ) -> None:
        super().__init__(message=reason, code="ACCOUNT_LOCKED", status_code=423)


class RateLimitedError(AppError):
    """Raised when a client exceeds a request budget."""

    def __init__(self, reason: str = "Too many requests, please try again later") -> None:
        super().__init__(message=reason, code="RATE_LIMITED", status_code=429)


class ConsistencyError(AppError):
    """Raised when a vote was stored but its projections could not be updated."""

    def __init__(self, reason: str, data: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=reason,
            code="DATA_CONSISTENCY_ERROR",
            status_code=500,
            data=data,
        )


DUPLICATE_FIELD_MESSAGES = {
    "email": "Email address is already registered",
    "phone_number": "Phone number is already registered",
    "national_id": "National ID number is already registered",
    "voter_id": "You have already voted in this election",
    "voter_hash": "You have already voted in this election",
    "verification_code": "Verification code collision",
    "vote_hash": "Duplicate vote record",
}

DUPLICATE_FIELD_CODES = {
    "voter_id": "ALREADY_VOTED",
    "voter_hash": "ALREADY_VOTED",
    "verification_code": "DUPLICATE_VERIFICATION_CODE",
}


class DuplicateKeyError(ConflictError):
    """Raised when the store rejects a write on a unique constraint."""

    def __init__(self, field: str | None) -> None:
        self.field = field
        key = field or ""
        super().__init__(
            DUPLICATE_FIELD_MESSAGES.get(key, "Duplicate field value entered"),
            code=DUPLICATE_FIELD_CODES.get(key, f"DUPLICATE_{key.upper()}" if key else "DUPLICATE"),
        )

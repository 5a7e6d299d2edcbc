"""Administrator and voter administration schemas."""

from typing import Literal

from pydantic import BaseModel, EmailStr, Field

AdminRole = Literal["super_admin", "election_commissioner", "returning_officer", "admin_officer"]
Permission = Literal[
    "manage_elections",
    "manage_candidates",
    "manage_voters",
    "view_results",
    "manage_admins",
    "system_settings",
    "audit_logs",
    "generate_reports",
]


class AdminCreate(BaseModel):
    """Request body for creating an administrator."""

    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: AdminRole
    permissions: list[Permission] = Field(default_factory=list)
    phone_number: str | None = None
    designation: str | None = None
    department: str | None = None


class AdminUpdate(BaseModel):
    """Partial update of an administrator account."""

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    phone_number: str | None = None
    designation: str | None = None
    department: str | None = None
    role: AdminRole | None = None
    permissions: list[Permission] | None = None
    is_active: bool | None = None


class VoterStatusUpdate(BaseModel):
    """Toggle a voter's verification or activation."""

    is_verified: bool | None = None
    is_active: bool | None = None

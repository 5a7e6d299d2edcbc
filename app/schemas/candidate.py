"""Candidate schemas."""

from typing import Literal

from pydantic import BaseModel, EmailStr, Field

CriminalRecord = Literal["none", "minor", "major"]


class ManifestoPoint(BaseModel):
    """One manifesto promise."""

    point: str = Field(..., min_length=1, max_length=500)


class ContactInfo(BaseModel):
    """Public contact details of a candidate."""

    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=r"^[6-9]\d{9}$")
    website: str | None = None


class CandidateCreate(BaseModel):
    """Request body for nominating a candidate."""

    election_id: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=25, le=100)
    political_party: str = Field(..., min_length=1)
    party_symbol: str | None = None
    constituency: str = Field(..., min_length=1)
    profile_photo: str | None = None
    education: str | None = None
    occupation: str | None = None
    experience: str | None = None
    manifesto: list[ManifestoPoint] = Field(default_factory=list)
    campaign_slogan: str | None = Field(default=None, max_length=200)
    contact_info: ContactInfo | None = None
    criminal_record: CriminalRecord = "none"
    assets_value: float = Field(default=0, ge=0)


class CandidateUpdate(BaseModel):
    """Partial update of nomination details."""

    full_name: str | None = Field(default=None, min_length=1, max_length=100)
    age: int | None = Field(default=None, ge=25, le=100)
    political_party: str | None = Field(default=None, min_length=1)
    party_symbol: str | None = None
    constituency: str | None = Field(default=None, min_length=1)
    profile_photo: str | None = None
    education: str | None = None
    occupation: str | None = None
    experience: str | None = None
    manifesto: list[ManifestoPoint] | None = None
    campaign_slogan: str | None = Field(default=None, max_length=200)
    contact_info: ContactInfo | None = None
    criminal_record: CriminalRecord | None = None
    assets_value: float | None = Field(default=None, ge=0)


class CandidateApproval(BaseModel):
    """Approve or withdraw approval of a nomination."""

    is_approved: bool

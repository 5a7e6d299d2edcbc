"""Election schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ElectionType = Literal["general", "assembly", "local", "by-election", "presidential"]
ElectionScope = Literal["national", "state", "district", "constituency", "local"]
ElectionStatus = Literal["upcoming", "registration", "active", "completed", "cancelled"]


class ElectionCreate(BaseModel):
    """Request body for creating an election."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    type: ElectionType
    scope: ElectionScope
    constituency: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    registration_start_date: datetime
    registration_end_date: datetime
    voting_start_date: datetime
    voting_end_date: datetime
    result_date: datetime
    allow_evms: bool = True
    allow_paper_ballots: bool = False
    require_voter_id_verification: bool = True


class ElectionUpdate(BaseModel):
    """Partial update; only provided fields are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    registration_start_date: datetime | None = None
    registration_end_date: datetime | None = None
    voting_start_date: datetime | None = None
    voting_end_date: datetime | None = None
    result_date: datetime | None = None
    allow_evms: bool | None = None
    allow_paper_ballots: bool | None = None
    require_voter_id_verification: bool | None = None

    @field_validator(
        "title",
        "registration_start_date",
        "registration_end_date",
        "voting_start_date",
        "voting_end_date",
        "result_date",
        "allow_evms",
        "allow_paper_ballots",
        "require_voter_id_verification",
    )
    @classmethod
    def not_null(cls, value, info):
        """Omit a field to keep it; an explicit null is not a value."""
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class ElectionStatusUpdate(BaseModel):
    """Request body for an administrative status change."""

    status: ElectionStatus

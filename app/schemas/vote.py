"""Vote schemas."""

from typing import Literal

from pydantic import BaseModel, Field

VoteStatus = Literal["valid", "invalid", "disputed", "under_review"]


class VoteCast(BaseModel):
    """Request body for casting a ballot."""

    election_id: str = Field(..., min_length=1)
    candidate_id: str = Field(..., min_length=1)


class VoteReceipt(BaseModel):
    """Receipt returned to the voter after a ballot is recorded."""

    vote_id: str
    verification_code: str
    voted_at: str
    election: str | None = None
    candidate: str | None = None


class VoteStatusUpdate(BaseModel):
    """Request body for an audit status change."""

    status: VoteStatus
    reason: str | None = Field(default=None, max_length=500)

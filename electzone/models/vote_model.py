from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Tuple


class Selection(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: str
    candidate_id: str


class VotePayload(BaseModel):
    """Canonical record of one voter's choices. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    election_id: str
    timestamp: str
    selections: Tuple[Selection, ...]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class VoteSubmission(BaseModel):
    election_id: str
    # position -> candidate id
    selections: Dict[str, str]


class VerifyRequest(BaseModel):
    payload: Dict[str, Any]
    payload_hash: str = Field(..., min_length=64, max_length=64)


class SubmissionOutcome(BaseModel):
    success: bool
    kind: str
    message: str
    next_step: str
    vote_token: Optional[str] = None
    payload_hash: Optional[str] = None

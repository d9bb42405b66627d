from pydantic import BaseModel, EmailStr, Field
from typing import Dict, List, Optional

from electzone.config import STUDENT_ID_PATTERN


class VoterLoginRequest(BaseModel):
    student_id: str = Field(..., pattern=STUDENT_ID_PATTERN)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class VoterLoginOut(TokenOut):
    student_id: str
    name: str


class AdminCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = Field(default="admin")


class AdminOut(BaseModel):
    id: str
    email: EmailStr
    role: str


class TurnoutOut(BaseModel):
    total: int
    voted: int
    percentage: str


class CandidateResult(BaseModel):
    candidate_id: str
    name: str
    party: str
    position: str
    vote_count: int


class PartyResult(BaseModel):
    party: str
    candidates: List[CandidateResult]
    total_votes: int


class StatisticsOut(BaseModel):
    election_id: str
    total_votes: int
    total_voters: int
    voted: int
    turnout_percentage: str
    total_candidates: int
    total_positions: int
    total_parties: int


class AuditReport(BaseModel):
    election_id: str
    total: int
    verified: int
    mismatched: List[str]


class BallotOut(BaseModel):
    election_id: str
    title: str
    required_positions: int
    positions: Dict[str, List[dict]]
    time_remaining: Optional[str] = None

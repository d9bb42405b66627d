from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1, examples=["Maria Santos"])
    party: str = Field(default="Independent", examples=["Lakas"])
    position: str = Field(..., min_length=1, examples=["President"])
    bio: Optional[str] = None


class Candidate(CandidateCreate):
    id: str
    election_id: str


class ElectionCreate(BaseModel):
    title: str = Field(..., min_length=3, examples=["Student Council Election 2025"])
    description: Optional[str] = None
    start_at: datetime
    end_at: datetime
    status: str = Field(default="planned", pattern="^(planned|running|closed)$")


class ElectionStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(planned|running|closed)$")


class CandidateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    party: Optional[str] = None
    position: Optional[str] = Field(None, min_length=1)
    bio: Optional[str] = None


class ElectionUpdate(BaseModel):
    """Status changes go through ElectionStatusUpdate."""

    title: Optional[str] = Field(None, min_length=3)
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from electzone.config import STUDENT_ID_PATTERN


class VoterCreate(BaseModel):
    student_id: str = Field(..., pattern=STUDENT_ID_PATTERN, examples=["2021001"])
    name: str = Field(..., min_length=1)
    year_level: Optional[str] = None
    is_active: bool = True


class VoterUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    year_level: Optional[str] = None
    is_active: Optional[bool] = None


class Voter(VoterCreate):
    has_voted: bool = False
    voted_at: Optional[datetime] = None


class VoterStatus(BaseModel):
    student_id: str
    name: Optional[str] = None
    has_voted: bool
    is_active: bool = True

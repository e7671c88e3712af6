"""
Candidate schemas.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import reject_null
from services.validation_service import EMAIL_REGEX


class CandidateBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255, description="Candidate name, unique")
    email: str = Field(..., max_length=255, pattern=EMAIL_REGEX, description="Contact email, unique")
    phone: Optional[str] = Field(None, max_length=20)
    meta: int = Field(0, ge=0, description="Vote goal")
    is_active: bool = True
    description: Optional[str] = None
    position: Optional[str] = Field(None, max_length=50, description="Office sought")
    party: Optional[str] = Field(None, max_length=100)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "María Rodríguez",
                "email": "maria@campana.co",
                "phone": "3001234567",
                "meta": 15000,
                "position": "Concejo",
                "party": "Partido Verde"
            }
        }


class CandidateCreate(CandidateBase):
    pass


class CandidateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_REGEX)
    phone: Optional[str] = Field(None, max_length=20)
    meta: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    description: Optional[str] = None
    position: Optional[str] = Field(None, max_length=50)
    party: Optional[str] = Field(None, max_length=100)

    @field_validator('name', 'email', 'meta', 'is_active')
    @classmethod
    def not_null(cls, value):
        return reject_null(value)


class CandidateResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    meta: int = 0
    is_active: bool
    description: Optional[str] = None
    position: Optional[str] = None
    party: Optional[str] = None
    groups_count: int = 0
    leaders_count: int = 0
    voters_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GoalProgress(BaseModel):
    candidate_id: int
    name: str
    meta: int
    current: int
    percentage: int


class TopCandidate(BaseModel):
    candidate_id: int
    name: str
    groups: int
    leaders: int
    voters: int


class CandidateStats(BaseModel):
    total: int
    active: int
    inactive: int
    total_groups: int
    total_leaders: int
    total_voters: int
    avg_groups_per_candidate: float
    by_party: Dict[str, int]
    by_position: Dict[str, int]
    goal_progress: List[GoalProgress]
    top_candidates: List[TopCandidate]


class CandidateBulkAction(BaseModel):
    action: Literal['activate', 'deactivate', 'delete']
    ids: List[int] = Field(default_factory=list)

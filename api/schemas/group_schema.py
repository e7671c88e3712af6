"""
Group schemas.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import EntitySummary, reject_null


class GroupBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255, description="Group name, unique per candidate")
    description: Optional[str] = None
    zone: Optional[str] = Field(None, max_length=100)
    meta: int = Field(0, ge=0, description="Planillados goal")
    is_active: bool = True
    candidate_id: int = Field(..., description="Owning candidate ID")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Comuna 5",
                "description": "Equipo de la comuna 5",
                "zone": "Oriente",
                "meta": 2000,
                "candidate_id": 1
            }
        }


class GroupCreate(GroupBase):
    pass


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    zone: Optional[str] = Field(None, max_length=100)
    meta: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    candidate_id: Optional[int] = None

    @field_validator('name', 'meta', 'is_active', 'candidate_id')
    @classmethod
    def not_null(cls, value):
        return reject_null(value)


class GroupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    zone: Optional[str] = None
    meta: int = 0
    is_active: bool
    candidate_id: int
    candidate: Optional[EntitySummary] = None
    leaders_count: int = 0
    planillados_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupGoalProgress(BaseModel):
    group_id: int
    name: str
    meta: int
    current: int
    percentage: int


class GroupStats(BaseModel):
    total: int
    active: int
    inactive: int
    total_leaders: int
    total_planillados: int
    avg_leaders_per_group: float
    avg_planillados_per_group: float
    by_candidate: Dict[str, int]
    by_zone: Dict[str, int]
    goal_progress: List[GroupGoalProgress]


class GroupBulkAction(BaseModel):
    action: Literal['activate', 'deactivate', 'delete']
    ids: List[int] = Field(default_factory=list)

"""
Leader schemas.
"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import EntitySummary, reject_null
from backend.models.schema import Gender
from services.validation_service import CEDULA_REGEX, EMAIL_REGEX, MOBILE_REGEX


class LeaderBase(BaseModel):
    cedula: str = Field(..., pattern=CEDULA_REGEX, description="Identity number, 8 to 11 digits")
    first_name: str = Field(..., min_length=2, max_length=100)
    last_name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=MOBILE_REGEX, description="Mobile, 10 digits starting with 3")
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_REGEX)
    address: Optional[str] = None
    neighborhood: Optional[str] = Field(None, max_length=100)
    municipality: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    meta: int = Field(0, ge=0, description="Planillados goal")
    is_active: bool = True
    is_verified: bool = False
    group_id: Optional[int] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "cedula": "1144123456",
                "first_name": "Carlos",
                "last_name": "Gómez",
                "phone": "3104567890",
                "neighborhood": "San Fernando",
                "municipality": "Cali",
                "gender": "M",
                "meta": 100,
                "group_id": 1
            }
        }


class LeaderCreate(LeaderBase):
    pass


class LeaderUpdate(BaseModel):
    cedula: Optional[str] = Field(None, pattern=CEDULA_REGEX)
    first_name: Optional[str] = Field(None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=MOBILE_REGEX)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_REGEX)
    address: Optional[str] = None
    neighborhood: Optional[str] = Field(None, max_length=100)
    municipality: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    meta: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None
    group_id: Optional[int] = None

    @field_validator('cedula', 'first_name', 'last_name', 'meta', 'is_active', 'is_verified')
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

    class Config:
        use_enum_values = True


class LeaderResponse(BaseModel):
    id: int
    cedula: str
    first_name: str
    last_name: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    municipality: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    meta: int = 0
    is_active: bool
    is_verified: bool
    group_id: Optional[int] = None
    group: Optional[EntitySummary] = None
    planillados_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeaderOption(BaseModel):
    """Leader entry for select inputs."""

    id: int
    name: str
    group_name: Optional[str] = None


class LeaderDuplicateCheck(BaseModel):
    exists: bool
    leader: Optional[LeaderResponse] = None


class TopLeader(BaseModel):
    leader_id: int
    name: str
    planillados: int
    meta: int


class LeaderStats(BaseModel):
    total: int
    active: int
    verified: int
    total_planillados: int
    avg_planillados: int
    by_group: Dict[str, int]
    by_neighborhood: Dict[str, int]
    top_leaders: List[TopLeader]


class LeaderBulkAction(BaseModel):
    action: Literal['activate', 'deactivate', 'verify', 'unverify', 'assign_group', 'delete']
    ids: List[int] = Field(default_factory=list)
    group_id: Optional[int] = Field(None, description="Target group for assign_group")

"""
Planillado schemas.

A planillado is a canvassed voter record collected by a leader.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import EntitySummary, reject_null
from backend.models.schema import Gender, PlanilladoStatus
from services.validation_service import CEDULA_REGEX, MOBILE_REGEX


class PlanilladoBase(BaseModel):
    cedula: str = Field(..., pattern=CEDULA_REGEX, description="Identity number, 8 to 11 digits")
    first_name: str = Field(..., min_length=2, max_length=150)
    last_name: str = Field(..., min_length=2, max_length=150)
    mobile: Optional[str] = Field(None, pattern=MOBILE_REGEX, description="10 digits starting with 3")
    address: Optional[str] = None
    neighborhood: Optional[str] = Field(None, max_length=100, description="Barrio")
    id_issue_date: Optional[date] = Field(None, description="Cedula issue date")
    voting_department: Optional[str] = Field(None, max_length=100)
    voting_municipality: Optional[str] = Field(None, max_length=100)
    voting_address: Optional[str] = None
    polling_station: Optional[str] = Field(None, max_length=50, description="Zona y puesto")
    table_number: Optional[str] = Field(None, max_length=20, description="Mesa")
    is_edil: bool = False
    leader_id: Optional[int] = None
    group_id: Optional[int] = None
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    notes: Optional[str] = Field(None, max_length=500)
    pending_leader_cedula: Optional[str] = Field(
        None, pattern=CEDULA_REGEX, description="Cedula of a leader not registered yet"
    )

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "cedula": "31987654",
                "first_name": "Ana",
                "last_name": "Martínez",
                "mobile": "3157654321",
                "neighborhood": "El Ingenio",
                "voting_municipality": "Cali",
                "polling_station": "Zona 5 Puesto 2",
                "table_number": "14",
                "leader_id": 3,
                "birth_date": "1985-04-12",
                "gender": "F"
            }
        }


class PlanilladoCreate(PlanilladoBase):
    pass


class PlanilladoUpdate(BaseModel):
    cedula: Optional[str] = Field(None, pattern=CEDULA_REGEX)
    first_name: Optional[str] = Field(None, min_length=2, max_length=150)
    last_name: Optional[str] = Field(None, min_length=2, max_length=150)
    mobile: Optional[str] = Field(None, pattern=MOBILE_REGEX)
    address: Optional[str] = None
    neighborhood: Optional[str] = Field(None, max_length=100)
    id_issue_date: Optional[date] = None
    voting_department: Optional[str] = Field(None, max_length=100)
    voting_municipality: Optional[str] = Field(None, max_length=100)
    voting_address: Optional[str] = None
    polling_station: Optional[str] = Field(None, max_length=50)
    table_number: Optional[str] = Field(None, max_length=20)
    status: Optional[PlanilladoStatus] = None
    is_edil: Optional[bool] = None
    is_updated: Optional[bool] = None
    leader_id: Optional[int] = None
    group_id: Optional[int] = None
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    notes: Optional[str] = Field(None, max_length=500)
    pending_leader_cedula: Optional[str] = Field(None, pattern=CEDULA_REGEX)

    @field_validator('cedula', 'first_name', 'last_name', 'status', 'is_edil', 'is_updated')
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

    class Config:
        use_enum_values = True


class LeaderSummary(BaseModel):
    id: int
    full_name: str
    cedula: str

    class Config:
        from_attributes = True


class PlanilladoResponse(BaseModel):
    id: int
    cedula: str
    first_name: str
    last_name: str
    full_name: str
    mobile: Optional[str] = None
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    id_issue_date: Optional[date] = None
    voting_department: Optional[str] = None
    voting_municipality: Optional[str] = None
    voting_address: Optional[str] = None
    polling_station: Optional[str] = None
    table_number: Optional[str] = None
    status: str
    is_edil: bool
    is_updated: bool
    leader_id: Optional[int] = None
    leader: Optional[LeaderSummary] = None
    group_id: Optional[int] = None
    group: Optional[EntitySummary] = None
    birth_date: Optional[date] = None
    age: Optional[int] = None
    age_range: str
    gender: Optional[str] = None
    notes: Optional[str] = None
    pending_leader_cedula: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlanilladoValidationRequest(BaseModel):
    """Loose field set checked by the validate endpoint before saving."""

    cedula: Optional[str] = None
    mobile: Optional[str] = None
    birth_date: Optional[date] = None
    neighborhood: Optional[str] = None
    voting_municipality: Optional[str] = None
    exclude_id: Optional[int] = Field(None, description="Record being edited")


class PlanilladoValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    suggestions: Dict[str, Any]


class PlanilladoDuplicateCheck(BaseModel):
    exists: bool
    planillado: Optional[PlanilladoResponse] = None


class PlanilladoStats(BaseModel):
    total: int
    verified: int
    pending: int
    ediles: int
    by_neighborhood: Dict[str, int]
    by_gender: Dict[str, int]
    by_age: Dict[str, int]
    by_leader: List[Dict[str, Any]]
    by_group: Dict[str, int]
    new_today: int
    new_this_week: int
    updated_today: int


class NeighborhoodStat(BaseModel):
    neighborhood: str
    total: int
    verified: int
    pending: int
    ediles: int
    leaders: int
    groups: int
    percentage: float


class LinkPendingRequest(BaseModel):
    leader_cedula: str = Field(..., pattern=CEDULA_REGEX)
    leader_id: int
    planillado_ids: Optional[List[int]] = Field(None, description="Link only these records")


class PendingLeaderCount(BaseModel):
    leader_cedula: str
    count: int
    leader_registered: bool


class PendingLeaderStats(BaseModel):
    total_pending: int
    by_leader_cedula: List[PendingLeaderCount]
    without_leader: int
    summary: Dict[str, int]


class ClearPendingRequest(BaseModel):
    confirm: bool = Field(False, description="Must be true to clear orphan pending cedulas")


class AffectedResponse(BaseModel):
    affected: int
    message: str


class PlanilladoBulkAction(BaseModel):
    action: Literal['verify', 'unverify', 'assign_leader', 'assign_group', 'delete', 'export']
    ids: List[int] = Field(default_factory=list)
    leader_id: Optional[int] = Field(None, description="Target leader for assign_leader")
    group_id: Optional[int] = Field(None, description="Target group for assign_group")

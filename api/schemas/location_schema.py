"""
Location schemas.

Locations form a hierarchy (department > municipality > neighborhood/zone).
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from api.schemas.common import reject_null
from backend.models.schema import LocationType


class LocationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Location name")
    type: LocationType = Field(..., description="department, municipality, neighborhood or zone")
    code: Optional[str] = Field(None, max_length=20, description="Official DANE code, unique when present")
    parent_id: Optional[int] = Field(None, description="Parent location ID")
    is_active: bool = Field(True, description="Whether the location is in use")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    population: int = Field(0, ge=0)

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "name": "Cali",
                "type": "municipality",
                "code": "76001",
                "parent_id": 1,
                "latitude": 3.4516,
                "longitude": -76.532,
                "population": 2227642
            }
        }


class LocationCreate(LocationBase):
    pass


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[LocationType] = None
    code: Optional[str] = Field(None, max_length=20)
    parent_id: Optional[int] = None
    is_active: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    population: Optional[int] = Field(None, ge=0)

    @field_validator('name', 'type', 'is_active', 'population')
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

    class Config:
        use_enum_values = True


class LocationSummary(BaseModel):
    id: int
    name: str
    type: str
    code: Optional[str] = None

    class Config:
        from_attributes = True


class LocationResponse(BaseModel):
    id: int
    name: str
    type: str
    code: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    population: int = 0
    children_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LocationDetail(LocationResponse):
    """Location with its parent, direct children and ancestor path."""

    parent: Optional[LocationSummary] = None
    children: List[LocationSummary] = Field(default_factory=list)
    ancestors: List[LocationSummary] = Field(default_factory=list, description="Root first")


class LocationTreeNode(BaseModel):
    id: int
    name: str
    type: str
    code: Optional[str] = None
    is_active: bool
    population: int = 0
    children: List[LocationTreeNode] = Field(default_factory=list)


class LocationStats(BaseModel):
    total: int
    active: int
    inactive: int
    by_type: Dict[str, int]
    population_by_type: Dict[str, int]
    roots: int
    max_depth: int


class LocationBulkAction(BaseModel):
    action: Literal['activate', 'deactivate']
    ids: List[int] = Field(default_factory=list)


LocationTreeNode.model_rebuild()

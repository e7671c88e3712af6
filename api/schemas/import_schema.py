"""
Import-related Pydantic schemas.

This module contains schemas for spreadsheet preview, synchronous import
requests and their results.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from api.schemas.job_schema import JobCreateResponse


class TemplateInfo(BaseModel):
    entity_type: str = Field(..., description="Entity the template imports")
    file_name: str = Field(..., description="Downloaded file name")
    headers: List[str] = Field(..., description="Column headers of the data sheet")
    download_url: str


class PreviewResponse(BaseModel):
    """Contents of an uploaded file, before anything is saved."""

    file_name: str
    headers: List[str]
    total_rows: int
    sample_rows: List[Dict[str, Any]] = Field(..., description="First rows of the file")
    data: List[Dict[str, Any]] = Field(..., description="All rows, sent back with the import request")
    errors: List[str]
    warnings: List[str]
    suggested_mapping: Dict[str, str] = Field(default_factory=dict, description="{column: field}")

    class Config:
        json_schema_extra = {
            "example": {
                "file_name": "planillados.xlsx",
                "headers": ["Cédula", "Nombres", "Apellidos", "Celular"],
                "total_rows": 2,
                "sample_rows": [
                    {"Cédula": "12345678", "Nombres": "Juan", "Apellidos": "Pérez", "Celular": "3001234567"}
                ],
                "data": [],
                "errors": [],
                "warnings": [],
                "suggested_mapping": {
                    "Cédula": "cedula", "Nombres": "first_name",
                    "Apellidos": "last_name", "Celular": "mobile"
                }
            }
        }


class ImportRequest(BaseModel):
    """Rows from a preview plus the column mapping chosen by the user."""

    file_name: Optional[str] = Field(None, description="Original file name")
    entity_type: str = Field(..., description="planillados (voters), leaders, candidates or groups")
    field_mappings: Dict[str, str] = Field(..., description="{column: target field}")
    preview_data: List[Dict[str, Any]] = Field(default_factory=list, description="Rows to import")

    class Config:
        json_schema_extra = {
            "example": {
                "file_name": "planillados.xlsx",
                "entity_type": "planillados",
                "field_mappings": {"Cédula": "cedula", "Nombres": "first_name", "Apellidos": "last_name"},
                "preview_data": [{"Cédula": "12345678", "Nombres": "Juan", "Apellidos": "Pérez"}]
            }
        }


class ImportIssue(BaseModel):
    row: int = Field(..., description="Spreadsheet row (header is row 1)")
    field: str
    value: Optional[str] = None
    error: str
    severity: str = Field(..., description="error or warning")


class ImportResultResponse(BaseModel):
    """Detailed import results."""

    success: bool
    entity_type: str
    total_rows: int
    success_count: int
    created_count: int
    updated_count: int
    error_count: int
    errors: List[ImportIssue] = Field(default_factory=list)
    warnings: List[ImportIssue] = Field(default_factory=list)
    execution_time_ms: int

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "entity_type": "planillados",
                "total_rows": 3,
                "success_count": 2,
                "created_count": 2,
                "updated_count": 0,
                "error_count": 1,
                "errors": [{
                    "row": 4, "field": "cedula", "value": "123",
                    "error": "Cedula must contain 8 to 11 digits", "severity": "error"
                }],
                "warnings": [],
                "execution_time_ms": 84
            }
        }


class ImportStartResponse(JobCreateResponse):
    """
    Response when a queued import is initiated.

    Extends JobCreateResponse with import-specific messages.
    """

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "abc-123-def-456",
                "message": "Import job started",
                "status_url": "/api/import/job/abc-123-def-456",
                "websocket_url": "/ws/import/abc-123-def-456"
            }
        }

"""
Job-related Pydantic schemas.

This module contains schemas for queued import status, progress and history.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime

from backend.models.job import JobStatus, JobType


class JobProgressResponse(BaseModel):
    """Real-time progress update."""

    stage: str = Field(..., description="Current stage (e.g., 'reading', 'saving')")
    percent: float = Field(..., ge=0, le=100, description="Progress percentage")
    message: Optional[str] = Field(None, description="Human-readable progress message")
    timestamp: datetime = Field(..., description="Progress update timestamp")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "stage": "saving",
                "percent": 65.5,
                "message": "Processed 650/1000 rows",
                "timestamp": "2025-10-15T12:30:45Z"
            }
        }


class JobStatusResponse(BaseModel):
    """Comprehensive job status response."""

    job_id: str = Field(..., description="Unique job identifier (Celery task ID)")
    job_type: JobType = Field(..., description="Type of job")
    entity_type: Optional[str] = Field(None, description="Entity being imported")
    status: JobStatus = Field(..., description="Current job status")
    created_at: datetime = Field(..., description="Job creation timestamp")
    started_at: Optional[datetime] = Field(None, description="Job start timestamp")
    completed_at: Optional[datetime] = Field(None, description="Job completion timestamp")

    # Progress information
    progress: Optional[JobProgressResponse] = Field(None, description="Latest progress update")

    # Results
    result: Optional[Dict[str, Any]] = Field(None, description="Import results (if completed)")
    error: Optional[Dict[str, Any]] = Field(None, description="Error details (if failed)")

    # Metadata
    created_by: Optional[str] = Field(None, description="User who created the job")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "job_id": "abc-123-def-456",
                "job_type": "import",
                "entity_type": "planillados",
                "status": "processing",
                "created_at": "2025-10-15T12:00:00Z",
                "started_at": "2025-10-15T12:00:05Z",
                "completed_at": None,
                "progress": {
                    "stage": "saving",
                    "percent": 65.5,
                    "message": "Processed 650/1000 rows",
                    "timestamp": "2025-10-15T12:00:30Z"
                },
                "result": None,
                "error": None,
                "created_by": "coordinador@campana.co"
            }
        }


class JobCreateResponse(BaseModel):
    """Response when a job is created."""

    job_id: str = Field(..., description="Unique job identifier")
    message: str = Field(default="Job created successfully", description="Success message")
    status_url: str = Field(..., description="URL to check job status")
    websocket_url: str = Field(..., description="WebSocket URL for real-time updates")


class JobListItem(BaseModel):
    """Job list item for job history."""

    job_id: str
    job_type: JobType
    entity_type: Optional[str] = None
    status: JobStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    total: int = Field(..., description="Total number of jobs")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")
    items: List[JobListItem] = Field(..., description="Jobs in current page")

"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import (
    BulkActionResponse, EntitySummary, ErrorResponse, HealthCheckResponse,
    PaginatedResponse, SuccessResponse
)
from api.schemas.job_schema import (
    JobProgressResponse, JobStatusResponse, JobCreateResponse, JobListItem, JobListResponse
)
from api.schemas.import_schema import (
    ImportRequest, ImportResultResponse, ImportStartResponse, PreviewResponse, TemplateInfo
)

__all__ = [
    # Common
    'BulkActionResponse',
    'EntitySummary',
    'ErrorResponse',
    'HealthCheckResponse',
    'PaginatedResponse',
    'SuccessResponse',

    # Job
    'JobProgressResponse',
    'JobStatusResponse',
    'JobCreateResponse',
    'JobListItem',
    'JobListResponse',

    # Import
    'ImportRequest',
    'ImportResultResponse',
    'ImportStartResponse',
    'PreviewResponse',
    'TemplateInfo',
]

"""
Import router - spreadsheet templates, preview and import.

The synchronous `POST /import/{entity}` endpoint is the main path: the client
previews a file, chooses the column mapping and sends the rows back. Large
files can instead be uploaded to `POST /import/upload`, which queues the same
import as a Celery job tracked through `/import/job/{job_id}` and the
`/ws/import/{job_id}` WebSocket.
"""

import os
import json
import logging
import tempfile
import uuid
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import (
    get_current_user, get_db, get_notifier, get_redis, spreadsheet_response,
    verify_file_extension, verify_file_size
)
from api.schemas.import_schema import (
    ImportRequest, ImportResultResponse, ImportStartResponse, PreviewResponse, TemplateInfo
)
from api.schemas.job_schema import JobStatusResponse, JobProgressResponse, JobListResponse, JobListItem
from backend.models.job import JobRun, JobType, JobStatus
from backend.models.schema import User
from services.excel_service import TEMPLATES, build_template, resolve_entity
from services.import_service import ImportService
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/import', tags=['import'], dependencies=[Depends(get_current_user)])


def _entity_or_400(entity_type: str) -> str:
    try:
        return resolve_entity(entity_type)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _read_upload(file: UploadFile) -> bytes:
    verify_file_extension(file.filename)
    content = file.file.read()
    verify_file_size(len(content))
    return content


def _user_label(user: Optional[User]) -> str:
    return user.email if user else 'anonymous'


@router.get('/templates', response_model=List[TemplateInfo])
async def list_templates():
    """
    List the downloadable import templates.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" http://localhost:8000/api/import/templates
    ```
    """
    return [
        TemplateInfo(
            entity_type=entity,
            file_name=template['file_name'],
            headers=template['headers'],
            download_url=f"{settings.API_PREFIX}/import/templates/{entity}"
        )
        for entity, template in TEMPLATES.items()
    ]


@router.get('/templates/{entity_type}')
async def download_template(entity_type: str):
    """
    Download the Excel template of an entity.

    `voters` is accepted as an alias of `planillados`. The workbook has the
    data sheet (headers and two sample rows) and an `Instrucciones` sheet.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" -o plantilla.xlsx \\
         http://localhost:8000/api/import/templates/voters
    ```
    """
    file_name, content = build_template(_entity_or_400(entity_type))
    return spreadsheet_response(content, file_name)


@router.post('/preview', response_model=PreviewResponse)
def preview_file(
    file: UploadFile = File(..., description="Spreadsheet to preview (.xlsx, .xlsm or .csv)"),
    entity_type: Optional[str] = Form(None, description="Entity, to suggest a column mapping"),
    db: Session = Depends(get_db)
):
    """
    Read a spreadsheet without saving anything.

    **Returns:**
    - headers, row count, first sample rows and all rows (`data`)
    - structural errors and warnings
    - `suggested_mapping` {column: field} when `entity_type` is given

    **Example:**
    ```bash
    curl -X POST -H "Authorization: Bearer $TOKEN" \\
         -F "file=@planillados.xlsx" -F "entity_type=planillados" \\
         http://localhost:8000/api/import/preview
    ```
    """
    content = _read_upload(file)
    entity = _entity_or_400(entity_type) if entity_type else None
    service = ImportService(db, max_rows=settings.IMPORT_MAX_ROWS, preview_rows=settings.IMPORT_PREVIEW_ROWS)
    return service.preview(content, file.filename, entity)


@router.post('/upload', response_model=ImportStartResponse, status_code=status.HTTP_202_ACCEPTED)
def upload_spreadsheet(
    file: UploadFile = File(..., description="Spreadsheet to import (.xlsx, .xlsm or .csv)"),
    entity_type: str = Form(..., description="planillados, leaders, candidates or groups"),
    field_mappings: Optional[str] = Form(None, description="JSON {column: field}; suggested when omitted"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user)
):
    """
    Upload a spreadsheet and import it in the background.

    **Workflow:**
    1. Validate file type and size
    2. Save it to the upload directory
    3. Create job record in database
    4. Enqueue Celery task
    5. Return job ID for status tracking

    **Progress Tracking:**
    - Poll GET /api/import/job/{job_id} for status
    - Connect to WebSocket /ws/import/{job_id} for real-time updates
    """
    from tasks.import_tasks import import_spreadsheet

    entity = _entity_or_400(entity_type)
    mapping = None
    if field_mappings:
        try:
            mapping = json.loads(field_mappings)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid field_mappings: {e}")
        if not isinstance(mapping, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="field_mappings must be an object")

    content = _read_upload(file)
    logger.info(f"Upload request from {_user_label(current_user)}: {file.filename} as {entity}")

    fd, temp_path = tempfile.mkstemp(suffix=Path(file.filename).suffix, dir=settings.TEMP_UPLOAD_DIR)
    with os.fdopen(fd, 'wb') as tmp:
        tmp.write(content)

    job_id = str(uuid.uuid4())
    try:
        db.add(JobRun(
            job_id=job_id,
            job_type=JobType.IMPORT.value,
            entity_type=entity,
            status=JobStatus.PENDING.value,
            params={
                'filename': file.filename,
                'field_mappings': mapping,
                'file_size_mb': round(len(content) / 1024 / 1024, 2)
            },
            created_by=_user_label(current_user)
        ))
        db.commit()

        import_spreadsheet.apply_async(args=[temp_path, entity, mapping], task_id=job_id)

    except Exception as e:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        logger.error(f"Upload failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Upload failed: {str(e)}"
        )

    logger.info(f"Started import task {job_id} for file: {file.filename}")
    return ImportStartResponse(
        job_id=job_id,
        message="Import job started",
        status_url=f"{settings.API_PREFIX}/import/job/{job_id}",
        websocket_url=f"/ws/import/{job_id}"
    )


@router.get('/job/{job_id}', response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """
    Get current status of an import job.

    **Status Values:**
    - `pending`: Job is queued, waiting for worker
    - `processing`: Job is currently running
    - `success`: Job completed, `result` holds the import summary
    - `failed`: Job failed with error
    - `cancelled`: Job was cancelled
    """
    job_run = db.query(JobRun).filter_by(job_id=job_id).first()

    if not job_run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found"
        )

    # Latest progress from Redis (real-time), falling back to the database
    progress = None
    try:
        progress_data = redis_client.get(f'job_progress:{job_id}')
        if progress_data:
            progress = JobProgressResponse(**json.loads(progress_data))
    except Exception as e:
        logger.warning(f"Could not fetch progress from Redis for {job_id}: {e}")

    if not progress and job_run.progress:
        progress = JobProgressResponse.model_validate(job_run.progress[-1])

    return JobStatusResponse(
        job_id=job_run.job_id,
        job_type=job_run.job_type,
        entity_type=job_run.entity_type,
        status=job_run.status,
        created_at=job_run.created_at,
        started_at=job_run.started_at,
        completed_at=job_run.completed_at,
        progress=progress,
        result=job_run.result,
        error=job_run.error,
        created_by=job_run.created_by
    )


@router.get('/jobs', response_model=JobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    entity_type: Optional[str] = Query(None, description="Filter by imported entity"),
    status: Optional[JobStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db)
):
    """
    List import jobs, newest first.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" \\
         "http://localhost:8000/api/import/jobs?entity_type=planillados&status=success"
    ```
    """
    query = db.query(JobRun)

    if entity_type:
        query = query.filter_by(entity_type=_entity_or_400(entity_type))

    if status:
        query = query.filter_by(status=status.value)

    total = query.count()

    jobs = query.order_by(JobRun.created_at.desc())\
        .offset((page - 1) * page_size)\
        .limit(page_size)\
        .all()

    total_pages = (total + page_size - 1) // page_size

    return JobListResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        items=[JobListItem.model_validate(job) for job in jobs]
    )


@router.delete('/job/{job_id}', status_code=204)
async def cancel_job(
    job_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user)
):
    """
    Cancel a pending or processing job.

    **Returns:**
    - 204 No Content if successfully cancelled
    - 404 if job not found
    - 400 if job cannot be cancelled (already completed)
    """
    job_run = db.query(JobRun).filter_by(job_id=job_id).first()

    if not job_run:
        raise HTTPException(
            status_code=404,
            detail=f"Job {job_id} not found"
        )

    if job_run.status not in [JobStatus.PENDING.value, JobStatus.PROCESSING.value]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel job with status '{job_run.status}'"
        )

    job_run.status = JobStatus.CANCELLED.value
    job_run.completed_at = datetime.utcnow()
    job_run.error = {
        'error': 'Job cancelled by user',
        'cancelled_by': _user_label(current_user),
        'cancelled_at': datetime.utcnow().isoformat()
    }
    db.commit()

    try:
        from tasks.celery_app import celery_app
        celery_app.control.revoke(job_id, terminate=True)
        logger.info(f"Revoked Celery task {job_id}")
    except Exception as e:
        logger.warning(f"Could not revoke Celery task {job_id}: {e}")

    logger.info(f"Job {job_id} cancelled by {_user_label(current_user)}")
    return None


@router.post('/{entity_type}', response_model=ImportResultResponse)
def import_entity(
    entity_type: str,
    request: ImportRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """
    Import previewed rows with the chosen column mapping.

    Every row is validated and then created or updated (planillados and
    leaders by cedula, candidates by email, groups by name within their
    candidate). Invalid rows are skipped and reported with their spreadsheet
    row number; the rest are saved.

    **Example:**
    ```bash
    curl -X POST -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \\
         -d '{"entity_type": "leaders", "field_mappings": {"Cédula": "cedula", "Nombres": "first_name",
              "Apellidos": "last_name"}, "preview_data": [{"Cédula": "12345678", "Nombres": "Ana",
              "Apellidos": "Ruiz"}]}' \\
         http://localhost:8000/api/import/leaders
    ```

    **Errors:**
    - 400 if there is no data, the entity in the body does not match the
      URL, a required field is not mapped, or the file exceeds the row limit
    """
    entity = _entity_or_400(entity_type)
    if _entity_or_400(request.entity_type) != entity:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Entity type '{request.entity_type}' does not match '{entity_type}'"
        )
    if not request.preview_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="There is no data to import")

    logger.info(f"Importing {len(request.preview_data)} rows of {entity} from {request.file_name}")
    service = ImportService(db, notifier=notifier, max_rows=settings.IMPORT_MAX_ROWS)
    return service.import_rows(entity, request.preview_data, request.field_mappings)

"""
Groups router - canvassing teams that belong to a candidate.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.dependencies import get_current_user, get_db, require_ids, spreadsheet_response
from api.schemas.common import BulkActionResponse, PaginatedResponse, SuccessResponse
from api.schemas.group_schema import GroupBulkAction, GroupCreate, GroupResponse, GroupStats, GroupUpdate
from services.excel_service import build_workbook, export_filename
from services.group_service import GROUP_EXPORT_HEADERS, GroupService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/groups', tags=['groups'], dependencies=[Depends(get_current_user)])


def _filters(search, candidate_id, zone, is_active, date_from, date_to) -> dict:
    return {
        'search': search,
        'candidate_id': candidate_id,
        'zone': zone,
        'is_active': is_active,
        'date_from': date_from,
        'date_to': date_to,
    }


def _to_response(group, counts: dict) -> GroupResponse:
    item = GroupResponse.model_validate(group)
    item.leaders_count = counts.get('leaders_count', 0)
    item.planillados_count = counts.get('planillados_count', 0)
    return item


@router.get('', response_model=PaginatedResponse[GroupResponse])
async def list_groups(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search name, description or zone"),
    candidate_id: Optional[int] = Query(None, description="Filter by candidate"),
    zone: Optional[str] = Query(None, description="Filter by zone (substring)"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    date_from: Optional[date] = Query(None, description="Created on or after"),
    date_to: Optional[date] = Query(None, description="Created on or before"),
    db: Session = Depends(get_db)
):
    """
    List groups with their candidate and member counts.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" "http://localhost:8000/api/groups?candidate_id=1"
    ```
    """
    service = GroupService(db)
    groups, total = service.list(
        _filters(search, candidate_id, zone, is_active, date_from, date_to), page, page_size
    )
    counts = service.counts([g.id for g in groups])
    items = [_to_response(g, counts[g.id]) for g in groups]
    return PaginatedResponse[GroupResponse].create(items, total, page, page_size)


@router.get('/stats', response_model=GroupStats)
async def get_group_stats(
    search: Optional[str] = Query(None),
    candidate_id: Optional[int] = Query(None),
    zone: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Group totals, averages, distribution by candidate and zone, and goal progress."""
    return GroupService(db).stats(_filters(search, candidate_id, zone, is_active, date_from, date_to))


@router.get('/export')
async def export_groups(
    search: Optional[str] = Query(None),
    candidate_id: Optional[int] = Query(None),
    zone: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Download the filtered groups as `grupos_YYYY-MM-DD.xlsx`."""
    rows = GroupService(db).export_rows(_filters(search, candidate_id, zone, is_active, date_from, date_to))
    content = build_workbook('Grupos', GROUP_EXPORT_HEADERS, rows)
    return spreadsheet_response(content, export_filename('grupos'))


@router.post('/bulk-action', response_model=BulkActionResponse)
async def bulk_group_action(
    request: GroupBulkAction,
    db: Session = Depends(get_db)
):
    """Activate, deactivate or delete several groups."""
    require_ids(request.ids)
    affected = GroupService(db).bulk_action(request.action, request.ids)
    return BulkActionResponse(action=request.action, affected=affected)


@router.post('', response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    request: GroupCreate,
    db: Session = Depends(get_db)
):
    """
    Create a group for a candidate.

    **Errors:**
    - 400 if the candidate does not exist
    - 409 if the candidate already has a group with that name
    """
    group = GroupService(db).create(request.model_dump())
    return _to_response(group, {})


@router.get('/{group_id}', response_model=GroupResponse)
async def get_group(group_id: int, db: Session = Depends(get_db)):
    """Get a group with its counts."""
    service = GroupService(db)
    group = service.get(group_id)
    return _to_response(group, service.counts([group_id])[group_id])


@router.patch('/{group_id}', response_model=GroupResponse)
async def update_group(
    group_id: int,
    request: GroupUpdate,
    db: Session = Depends(get_db)
):
    """Update a group; the name stays unique within its candidate."""
    service = GroupService(db)
    group = service.update(group_id, request.model_dump(exclude_unset=True))
    return _to_response(group, service.counts([group_id])[group_id])


@router.delete('/{group_id}', response_model=SuccessResponse)
async def delete_group(group_id: int, db: Session = Depends(get_db)):
    """
    Delete a group.

    **Errors:**
    - 400 if the group has active leaders or any planillados
    """
    GroupService(db).delete(group_id)
    return SuccessResponse(message=f"Group {group_id} deleted", data={'id': group_id})

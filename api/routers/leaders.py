"""
Leaders router - canvassing leaders and the planillados they recruit.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.dependencies import (
    get_current_user, get_db, get_notifier, require_ids, spreadsheet_response
)
from api.schemas.common import BulkActionResponse, PaginatedResponse, SuccessResponse
from api.schemas.leader_schema import (
    LeaderBulkAction, LeaderCreate, LeaderDuplicateCheck, LeaderOption, LeaderResponse,
    LeaderStats, LeaderUpdate
)
from api.schemas.planillado_schema import PlanilladoResponse
from backend.models.schema import Gender
from services.excel_service import build_workbook, export_filename
from services.leader_service import LEADER_EXPORT_HEADERS, LeaderService
from services.notification_service import NotificationService
from services.planillado_service import PlanilladoService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/leaders', tags=['leaders'], dependencies=[Depends(get_current_user)])


def _filters(search, is_active, is_verified, group_id, neighborhood, municipality, gender,
             date_from, date_to) -> dict:
    return {
        'search': search,
        'is_active': is_active,
        'is_verified': is_verified,
        'group_id': group_id,
        'neighborhood': neighborhood,
        'municipality': municipality,
        'gender': gender.value if gender else None,
        'date_from': date_from,
        'date_to': date_to,
    }


def _to_response(leader, planillados_count: int = 0) -> LeaderResponse:
    item = LeaderResponse.model_validate(leader)
    item.planillados_count = planillados_count
    return item


@router.get('', response_model=PaginatedResponse[LeaderResponse])
async def list_leaders(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search names or cedula"),
    is_active: Optional[bool] = Query(None),
    is_verified: Optional[bool] = Query(None),
    group_id: Optional[int] = Query(None),
    neighborhood: Optional[str] = Query(None),
    municipality: Optional[str] = Query(None),
    gender: Optional[Gender] = Query(None),
    date_from: Optional[date] = Query(None, description="Created on or after"),
    date_to: Optional[date] = Query(None, description="Created on or before"),
    db: Session = Depends(get_db)
):
    """
    List leaders ordered by last name, with group and planillados count.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" "http://localhost:8000/api/leaders?is_verified=true"
    ```
    """
    service = LeaderService(db)
    leaders, total = service.list(
        _filters(search, is_active, is_verified, group_id, neighborhood, municipality, gender,
                 date_from, date_to),
        page, page_size
    )
    counts = service.planillados_counts([leader.id for leader in leaders])
    items = [_to_response(leader, counts.get(leader.id, 0)) for leader in leaders]
    return PaginatedResponse[LeaderResponse].create(items, total, page, page_size)


@router.get('/for-select', response_model=List[LeaderOption])
async def leaders_for_select(db: Session = Depends(get_db)):
    """Active leaders as {id, name, group_name} for select inputs."""
    return LeaderService(db).for_select()


@router.get('/duplicates/check', response_model=LeaderDuplicateCheck)
async def check_leader_duplicate(
    cedula: str = Query(..., min_length=1, description="Cedula to look up"),
    db: Session = Depends(get_db)
):
    """
    Check whether a leader with this cedula is already registered.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" \\
         "http://localhost:8000/api/leaders/duplicates/check?cedula=1144123456"
    ```
    """
    service = LeaderService(db)
    leader = service.find_by_cedula(cedula.strip())
    if not leader:
        return LeaderDuplicateCheck(exists=False)
    count = service.planillados_counts([leader.id]).get(leader.id, 0)
    return LeaderDuplicateCheck(exists=True, leader=_to_response(leader, count))


@router.get('/stats', response_model=LeaderStats)
async def get_leader_stats(
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    is_verified: Optional[bool] = Query(None),
    group_id: Optional[int] = Query(None),
    neighborhood: Optional[str] = Query(None),
    municipality: Optional[str] = Query(None),
    gender: Optional[Gender] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Leader totals, planillados per leader, distribution by group and neighborhood."""
    return LeaderService(db).stats(
        _filters(search, is_active, is_verified, group_id, neighborhood, municipality, gender,
                 date_from, date_to)
    )


@router.get('/export')
async def export_leaders(
    search: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    is_verified: Optional[bool] = Query(None),
    group_id: Optional[int] = Query(None),
    neighborhood: Optional[str] = Query(None),
    municipality: Optional[str] = Query(None),
    gender: Optional[Gender] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Download the filtered leaders as `lideres_YYYY-MM-DD.xlsx`."""
    rows = LeaderService(db).export_rows(
        _filters(search, is_active, is_verified, group_id, neighborhood, municipality, gender,
                 date_from, date_to)
    )
    content = build_workbook('Líderes', LEADER_EXPORT_HEADERS, rows)
    return spreadsheet_response(content, export_filename('lideres'))


@router.post('/bulk-action', response_model=BulkActionResponse)
async def bulk_leader_action(
    request: LeaderBulkAction,
    db: Session = Depends(get_db)
):
    """
    Apply one action to several leaders.

    **Actions:** activate, deactivate, verify, unverify, assign_group (needs
    `group_id`), delete (refused when a leader has planillados).
    """
    require_ids(request.ids)
    affected = LeaderService(db).bulk_action(request.action, request.ids, group_id=request.group_id)
    return BulkActionResponse(action=request.action, affected=affected)


@router.post('', response_model=LeaderResponse, status_code=status.HTTP_201_CREATED)
async def create_leader(
    request: LeaderCreate,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """
    Register a leader.

    If planillados were imported waiting for this cedula, a
    `leader.created.with.pending.planillados` notification is published so
    they can be linked.

    **Errors:**
    - 400 if the group does not exist
    - 409 if the cedula is already registered
    """
    leader = LeaderService(db, notifier).create(request.model_dump())
    return _to_response(leader)


@router.get('/{leader_id}', response_model=LeaderResponse)
async def get_leader(leader_id: int, db: Session = Depends(get_db)):
    """Get a leader with its planillados count."""
    service = LeaderService(db)
    leader = service.get(leader_id)
    return _to_response(leader, service.planillados_counts([leader_id]).get(leader_id, 0))


@router.get('/{leader_id}/planillados', response_model=PaginatedResponse[PlanilladoResponse])
async def get_leader_planillados(
    leader_id: int,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db)
):
    """Planillados recruited by a leader, most recently updated first."""
    LeaderService(db).get(leader_id)
    planillados, total = PlanilladoService(db).by_leader(leader_id, page, page_size)
    items = [PlanilladoResponse.model_validate(p) for p in planillados]
    return PaginatedResponse[PlanilladoResponse].create(items, total, page, page_size)


@router.patch('/{leader_id}', response_model=LeaderResponse)
async def update_leader(
    leader_id: int,
    request: LeaderUpdate,
    db: Session = Depends(get_db)
):
    """Update a leader; the cedula stays unique."""
    service = LeaderService(db)
    leader = service.update(leader_id, request.model_dump(exclude_unset=True))
    return _to_response(leader, service.planillados_counts([leader_id]).get(leader_id, 0))


@router.delete('/{leader_id}', response_model=SuccessResponse)
async def delete_leader(leader_id: int, db: Session = Depends(get_db)):
    """
    Delete a leader.

    **Errors:**
    - 400 if the leader has planillados assigned
    """
    LeaderService(db).delete(leader_id)
    return SuccessResponse(message=f"Leader {leader_id} deleted", data={'id': leader_id})

"""
Planillados router - canvassed voter records.

Besides CRUD this router exposes validation before saving, distinct values
for filter inputs, per-neighborhood statistics for the map, and the pending
leader workflow (records imported with the cedula of a leader who was not
registered yet).
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from api.dependencies import (
    get_current_user, get_db, get_notifier, require_ids, spreadsheet_response
)
from api.schemas.common import BulkActionResponse, PaginatedResponse, SuccessResponse
from api.schemas.planillado_schema import (
    AffectedResponse, ClearPendingRequest, LinkPendingRequest, NeighborhoodStat,
    PendingLeaderStats, PlanilladoBulkAction, PlanilladoCreate, PlanilladoDuplicateCheck,
    PlanilladoResponse, PlanilladoStats, PlanilladoUpdate, PlanilladoValidationRequest,
    PlanilladoValidationResponse
)
from backend.models.schema import Gender, PlanilladoStatus
from services.excel_service import build_workbook, export_filename
from services.notification_service import NotificationService
from services.planillado_service import PLANILLADO_EXPORT_HEADERS, PlanilladoService
from services.validation_service import ValidationService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/planillados', tags=['planillados'], dependencies=[Depends(get_current_user)])

EXPORT_SHEET = 'Planillados'


def planillado_filters(
    search: Optional[str] = Query(None, description="Search cedula, names or mobile"),
    status: Optional[PlanilladoStatus] = Query(None, description="verified or pending"),
    neighborhood: Optional[str] = Query(None, description="Exact neighborhood (barrio)"),
    leader_id: Optional[int] = Query(None),
    group_id: Optional[int] = Query(None),
    is_edil: Optional[bool] = Query(None),
    gender: Optional[Gender] = Query(None),
    age_range: Optional[str] = Query(None, description="18-24, 25-34, 35-44, 45-54, 55-64, 65+ or 'Sin definir'"),
    voting_municipality: Optional[str] = Query(None),
    is_updated: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None, description="Created on or after"),
    date_to: Optional[date] = Query(None, description="Created on or before"),
) -> dict:
    """Filters shared by list, stats and export."""
    return {
        'search': search,
        'status': status.value if status else None,
        'neighborhood': neighborhood,
        'leader_id': leader_id,
        'group_id': group_id,
        'is_edil': is_edil,
        'gender': gender.value if gender else None,
        'age_range': age_range,
        'voting_municipality': voting_municipality,
        'is_updated': is_updated,
        'date_from': date_from,
        'date_to': date_to,
    }


@router.get('', response_model=PaginatedResponse[PlanilladoResponse])
async def list_planillados(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    filters: dict = Depends(planillado_filters),
    db: Session = Depends(get_db)
):
    """
    List planillados, most recently updated first.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" \\
         "http://localhost:8000/api/planillados?status=pending&age_range=25-34&page_size=50"
    ```
    """
    planillados, total = PlanilladoService(db).list(filters, page, page_size)
    items = [PlanilladoResponse.model_validate(p) for p in planillados]
    return PaginatedResponse[PlanilladoResponse].create(items, total, page, page_size)


@router.get('/stats', response_model=PlanilladoStats)
async def get_planillado_stats(
    filters: dict = Depends(planillado_filters),
    db: Session = Depends(get_db)
):
    """
    Planillado totals and chart data.

    **Returns:**
    - status and edil counts
    - top 10 neighborhoods and leaders
    - distribution by gender, age range (adults) and group
    - records created today / this week and updated today
    """
    return PlanilladoService(db).stats(filters)


@router.get('/export')
async def export_planillados(
    filters: dict = Depends(planillado_filters),
    db: Session = Depends(get_db)
):
    """
    Download planillados as Excel, sorted by last and first name.

    The file is `planillados_filtrados_{date}.xlsx` when any filter is set,
    `planillados_completo_{date}.xlsx` otherwise.
    """
    service = PlanilladoService(db)
    rows = service.export_rows(filters)
    prefix = 'planillados_filtrados' if service.has_filters(filters) else 'planillados_completo'
    content = build_workbook(EXPORT_SHEET, PLANILLADO_EXPORT_HEADERS, rows)
    return spreadsheet_response(content, export_filename(prefix))


@router.post('/validate', response_model=PlanilladoValidationResponse)
async def validate_planillado(
    request: PlanilladoValidationRequest,
    db: Session = Depends(get_db)
):
    """
    Check a planillado before saving it.

    Duplicate cedula, invalid mobile and age under 18 are errors; age over
    100 is a warning. A voting municipality is suggested from other records
    in the same neighborhood.
    """
    data = request.model_dump(exclude={'exclude_id'}, exclude_none=True)
    return ValidationService(db).validate_planillado(data, exclude_id=request.exclude_id)


@router.get('/duplicates/check', response_model=PlanilladoDuplicateCheck)
async def check_planillado_duplicate(
    cedula: str = Query(..., min_length=1, description="Cedula to look up"),
    db: Session = Depends(get_db)
):
    """Check whether a planillado with this cedula already exists."""
    planillado = PlanilladoService(db).find_by_cedula(cedula.strip())
    if not planillado:
        return PlanilladoDuplicateCheck(exists=False)
    return PlanilladoDuplicateCheck(exists=True, planillado=PlanilladoResponse.model_validate(planillado))


@router.get('/neighborhoods', response_model=List[str])
async def list_neighborhoods(db: Session = Depends(get_db)):
    """Distinct neighborhoods, for filter inputs."""
    return PlanilladoService(db).neighborhoods()


@router.get('/municipalities', response_model=List[str])
async def list_municipalities(db: Session = Depends(get_db)):
    """Distinct voting municipalities, for filter inputs."""
    return PlanilladoService(db).municipalities()


@router.get('/neighborhood-stats', response_model=List[NeighborhoodStat])
async def get_neighborhood_stats(db: Session = Depends(get_db)):
    """Per-neighborhood totals used by the map view, largest first."""
    return PlanilladoService(db).neighborhood_stats()


@router.get('/pending-leader-stats', response_model=PendingLeaderStats)
async def get_pending_leader_stats(db: Session = Depends(get_db)):
    """
    Planillados waiting for a leader, grouped by the leader cedula.

    `leader_registered` tells whether that leader now exists and the records
    can be linked.
    """
    return PlanilladoService(db).pending_stats()


@router.get('/pending-leader/{cedula}', response_model=List[PlanilladoResponse])
async def get_pending_for_leader(cedula: str, db: Session = Depends(get_db)):
    """Planillados waiting for the leader with this cedula."""
    return [PlanilladoResponse.model_validate(p) for p in PlanilladoService(db).pending_for_leader(cedula)]


@router.post('/link-pending', response_model=AffectedResponse)
async def link_pending_planillados(
    request: LinkPendingRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
):
    """
    Link planillados waiting for `leader_cedula` to the registered leader.

    **Example:**
    ```bash
    curl -X POST -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \\
         -d '{"leader_cedula": "1144123456", "leader_id": 7}' \\
         http://localhost:8000/api/planillados/link-pending
    ```
    """
    affected = PlanilladoService(db, notifier).link_pending(
        request.leader_cedula, request.leader_id, request.planillado_ids
    )
    return AffectedResponse(affected=affected, message=f"{affected} planillados linked to leader {request.leader_id}")


@router.post('/clear-pending', response_model=AffectedResponse)
async def clear_pending_leaders(
    request: ClearPendingRequest,
    db: Session = Depends(get_db)
):
    """
    Clear pending leader cedulas that match no registered leader.

    Requires `{"confirm": true}`.
    """
    if not request.confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Set confirm to true to clear pending leader cedulas"
        )
    affected = PlanilladoService(db).clear_pending()
    return AffectedResponse(affected=affected, message=f"{affected} pending leader references cleared")


@router.post('/bulk-action', response_model=BulkActionResponse)
async def bulk_planillado_action(
    request: PlanilladoBulkAction,
    db: Session = Depends(get_db)
):
    """
    Apply one action to several planillados.

    **Actions:** verify, unverify, assign_leader (needs `leader_id`),
    assign_group (needs `group_id`), delete, export (returns an `.xlsx` with
    the selected records instead of JSON).
    """
    require_ids(request.ids)
    service = PlanilladoService(db)

    if request.action == 'export':
        rows = service.export_rows_by_ids(request.ids)
        content = build_workbook(EXPORT_SHEET, PLANILLADO_EXPORT_HEADERS, rows)
        return spreadsheet_response(content, export_filename('planillados_seleccionados'))

    affected = service.bulk_action(
        request.action, request.ids, leader_id=request.leader_id, group_id=request.group_id
    )
    return BulkActionResponse(action=request.action, affected=affected)


@router.post('', response_model=PlanilladoResponse, status_code=status.HTTP_201_CREATED)
async def create_planillado(
    request: PlanilladoCreate,
    db: Session = Depends(get_db)
):
    """
    Register a planillado. New records start as `pending`.

    **Errors:**
    - 400 if the leader or group does not exist
    - 409 if the cedula is already registered
    """
    planillado = PlanilladoService(db).create(request.model_dump())
    return PlanilladoResponse.model_validate(planillado)


@router.get('/{planillado_id}', response_model=PlanilladoResponse)
async def get_planillado(planillado_id: int, db: Session = Depends(get_db)):
    """Get a planillado."""
    return PlanilladoResponse.model_validate(PlanilladoService(db).get(planillado_id))


@router.patch('/{planillado_id}', response_model=PlanilladoResponse)
async def update_planillado(
    planillado_id: int,
    request: PlanilladoUpdate,
    db: Session = Depends(get_db)
):
    """Update a planillado; the cedula stays unique."""
    planillado = PlanilladoService(db).update(planillado_id, request.model_dump(exclude_unset=True))
    return PlanilladoResponse.model_validate(planillado)


@router.delete('/{planillado_id}', response_model=SuccessResponse)
async def delete_planillado(planillado_id: int, db: Session = Depends(get_db)):
    """Delete a planillado."""
    PlanilladoService(db).delete(planillado_id)
    return SuccessResponse(message=f"Planillado {planillado_id} deleted", data={'id': planillado_id})

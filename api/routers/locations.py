"""
Locations router - hierarchical administrative areas.

Locations are never hard-deleted; they are activated and deactivated.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.dependencies import get_current_user, get_db, require_ids, spreadsheet_response
from api.schemas.common import BulkActionResponse, PaginatedResponse
from api.schemas.location_schema import (
    LocationBulkAction, LocationCreate, LocationDetail, LocationResponse, LocationStats,
    LocationSummary, LocationTreeNode, LocationUpdate
)
from backend.models.schema import Location, LocationType
from services.excel_service import build_workbook, export_filename
from services.location_service import LOCATION_EXPORT_HEADERS, LocationService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/locations', tags=['locations'], dependencies=[Depends(get_current_user)])


def _filters(search, type, parent_id, roots_only, is_active, date_from, date_to) -> dict:
    return {
        'search': search,
        'type': type.value if type else None,
        'parent_id': parent_id,
        'roots_only': roots_only,
        'is_active': is_active,
        'date_from': date_from,
        'date_to': date_to,
    }


def _to_response(location: Location, children_count: int = 0) -> LocationResponse:
    item = LocationResponse.model_validate(location)
    item.children_count = children_count
    return item


def _counted_response(service: LocationService, location: Location) -> LocationResponse:
    return _to_response(location, service.children_counts([location.id]).get(location.id, 0))


@router.get('', response_model=PaginatedResponse[LocationResponse])
async def list_locations(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by name or code"),
    type: Optional[LocationType] = Query(None, description="Filter by location type"),
    parent_id: Optional[int] = Query(None, description="Filter by parent location"),
    roots_only: bool = Query(False, description="Only locations without parent"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    date_from: Optional[date] = Query(None, description="Created on or after"),
    date_to: Optional[date] = Query(None, description="Created on or before"),
    db: Session = Depends(get_db)
):
    """
    List locations with filters and pagination.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" \\
         "http://localhost:8000/api/locations?type=municipality&search=cal"
    ```

    **Returns:**
    Paginated locations ordered by name, each with its number of children.
    """
    service = LocationService(db)
    locations, total = service.list(
        _filters(search, type, parent_id, roots_only, is_active, date_from, date_to), page, page_size
    )
    counts = service.children_counts([loc.id for loc in locations])
    items = [_to_response(loc, counts.get(loc.id, 0)) for loc in locations]
    return PaginatedResponse[LocationResponse].create(items, total, page, page_size)


@router.get('/tree', response_model=List[LocationTreeNode])
async def get_location_tree(
    root_id: Optional[int] = Query(None, description="Only the subtree under this location"),
    include_inactive: bool = Query(False, description="Include deactivated locations"),
    db: Session = Depends(get_db)
):
    """
    Get the nested location hierarchy.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" "http://localhost:8000/api/locations/tree"
    ```
    """
    return LocationService(db).tree(root_id=root_id, include_inactive=include_inactive)


@router.get('/stats', response_model=LocationStats)
async def get_location_stats(
    search: Optional[str] = Query(None),
    type: Optional[LocationType] = Query(None),
    parent_id: Optional[int] = Query(None),
    roots_only: bool = Query(False),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Location totals by type, population and hierarchy depth.

    Accepts the same filters as the list endpoint.
    """
    return LocationService(db).stats(
        _filters(search, type, parent_id, roots_only, is_active, date_from, date_to)
    )


@router.get('/export')
async def export_locations(
    search: Optional[str] = Query(None),
    type: Optional[LocationType] = Query(None),
    parent_id: Optional[int] = Query(None),
    roots_only: bool = Query(False),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Download the filtered locations as an Excel file.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" -o ubicaciones.xlsx \\
         "http://localhost:8000/api/locations/export?type=neighborhood"
    ```
    """
    rows = LocationService(db).export_rows(
        _filters(search, type, parent_id, roots_only, is_active, date_from, date_to)
    )
    content = build_workbook('Ubicaciones', LOCATION_EXPORT_HEADERS, rows)
    return spreadsheet_response(content, export_filename('ubicaciones'))


@router.post('/bulk-action', response_model=BulkActionResponse)
async def bulk_location_action(
    request: LocationBulkAction,
    db: Session = Depends(get_db)
):
    """
    Activate or deactivate several locations at once.

    **Example:**
    ```bash
    curl -X POST -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \\
         -d '{"action": "deactivate", "ids": [4, 5]}' \\
         http://localhost:8000/api/locations/bulk-action
    ```
    """
    require_ids(request.ids)
    affected = LocationService(db).bulk_set_active(request.ids, request.action == 'activate')
    logger.info(f"Bulk {request.action} on {affected} locations")
    return BulkActionResponse(action=request.action, affected=affected)


@router.post('', response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    request: LocationCreate,
    db: Session = Depends(get_db)
):
    """
    Create a location.

    **Errors:**
    - 404 if the parent does not exist
    - 409 if the code is already used
    """
    location = LocationService(db).create(request.model_dump())
    return _to_response(location)


@router.get('/{location_id}', response_model=LocationDetail)
async def get_location(
    location_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a location with its parent, children and ancestor path (root first).

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" http://localhost:8000/api/locations/12
    ```
    """
    service = LocationService(db)
    location = service.get(location_id)
    children = service.children(location_id)

    detail = LocationDetail.model_validate(location)
    detail.children_count = len(children)
    detail.children = [LocationSummary.model_validate(child) for child in children]
    detail.ancestors = [LocationSummary.model_validate(loc) for loc in service.ancestors(location_id)]
    return detail


@router.get('/{location_id}/children', response_model=List[LocationResponse])
async def get_location_children(
    location_id: int,
    include_inactive: bool = Query(True, description="Include deactivated children"),
    db: Session = Depends(get_db)
):
    """Direct children of a location, ordered by name."""
    service = LocationService(db)
    children = service.children(location_id, include_inactive=include_inactive)
    counts = service.children_counts([child.id for child in children])
    return [_to_response(child, counts.get(child.id, 0)) for child in children]


@router.patch('/{location_id}', response_model=LocationResponse)
async def update_location(
    location_id: int,
    request: LocationUpdate,
    db: Session = Depends(get_db)
):
    """
    Update a location; changing `parent_id` moves it in the hierarchy.

    **Errors:**
    - 400 if the new parent is the location itself or one of its descendants
    - 404 if the location or the new parent does not exist
    - 409 if the code is already used by another location
    """
    service = LocationService(db)
    location = service.update(location_id, request.model_dump(exclude_unset=True))
    return _counted_response(service, location)


@router.post('/{location_id}/activate', response_model=LocationResponse)
async def activate_location(location_id: int, db: Session = Depends(get_db)):
    """Mark a location as active."""
    service = LocationService(db)
    return _counted_response(service, service.set_active(location_id, True))


@router.post('/{location_id}/deactivate', response_model=LocationResponse)
async def deactivate_location(location_id: int, db: Session = Depends(get_db)):
    """
    Mark a location as inactive.

    Children keep their own state; locations are never deleted.
    """
    service = LocationService(db)
    return _counted_response(service, service.set_active(location_id, False))

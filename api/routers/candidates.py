"""
Candidates router - CRUD, statistics and export for candidates.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from api.dependencies import get_current_user, get_db, require_ids, spreadsheet_response
from api.schemas.common import BulkActionResponse, PaginatedResponse, SuccessResponse
from api.schemas.candidate_schema import (
    CandidateBulkAction, CandidateCreate, CandidateResponse, CandidateStats, CandidateUpdate
)
from services.candidate_service import CANDIDATE_EXPORT_HEADERS, CandidateService
from services.excel_service import build_workbook, export_filename

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/candidates', tags=['candidates'], dependencies=[Depends(get_current_user)])


def _filters(search, position, party, is_active, date_from, date_to) -> dict:
    return {
        'search': search,
        'position': position,
        'party': party,
        'is_active': is_active,
        'date_from': date_from,
        'date_to': date_to,
    }


def _to_response(candidate, counts: dict) -> CandidateResponse:
    item = CandidateResponse.model_validate(candidate)
    for key, value in counts.items():
        setattr(item, key, value)
    return item


@router.get('', response_model=PaginatedResponse[CandidateResponse])
async def list_candidates(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search name, email, position or party"),
    position: Optional[str] = Query(None, description="Filter by position (substring)"),
    party: Optional[str] = Query(None, description="Filter by party (substring)"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    date_from: Optional[date] = Query(None, description="Created on or after"),
    date_to: Optional[date] = Query(None, description="Created on or before"),
    db: Session = Depends(get_db)
):
    """
    List candidates with their group, leader and voter counts.

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" "http://localhost:8000/api/candidates?party=verde"
    ```
    """
    service = CandidateService(db)
    candidates, total = service.list(
        _filters(search, position, party, is_active, date_from, date_to), page, page_size
    )
    counts = service.counts([c.id for c in candidates])
    items = [_to_response(c, counts[c.id]) for c in candidates]
    return PaginatedResponse[CandidateResponse].create(items, total, page, page_size)


@router.get('/stats', response_model=CandidateStats)
async def get_candidate_stats(
    search: Optional[str] = Query(None),
    position: Optional[str] = Query(None),
    party: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Candidate totals, distribution by party and position, and goal progress.

    **Returns:**
    - `goal_progress`: voters reached against each candidate's meta
    - `top_candidates`: the ten candidates with most voters
    """
    return CandidateService(db).stats(_filters(search, position, party, is_active, date_from, date_to))


@router.get('/export')
async def export_candidates(
    search: Optional[str] = Query(None),
    position: Optional[str] = Query(None),
    party: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Download the filtered candidates as `candidatos_YYYY-MM-DD.xlsx`.
    """
    rows = CandidateService(db).export_rows(_filters(search, position, party, is_active, date_from, date_to))
    content = build_workbook('Candidatos', CANDIDATE_EXPORT_HEADERS, rows)
    return spreadsheet_response(content, export_filename('candidatos'))


@router.post('/bulk-action', response_model=BulkActionResponse)
async def bulk_candidate_action(
    request: CandidateBulkAction,
    db: Session = Depends(get_db)
):
    """
    Activate, deactivate or delete several candidates.

    **Example:**
    ```bash
    curl -X POST -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \\
         -d '{"action": "activate", "ids": [1, 2]}' \\
         http://localhost:8000/api/candidates/bulk-action
    ```
    """
    require_ids(request.ids)
    affected = CandidateService(db).bulk_action(request.action, request.ids)
    return BulkActionResponse(action=request.action, affected=affected)


@router.post('', response_model=CandidateResponse, status_code=status.HTTP_201_CREATED)
async def create_candidate(
    request: CandidateCreate,
    db: Session = Depends(get_db)
):
    """
    Create a candidate.

    **Errors:**
    - 409 if the name or email is already used
    """
    candidate = CandidateService(db).create(request.model_dump())
    return CandidateResponse.model_validate(candidate)


@router.get('/{candidate_id}', response_model=CandidateResponse)
async def get_candidate(candidate_id: int, db: Session = Depends(get_db)):
    """Get a candidate with its counts."""
    service = CandidateService(db)
    candidate = service.get(candidate_id)
    return _to_response(candidate, service.counts([candidate_id])[candidate_id])


@router.patch('/{candidate_id}', response_model=CandidateResponse)
async def update_candidate(
    candidate_id: int,
    request: CandidateUpdate,
    db: Session = Depends(get_db)
):
    """Update a candidate; name and email stay unique."""
    service = CandidateService(db)
    candidate = service.update(candidate_id, request.model_dump(exclude_unset=True))
    return _to_response(candidate, service.counts([candidate_id])[candidate_id])


@router.delete('/{candidate_id}', response_model=SuccessResponse)
async def delete_candidate(candidate_id: int, db: Session = Depends(get_db)):
    """
    Delete a candidate.

    **Errors:**
    - 400 if the candidate still has groups
    - 404 if the candidate does not exist
    """
    CandidateService(db).delete(candidate_id)
    return SuccessResponse(message=f"Candidate {candidate_id} deleted", data={'id': candidate_id})

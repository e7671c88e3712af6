"""
Dashboard router - campaign-wide totals.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_current_user, get_db
from services.dashboard_service import DashboardService

router = APIRouter(prefix='/dashboard', tags=['dashboard'], dependencies=[Depends(get_current_user)])


@router.get('/stats', response_model=Dict[str, Any])
async def get_dashboard_stats(db: Session = Depends(get_db)):
    """
    Totals for the home screen.

    **Returns:**
    - active/total candidates, groups, leaders and locations
    - planillados by status, ediles
    - progress toward the combined goal of active candidates
    - planillados and leaders registered today and over the last 7 days

    **Example:**
    ```bash
    curl -H "Authorization: Bearer $TOKEN" http://localhost:8000/api/dashboard/stats
    ```
    """
    return DashboardService(db).stats()

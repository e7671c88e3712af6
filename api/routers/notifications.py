"""
Notifications router - latest campaign events.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_notifier
from services.notification_service import NotificationService

router = APIRouter(prefix='/notifications', tags=['notifications'], dependencies=[Depends(get_current_user)])


@router.get('/recent', response_model=List[Dict[str, Any]])
async def recent_notifications(
    limit: int = Query(20, ge=1, le=50, description="Number of notifications"),
    notifier: NotificationService = Depends(get_notifier)
):
    """
    Latest notifications, newest first.

    Each item is `{event, payload, timestamp}`. Live updates are available
    on the `/ws/notifications` WebSocket.
    """
    return notifier.recent(limit)

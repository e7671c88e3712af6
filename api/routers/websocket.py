"""
WebSocket router - Real-time progress updates and notifications.

This module provides WebSocket endpoints for streaming queued import
progress and campaign notifications (for example a leader registered while
planillados were waiting for them).

When authentication is enabled the token is passed as `?token=...`, since
browsers cannot set headers on WebSocket connections.
"""

import json
import logging
import asyncio
from typing import Optional

import redis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query, status
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_auth_service, get_db, get_redis
from backend.models.job import JobRun, JobStatus
from services.auth_service import AuthService, AuthenticationError

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=['websocket'])

POLL_INTERVAL = 0.5
FINISHED = [JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELLED]


async def _authorized(websocket: WebSocket, auth: AuthService, token: Optional[str]) -> bool:
    """Close the socket with a policy violation when the token is not valid."""
    if not settings.ENABLE_AUTH:
        return True
    try:
        if not token:
            raise AuthenticationError("Missing token")
        auth.user_from_token(token)
        return True
    except AuthenticationError as e:
        logger.warning(f"WebSocket rejected: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return False


async def _close_with_error(websocket: WebSocket, payload: dict):
    try:
        await websocket.send_json(payload)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug(f"Could not report error to WebSocket client: {e}")


@router.websocket('/ws/import/{job_id}')
async def websocket_import_progress(
    websocket: WebSocket,
    job_id: str,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    redis_client: redis.Redis = Depends(get_redis)
):
    """
    WebSocket endpoint for real-time import progress updates.

    Streams progress updates as the job executes, sending JSON messages with:
    - Current progress (stage, percent, message)
    - Job status changes
    - Final results or errors

    **Connection:**
    ```javascript
    const ws = new WebSocket(`ws://localhost:8000/ws/import/${jobId}?token=${token}`);

    ws.onmessage = (event) => {
        const data = JSON.parse(event.data);
        if (data.progress) console.log(`Progress: ${data.progress.percent}%`);

        if (data.status === 'success') {
            console.log(`${data.result.success_count} rows imported`);
            ws.close();
        }
    };
    ```

    **Message Format:**
    ```json
    {
        "job_id": "abc-123-def-456",
        "status": "processing",
        "progress": {
            "stage": "saving",
            "percent": 65.5,
            "message": "Processed 650/1000 rows",
            "timestamp": "2025-10-15T12:30:45Z"
        }
    }
    ```

    **Final Message (Success):**
    ```json
    {
        "job_id": "abc-123-def-456",
        "status": "success",
        "completed_at": "2025-10-15T12:31:00Z",
        "result": {"success_count": 998, "error_count": 2, "errors": [...]}
    }
    ```
    """
    await websocket.accept()
    if not await _authorized(websocket, auth, token):
        return
    logger.info(f"WebSocket connection established for job {job_id}")

    try:
        job_run = db.query(JobRun).filter_by(job_id=job_id).first()
        if not job_run:
            await websocket.send_json({
                'error': f'Job {job_id} not found',
                'job_id': job_id
            })
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.send_json({
            'job_id': job_id,
            'status': job_run.status,
            'message': 'Connected to job progress stream'
        })

        last_progress = None
        last_status = job_run.status

        while True:
            db.refresh(job_run)

            if job_run.status != last_status:
                await websocket.send_json({
                    'job_id': job_id,
                    'status': job_run.status,
                    'message': f'Job status changed to {job_run.status}'
                })
                last_status = job_run.status

            try:
                progress_data = redis_client.get(f'job_progress:{job_id}')
                if progress_data:
                    progress = json.loads(progress_data)
                    if progress != last_progress:
                        await websocket.send_json({
                            'job_id': job_id,
                            'status': job_run.status,
                            'progress': progress
                        })
                        last_progress = progress
            except redis.RedisError as e:
                logger.warning(f"Error reading progress from Redis for {job_id}: {e}")

            if job_run.status in FINISHED:
                final_message = {
                    'job_id': job_id,
                    'status': job_run.status,
                    'completed_at': job_run.completed_at.isoformat() if job_run.completed_at else None
                }

                if job_run.status == JobStatus.SUCCESS:
                    final_message['result'] = job_run.result
                elif job_run.status == JobStatus.FAILED:
                    final_message['error'] = job_run.error

                await websocket.send_json(final_message)
                logger.info(f"Job {job_id} completed with status {job_run.status}")
                break

            await asyncio.sleep(POLL_INTERVAL)

        await websocket.close()
        logger.info(f"WebSocket connection closed for job {job_id}")

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from job {job_id}")

    except Exception as e:
        logger.error(f"WebSocket error for job {job_id}: {e}", exc_info=True)
        await _close_with_error(websocket, {'error': str(e), 'job_id': job_id})


async def _forward_notifications(websocket: WebSocket, pubsub):
    while True:
        message = pubsub.get_message(timeout=0)
        if message and message.get('type') == 'message':
            await websocket.send_json({'type': 'notification', **json.loads(message['data'])})
        else:
            await asyncio.sleep(POLL_INTERVAL)


async def _until_disconnect(websocket: WebSocket):
    """Discard client messages until the client goes away."""
    while True:
        message = await websocket.receive()
        if message['type'] == 'websocket.disconnect':
            return


@router.websocket('/ws/notifications')
async def websocket_notifications(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    auth: AuthService = Depends(get_auth_service),
    redis_client: redis.Redis = Depends(get_redis)
):
    """
    Stream campaign notifications.

    On connect the client receives `{"type": "recent", "items": [...]}` with
    the latest notifications, then one `{"type": "notification", ...}`
    message per event published on the notifications channel.
    """
    await websocket.accept()
    if not await _authorized(websocket, auth, token):
        return

    pubsub = redis_client.pubsub(ignore_subscribe_messages=True)
    try:
        history_key = f"{settings.NOTIFICATIONS_CHANNEL}:recent"
        recent = [json.loads(item) for item in redis_client.lrange(history_key, 0, 19)]
        await websocket.send_json({'type': 'recent', 'items': recent})

        pubsub.subscribe(settings.NOTIFICATIONS_CHANNEL)
        logger.info("Notification WebSocket subscribed")

        forward = asyncio.create_task(_forward_notifications(websocket, pubsub))
        disconnect = asyncio.create_task(_until_disconnect(websocket))
        done, pending = await asyncio.wait({forward, disconnect}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            task.result()
        logger.info("Notification WebSocket client disconnected")

    except WebSocketDisconnect:
        logger.info("Notification WebSocket client disconnected")

    except redis.RedisError as e:
        logger.error(f"Notification stream unavailable: {e}")
        await _close_with_error(websocket, {'error': 'Notifications unavailable'})

    finally:
        pubsub.close()

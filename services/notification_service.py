"""
Notification Service - campaign events over Redis pub/sub.

Events are published on a channel for live WebSocket clients and the most
recent ones are kept in a capped list for clients that connect later.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

LEADER_WITH_PENDING_PLANILLADOS = 'leader.created.with.pending.planillados'
PENDING_PLANILLADOS_LINKED = 'planillados.pending.linked'


class NotificationService:
    """Publish campaign events; delivery problems never fail the caller."""

    def __init__(self, redis_client: Optional[redis.Redis], channel: str, history_size: int = 50):
        self.redis = redis_client
        self.channel = channel
        self.history_key = f"{channel}:recent"
        self.history_size = history_size

    def publish(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        Publish an event.

        Returns:
            True when the event reached Redis
        """
        message = {
            'event': event,
            'payload': payload,
            'timestamp': datetime.utcnow().isoformat()
        }
        if self.redis is None:
            logger.info(f"Notification not delivered (no Redis): {event}")
            return False

        try:
            data = json.dumps(message, default=str)
            self.redis.publish(self.channel, data)
            self.redis.lpush(self.history_key, data)
            self.redis.ltrim(self.history_key, 0, self.history_size - 1)
            logger.info(f"Published notification {event}")
            return True
        except redis.RedisError as e:
            logger.warning(f"Could not publish notification {event}: {e}")
            return False

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Latest notifications, newest first."""
        if self.redis is None:
            return []
        try:
            return [json.loads(item) for item in self.redis.lrange(self.history_key, 0, limit - 1)]
        except redis.RedisError as e:
            logger.warning(f"Could not read recent notifications: {e}")
            return []

"""
Best-effort publishing of submission status changes over Redis pub/sub.
"""

import json
import logging
from typing import Optional

import redis as sync_redis

logger = logging.getLogger(__name__)

CHANNEL = "submission_updates"


class StatusPublisher:
    """Publishes status updates; a missing or failing Redis is logged and ignored."""

    def __init__(self, redis_url: Optional[str]):
        self._redis = None
        if not redis_url:
            logger.info("Redis URL not set; status publishing disabled")
            return
        try:
            self._redis = sync_redis.Redis.from_url(redis_url, socket_connect_timeout=2)
            self._redis.ping()
            logger.info("Redis connected for submission status publishing")
        except Exception as e:
            logger.warning(f"Redis not available for pub/sub: {e}")
            self._redis = None

    def publish(self, submission_id: str, status: str, error: Optional[str] = None) -> None:
        if not self._redis:
            return
        try:
            payload = {"submission_id": submission_id, "status": status, "error": error}
            self._redis.publish(CHANNEL, json.dumps(payload))
        except Exception as e:
            logger.warning(f"Failed to publish status update: {e}")

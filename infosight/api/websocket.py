"""
Live submission status feed over WebSocket.

The pipeline publishes status changes on the Redis ``submission_updates``
channel; ``redis_listener`` in ``infosight.main`` hands each one to
``SubmissionFeed.relay``. A client may watch specific submissions with
``/ws?submission_id=<id>`` (repeatable) or receive every update.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from fastapi import WebSocket
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class SubmissionUpdate(BaseModel):
    """Message pushed to feed subscribers."""
    type: str = "submission_update"
    submission_id: str
    status: str
    error: Optional[str] = None
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SubmissionFeed:
    """Tracks subscribed sockets and the submissions each one watches."""

    def __init__(self):
        # Empty watch set means every submission
        self._watchers: Dict[WebSocket, FrozenSet[str]] = {}
        self._lock = asyncio.Lock()

    @property
    def subscribers(self) -> List[WebSocket]:
        return list(self._watchers)

    async def subscribe(self, ws: WebSocket, submission_ids: Optional[List[str]] = None) -> None:
        await ws.accept()
        async with self._lock:
            self._watchers[ws] = frozenset(submission_ids or ())
        logger.info(f"Feed subscriber added ({len(self._watchers)} connected)")

    async def unsubscribe(self, ws: WebSocket) -> None:
        async with self._lock:
            self._watchers.pop(ws, None)
        logger.info(f"Feed subscriber removed ({len(self._watchers)} connected)")

    async def relay(self, payload: dict) -> int:
        """
        Validate a published status payload and push it to interested subscribers.

        Returns:
            Number of subscribers the update was delivered to
        """
        try:
            update = SubmissionUpdate.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed status update {payload!r}: {e}")
            return 0
        return await self.publish(update)

    async def publish(self, update: SubmissionUpdate) -> int:
        async with self._lock:
            targets = [
                ws for ws, watched in self._watchers.items()
                if not watched or update.submission_id in watched
            ]
        if not targets:
            return 0

        message = update.model_dump_json()
        results = await asyncio.gather(*(ws.send_text(message) for ws in targets), return_exceptions=True)

        delivered = 0
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.info(f"Feed subscriber unreachable ({result}), removing it")
                await self.unsubscribe(ws)
            else:
                delivered += 1
        return delivered


feed = SubmissionFeed()

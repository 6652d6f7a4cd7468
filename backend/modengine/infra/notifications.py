"""Notification dispatch onto a Redis stream consumed by the delivery workers."""

from __future__ import annotations

import logging

from modengine.domain.notifications import NotificationDispatcher, NotificationRequest
from modengine.infra.redis import RedisProxy

logger = logging.getLogger(__name__)


class RedisStreamNotificationDispatcher(NotificationDispatcher):
    def __init__(self, redis: RedisProxy, *, stream: str = "mod:notifications", maxlen: int = 10000) -> None:
        self.redis = redis
        self.stream = stream
        self.maxlen = maxlen

    async def dispatch(self, request: NotificationRequest) -> bool:
        message_id = await self.redis.xadd(self.stream, request.to_fields(), maxlen=self.maxlen, approximate=True)
        logger.debug(
            "notification enqueued",
            extra={"stream": self.stream, "message_id": message_id, "kind": request.kind.value},
        )
        return bool(message_id)

"""Deactivate restrictions whose expiry has passed."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from modengine.domain import notifications
from modengine.domain.models import RestrictionKind
from modengine.domain.notifications import NotificationPublisher
from modengine.domain.ports import IdentityProvider
from modengine.domain.repository import ModerationRepository
from modengine.obs import metrics

logger = logging.getLogger(__name__)

JOB_NAME = "restrictions_expiry"


async def run(
    repository: ModerationRepository,
    publisher: NotificationPublisher,
    *,
    identity: IdentityProvider | None = None,
    now: datetime | None = None,
) -> int:
    """Flip expired restrictions inactive and notify the affected users.

    Only rows this invocation deactivated are returned by the store, so
    overlapping runs never notify twice for the same restriction.
    """

    now = now or datetime.now(timezone.utc)
    start = time.perf_counter()
    try:
        async with repository.transaction() as uow:
            expired = await uow.expire_restrictions(now=now)
    except Exception:
        metrics.record_job(JOB_NAME, result="error", duration_seconds=time.perf_counter() - start)
        raise
    for restriction in expired:
        metrics.restriction_expired(restriction.kind.value)
        if identity is not None and restriction.kind is RestrictionKind.SUSPENDED:
            await identity.clear_suspension(restriction.user_id)
        await publisher.publish(notifications.restriction_expired(restriction))
    duration = time.perf_counter() - start
    metrics.record_job(JOB_NAME, result="ok", duration_seconds=duration)
    logger.info(
        "restriction expiry sweep finished",
        extra={"job": JOB_NAME, "expired_count": len(expired), "duration_ms": round(duration * 1000, 2)},
    )
    return len(expired)

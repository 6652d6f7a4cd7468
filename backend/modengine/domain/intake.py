"""Report intake: validation, priority assignment and submission limits."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence
from uuid import uuid4

from modengine.domain import notifications
from modengine.domain.errors import (
    DuplicateReport,
    EmptyDescription,
    EmptyNotes,
    InvalidPriority,
    RateLimitExceeded,
    SelfReport,
    TargetNotReportable,
    Unauthorized,
    ValidationError,
)
from modengine.domain.models import Report, ReportReason, ReportStatus, Role, TargetKind, utcnow
from modengine.domain.notifications import NotificationPublisher
from modengine.domain.ports import ContentStore, IdentityProvider
from modengine.domain.rate_limit import SlidingWindowLimiter
from modengine.domain.repository import ModerationRepository
from modengine.domain.text import DESCRIPTION_MAX, INTERNAL_NOTES_MAX, bounded_text
from modengine.obs import metrics
from modengine.obs.audit import log_security_event

logger = logging.getLogger(__name__)

PRIORITY_MAP: dict[ReportReason, int] = {
    ReportReason.SELF_HARM: 1,
    ReportReason.HATE_SPEECH: 2,
    ReportReason.HARASSMENT: 2,
    ReportReason.INAPPROPRIATE_CONTENT: 3,
    ReportReason.SPAM: 3,
    ReportReason.COPYRIGHT_VIOLATION: 3,
    ReportReason.IMPERSONATION: 3,
    ReportReason.OTHER: 4,
}

MODERATOR_FLAG_PRIORITY = 2
HIGH_PRIORITY_THRESHOLD = 2


def priority_for(reason: ReportReason) -> int:
    return PRIORITY_MAP[reason]


def moderator_flag_priority(requested: Optional[int]) -> int:
    if requested is not None and not 1 <= requested <= 5:
        raise InvalidPriority(requested)
    base = requested if requested is not None else MODERATOR_FLAG_PRIORITY
    return min(base, MODERATOR_FLAG_PRIORITY)


@dataclass
class ReportIntakeService:
    repository: ModerationRepository
    identity: IdentityProvider
    content: ContentStore
    limiter: SlidingWindowLimiter
    publisher: NotificationPublisher
    staff_recipient_ids: Sequence[str] = tuple()
    duplicate_window_seconds: int = 86400
    clock: Callable[[], datetime] = utcnow

    async def submit_report(
        self,
        *,
        reporter_id: str,
        target_kind: TargetKind,
        target_id: str,
        reason: ReportReason,
        description: Optional[str] = None,
    ) -> Report:
        if not reporter_id:
            raise Unauthorized("reporter_required")
        description = bounded_text(description, field="description", limit=DESCRIPTION_MAX)
        if reason is ReportReason.OTHER and description is None:
            metrics.inc_report_reject("empty_description")
            raise EmptyDescription()
        start = time.perf_counter()
        now = self.clock()
        reported_user_id = await self._reported_user(target_kind, target_id)
        if reported_user_id is not None and reported_user_id == reporter_id:
            metrics.inc_report_reject("self_report")
            raise SelfReport("You cannot report your own content")
        if target_kind is TargetKind.USER and await self.identity.role_of(target_id) is Role.ADMIN:
            metrics.inc_report_reject("admin_target")
            raise TargetNotReportable()
        await self._ensure_not_duplicate(reporter_id, target_kind, target_id, now=now, moderator_flag=False)
        try:
            await self.limiter.hit(reporter_id, now=now)
        except RateLimitExceeded as exc:
            metrics.inc_report_reject("rate_limited")
            log_security_event(
                "report_rate_limited",
                reporter_id,
                details={"retry_after_seconds": exc.retry_after_seconds, "target_kind": target_kind.value},
            )
            raise
        report = Report(
            id=str(uuid4()),
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            target_kind=target_kind,
            target_id=target_id,
            reason=reason,
            description=description,
            status=ReportStatus.PENDING,
            priority=priority_for(reason),
            moderator_flagged=False,
            created_at=now,
            updated_at=now,
        )
        async with self.repository.transaction() as uow:
            await uow.insert_report(report)
        metrics.inc_report(report.source.value, report.priority)
        metrics.observe_operation("submit_report", time.perf_counter() - start)
        logger.info(
            "report submitted",
            extra={"report_id": report.id, "priority": report.priority, "target_kind": target_kind.value},
        )
        await self._alert_staff(report)
        return report

    async def moderator_flag(
        self,
        *,
        moderator_id: str,
        target_kind: TargetKind,
        target_id: str,
        reason: ReportReason,
        internal_notes: Optional[str],
        priority: Optional[int] = None,
    ) -> Report:
        role = await self.identity.role_of(moderator_id)
        if not role.is_staff:
            log_security_event(
                "unauthorized_flag_attempt",
                moderator_id,
                details={"target_kind": target_kind.value, "target_id": target_id},
            )
            raise Unauthorized("moderator_required")
        notes = bounded_text(internal_notes, field="internal_notes", limit=INTERNAL_NOTES_MAX)
        if notes is None:
            raise EmptyNotes()
        resolved_priority = moderator_flag_priority(priority)
        start = time.perf_counter()
        now = self.clock()
        reported_user_id = await self._reported_user(target_kind, target_id)
        await self._ensure_not_duplicate(moderator_id, target_kind, target_id, now=now, moderator_flag=True)
        report = Report(
            id=str(uuid4()),
            reporter_id=moderator_id,
            reported_user_id=reported_user_id,
            target_kind=target_kind,
            target_id=target_id,
            reason=reason,
            description=notes,
            status=ReportStatus.UNDER_REVIEW,
            priority=resolved_priority,
            moderator_flagged=True,
            created_at=now,
            updated_at=now,
        )
        async with self.repository.transaction() as uow:
            await uow.insert_report(report)
        metrics.inc_report(report.source.value, report.priority)
        metrics.observe_operation("moderator_flag", time.perf_counter() - start)
        logger.info("moderator flag created", extra={"report_id": report.id, "priority": report.priority})
        await self._alert_staff(report)
        return report

    async def _reported_user(self, target_kind: TargetKind, target_id: str) -> Optional[str]:
        if not target_id:
            raise ValidationError("A target id is required")
        if target_kind is TargetKind.USER:
            return target_id
        if not await self.content.exists(target_kind, target_id):
            raise ValidationError(
                f"The reported {target_kind.value} does not exist",
                details={"target_kind": target_kind.value, "target_id": target_id},
            )
        return await self.content.owner_of(target_kind, target_id)

    async def _ensure_not_duplicate(
        self,
        reporter_id: str,
        target_kind: TargetKind,
        target_id: str,
        *,
        now: datetime,
        moderator_flag: bool,
    ) -> None:
        since = now - timedelta(seconds=self.duplicate_window_seconds)
        existing = await self.repository.find_recent_report(reporter_id, target_kind, target_id, since=since)
        if existing is None:
            return
        metrics.inc_report_reject("duplicate")
        log_security_event(
            "duplicate_report_attempt",
            reporter_id,
            details={
                "target_kind": target_kind.value,
                "target_id": target_id,
                "original_report_at": existing.created_at,
                "moderator_flag": moderator_flag,
            },
        )
        raise DuplicateReport(
            f"You have already reported this {target_kind.value} recently. Please wait 24 hours before reporting again.",
            details={"original_report_at": existing.created_at.isoformat()},
        )

    async def _alert_staff(self, report: Report) -> None:
        if report.priority > HIGH_PRIORITY_THRESHOLD:
            return
        for recipient in self.staff_recipient_ids:
            if recipient == report.reporter_id:
                continue
            await self.publisher.publish(notifications.high_priority_report(report, recipient))

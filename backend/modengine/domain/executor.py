"""Action executor: resolves a report by recording a moderation action.

Everything that touches the ledger (the action row, any restriction it
implies, the report transition and the content hook) runs inside one
repository transaction. The identity-store suspension stamp and the user
notification follow the commit; the notification outcome is written back as
``notification_sent``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from modengine.domain import notifications, rbac
from modengine.domain.errors import (
    AlreadyResolved,
    EmptyReason,
    InvalidDuration,
    NotFound,
    RateLimitExceeded,
    Unauthorized,
    ValidationError,
)
from modengine.domain.models import (
    ActionDetails,
    ActionKind,
    ContentActionDetails,
    ModerationAction,
    Report,
    ReportStatus,
    RestrictionDetails,
    RestrictionKind,
    SuspensionDetails,
    TargetKind,
    UserRestriction,
    WarningDetails,
    utcnow,
)
from modengine.domain.notifications import NotificationPublisher
from modengine.domain.ports import ContentStore, IdentityProvider
from modengine.domain.rate_limit import SlidingWindowLimiter
from modengine.domain.repository import ModerationRepository, ModerationUnitOfWork
from modengine.domain.text import INTERNAL_NOTES_MAX, NOTIFICATION_MESSAGE_MAX, REASON_MAX, bounded_text
from modengine.obs import metrics
from modengine.obs.audit import log_security_event

logger = logging.getLogger(__name__)

MAX_DURATION_DAYS = 365


@dataclass(slots=True, frozen=True)
class ActionParams:
    reason: str
    duration_days: Optional[int] = None
    restriction_kind: Optional[RestrictionKind] = None
    internal_notes: Optional[str] = None
    notification_message: Optional[str] = None


@dataclass(slots=True, frozen=True)
class _ValidatedParams:
    reason: str
    duration_days: Optional[int]
    restriction_kind: Optional[RestrictionKind]
    internal_notes: Optional[str]
    notification_message: Optional[str]


def validate_params(kind: ActionKind, params: ActionParams) -> _ValidatedParams:
    reason = bounded_text(params.reason, field="reason", limit=REASON_MAX)
    if reason is None:
        raise EmptyReason()
    notes = bounded_text(params.internal_notes, field="internal_notes", limit=INTERNAL_NOTES_MAX)
    message = bounded_text(params.notification_message, field="notification_message", limit=NOTIFICATION_MESSAGE_MAX)
    duration = params.duration_days
    if duration is not None and not 0 <= duration <= MAX_DURATION_DAYS:
        raise InvalidDuration(
            f"Duration must be between 0 and {MAX_DURATION_DAYS} days", details={"duration_days": duration}
        )
    if kind is ActionKind.USER_SUSPENDED and not duration:
        raise InvalidDuration("Suspensions require a duration of at least 1 day", details={"duration_days": duration})
    if kind is ActionKind.USER_BANNED:
        duration = None
    restriction_kind = params.restriction_kind
    if kind is ActionKind.RESTRICTION_APPLIED:
        if restriction_kind is None:
            raise ValidationError("A restriction type is required", details={"field": "restriction_type"})
    else:
        restriction_kind = None
    if kind not in (ActionKind.USER_SUSPENDED, ActionKind.RESTRICTION_APPLIED) and duration is not None:
        duration = None
    return _ValidatedParams(
        reason=reason,
        duration_days=duration or None,
        restriction_kind=restriction_kind,
        internal_notes=notes,
        notification_message=message,
    )


def expiry_for(duration_days: Optional[int], *, now: datetime) -> Optional[datetime]:
    if not duration_days:
        return None
    return now + timedelta(days=duration_days)


def details_for(kind: ActionKind, report: Report, params: _ValidatedParams) -> ActionDetails:
    if kind in (ActionKind.CONTENT_REMOVED, ActionKind.CONTENT_APPROVED):
        return ContentActionDetails(target_kind=report.target_kind, target_id=report.target_id)
    if kind is ActionKind.USER_WARNED:
        return WarningDetails(notification_message=params.notification_message)
    if kind is ActionKind.USER_SUSPENDED:
        return SuspensionDetails(duration_days=params.duration_days, permanent=False)
    if kind is ActionKind.USER_BANNED:
        return SuspensionDetails(duration_days=None, permanent=True)
    assert params.restriction_kind is not None
    return RestrictionDetails(restriction_kind=params.restriction_kind, duration_days=params.duration_days)


def restriction_kind_for(kind: ActionKind, params: _ValidatedParams) -> Optional[RestrictionKind]:
    if kind in (ActionKind.USER_SUSPENDED, ActionKind.USER_BANNED):
        return RestrictionKind.SUSPENDED
    if kind is ActionKind.RESTRICTION_APPLIED:
        return params.restriction_kind
    return None


def resolved_status(kind: ActionKind) -> ReportStatus:
    if kind is ActionKind.CONTENT_APPROVED:
        return ReportStatus.DISMISSED
    return ReportStatus.RESOLVED


@dataclass
class ActionExecutor:
    repository: ModerationRepository
    identity: IdentityProvider
    content: ContentStore
    limiter: SlidingWindowLimiter
    publisher: NotificationPublisher
    clock: Callable[[], datetime] = utcnow

    async def take_action(
        self,
        *,
        actor_id: str,
        report_id: str,
        kind: ActionKind,
        params: ActionParams,
    ) -> ModerationAction:
        actor_role = await self.identity.role_of(actor_id)
        if not actor_role.is_staff:
            self._denied(actor_id, report_id, kind, "moderator_required")
            raise Unauthorized("moderator_required")
        validated = validate_params(kind, params)
        now = self.clock()
        start = time.perf_counter()
        async with self.repository.transaction() as uow:
            report = await uow.get_report(report_id, for_update=True)
            if report is None:
                raise NotFound("report_not_found", details={"report_id": report_id})
            if not report.status.is_open:
                raise AlreadyResolved(report_id)
            target_user_id = report.reported_user_id
            if target_user_id is None:
                raise ValidationError("The reported content has no owner to act on", details={"report_id": report_id})
            target_role = await self.identity.role_of(target_user_id)
            try:
                rbac.ensure_may_take_action(actor_role, target_role, kind)
            except Unauthorized as exc:
                self._denied(actor_id, report_id, kind, exc.reason)
                raise
            await self._count_against_budget(actor_id, kind, now=now)
            action = ModerationAction(
                id=str(uuid4()),
                actor_id=actor_id,
                target_user_id=target_user_id,
                kind=kind,
                reason=validated.reason,
                details=details_for(kind, report, validated),
                created_at=now,
                target_kind=report.target_kind,
                target_id=report.target_id,
                duration_days=validated.duration_days,
                expires_at=expiry_for(validated.duration_days, now=now),
                report_id=report.id,
                internal_notes=validated.internal_notes,
            )
            await uow.insert_action(action)
            restriction, lapsed = await self._apply_restriction(uow, action, validated, now=now)
            await self._apply_content_hook(action)
            report.status = resolved_status(kind)
            report.reviewed_by = actor_id
            report.reviewed_at = now
            report.resolution_notes = validated.internal_notes
            report.action_taken = kind
            report.updated_at = now
            await uow.save_report_resolution(report)

        # The identity store is outside the ledger transaction; stamp it only once the action has committed.
        if restriction is not None and restriction.kind is RestrictionKind.SUSPENDED:
            await self.identity.set_suspension(action.target_user_id, until=action.expires_at, reason=action.reason)
        for item in lapsed:
            metrics.restriction_expired(item.kind.value)
            await self.publisher.publish(notifications.restriction_expired(item))
        metrics.inc_action(kind.value)
        metrics.observe_operation("take_action", time.perf_counter() - start)
        if restriction is not None:
            metrics.restriction_applied(restriction.kind.value)
        logger.info(
            "moderation action recorded",
            extra={"action_id": action.id, "action_type": kind.value, "report_id": report_id, "actor_id": actor_id},
        )
        if kind is ActionKind.CONTENT_APPROVED:
            return action
        return await self._notify(action)

    async def _apply_restriction(
        self,
        uow: ModerationUnitOfWork,
        action: ModerationAction,
        params: _ValidatedParams,
        *,
        now: datetime,
    ) -> tuple[Optional[UserRestriction], list[UserRestriction]]:
        """Insert the restriction the action implies.

        A row of the same kind that has lapsed but not yet been swept is
        deactivated first; only a row still in force is a conflict.
        """
        restriction_kind = restriction_kind_for(action.kind, params)
        if restriction_kind is None:
            return None, []
        lapsed = await uow.expire_restrictions(now=now, user_id=action.target_user_id, kind=restriction_kind)
        restriction = UserRestriction(
            id=str(uuid4()),
            user_id=action.target_user_id,
            kind=restriction_kind,
            reason=action.reason,
            applied_by=action.actor_id,
            created_at=now,
            updated_at=now,
            expires_at=action.expires_at,
            action_id=action.id,
        )
        await uow.insert_restriction(restriction)
        return restriction, lapsed

    async def _count_against_budget(self, actor_id: str, kind: ActionKind, *, now: datetime) -> None:
        try:
            await self.limiter.hit(actor_id, now=now)
        except RateLimitExceeded as exc:
            log_security_event(
                "action_rate_limited",
                actor_id,
                details={"retry_after_seconds": exc.retry_after_seconds, "action_type": kind.value},
            )
            raise

    async def _apply_content_hook(self, action: ModerationAction) -> None:
        if action.target_kind is None or action.target_id is None or action.target_kind is TargetKind.USER:
            return
        if action.kind is ActionKind.CONTENT_REMOVED:
            await self.content.remove(action.target_kind, action.target_id)
        elif action.kind is ActionKind.CONTENT_APPROVED:
            await self.content.approve(action.target_kind, action.target_id)

    async def _notify(self, action: ModerationAction) -> ModerationAction:
        actor_name = await self.identity.display_name(action.actor_id)
        request = notifications.action_taken(action, actor_name=actor_name)
        if not await self.publisher.publish(request):
            return action
        await self.repository.mark_notification_sent(action.id)
        return action.with_notification_sent(True)

    @staticmethod
    def _denied(actor_id: str, report_id: str, kind: ActionKind, reason: str) -> None:
        log_security_event(
            "unauthorized_action_attempt",
            actor_id,
            details={"report_id": report_id, "action_type": kind.value, "reason": reason},
        )

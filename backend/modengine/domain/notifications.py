"""Notification request contract and message templates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from modengine.domain.models import ActionKind, ModerationAction, Report, RestrictionKind, UserRestriction, WarningDetails
from modengine.obs import metrics

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    ACTION_TAKEN = "action_taken"
    ACTION_REVERSED = "action_reversed"
    RESTRICTION_EXPIRED = "restriction_expired"
    HIGH_PRIORITY_REPORT = "high_priority_report"


@dataclass(slots=True, frozen=True)
class NotificationRequest:
    recipient_id: str
    kind: NotificationKind
    reason: str
    title: str
    message: str
    action_id: Optional[str] = None
    duration_days: Optional[int] = None
    actor_name: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_fields(self) -> dict[str, str]:
        fields = {
            "recipient_id": self.recipient_id,
            "kind": self.kind.value,
            "reason": self.reason,
            "title": self.title,
            "message": self.message,
        }
        if self.action_id:
            fields["action_id"] = self.action_id
        if self.duration_days is not None:
            fields["duration_days"] = str(self.duration_days)
        if self.actor_name:
            fields["actor_name"] = self.actor_name
        for key, value in self.payload.items():
            if value is not None:
                fields[f"data.{key}"] = str(value)
        return fields


class NotificationDispatcher(Protocol):
    async def dispatch(self, request: NotificationRequest) -> bool:
        ...


class InMemoryNotificationDispatcher(NotificationDispatcher):
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[NotificationRequest] = []
        self.fail = fail

    async def dispatch(self, request: NotificationRequest) -> bool:
        if self.fail:
            return False
        self.sent.append(request)
        return True


_TAKEN_TITLES: dict[ActionKind, str] = {
    ActionKind.CONTENT_REMOVED: "Content Removed",
    ActionKind.USER_WARNED: "Warning",
    ActionKind.USER_SUSPENDED: "Account Suspended",
    ActionKind.USER_BANNED: "Account Banned",
    ActionKind.RESTRICTION_APPLIED: "Restriction Applied",
}

_REVERSED_TEXT: dict[ActionKind, tuple[str, str]] = {
    ActionKind.USER_SUSPENDED: ("Suspension Lifted", "Your account suspension has been lifted"),
    ActionKind.USER_BANNED: ("Ban Removed", "Your permanent ban has been removed"),
    ActionKind.RESTRICTION_APPLIED: ("Restriction Removed", "A restriction on your account has been removed"),
    ActionKind.USER_WARNED: ("Warning Revoked", "A warning on your account has been revoked"),
    ActionKind.CONTENT_REMOVED: (
        "Content Removal Revoked",
        "A content removal action has been revoked (note: content cannot be restored)",
    ),
}

_RESTRICTION_LABELS: dict[RestrictionKind, str] = {
    RestrictionKind.POSTING_DISABLED: "posting",
    RestrictionKind.COMMENTING_DISABLED: "commenting",
    RestrictionKind.UPLOAD_DISABLED: "uploading",
    RestrictionKind.SUSPENDED: "your account",
}


def _duration_text(action: ModerationAction) -> str:
    if action.kind is ActionKind.USER_BANNED:
        return "This is permanent."
    if action.duration_days:
        unit = "day" if action.duration_days == 1 else "days"
        return f"Duration: {action.duration_days} {unit}."
    if action.kind is ActionKind.RESTRICTION_APPLIED:
        return "This restriction has no end date."
    return ""


def action_taken(action: ModerationAction, *, actor_name: Optional[str]) -> NotificationRequest:
    title = _TAKEN_TITLES.get(action.kind, "Moderation Action")
    parts = [f"{title}.", f"Reason: {action.reason}"]
    duration = _duration_text(action)
    if duration:
        parts.append(duration)
    if isinstance(action.details, WarningDetails) and action.details.notification_message:
        parts.insert(1, action.details.notification_message)
    return NotificationRequest(
        recipient_id=action.target_user_id,
        kind=NotificationKind.ACTION_TAKEN,
        reason=action.reason,
        title=title,
        message="\n\n".join(parts),
        action_id=action.id,
        duration_days=action.duration_days,
        actor_name=actor_name,
        payload={
            "action_type": action.kind.value,
            "expires_at": action.expires_at.isoformat() if action.expires_at else None,
        },
    )


def action_reversed(action: ModerationAction, *, actor_name: Optional[str]) -> NotificationRequest:
    title, prefix = _REVERSED_TEXT.get(
        action.kind, ("Moderation Action Revoked", "A moderation action on your account has been revoked")
    )
    reason = action.reversal_reason or ""
    message = f"{prefix}.\n\nReason: {reason}\n\nOriginal action reason: {action.reason}"
    return NotificationRequest(
        recipient_id=action.target_user_id,
        kind=NotificationKind.ACTION_REVERSED,
        reason=reason,
        title=title,
        message=message,
        action_id=action.id,
        duration_days=action.duration_days,
        actor_name=actor_name,
        payload={
            "original_action_type": action.kind.value,
            "original_reason": action.reason,
            "revoked_by": action.revoked_by,
        },
    )


def restriction_expired(restriction: UserRestriction) -> NotificationRequest:
    label = _RESTRICTION_LABELS[restriction.kind]
    if restriction.kind is RestrictionKind.SUSPENDED:
        title, message = "Suspension Ended", "Your suspension has ended and access to your account is restored."
    else:
        title, message = "Access Restored", f"The restriction on {label} has expired."
    return NotificationRequest(
        recipient_id=restriction.user_id,
        kind=NotificationKind.RESTRICTION_EXPIRED,
        reason=restriction.reason,
        title=title,
        message=message,
        action_id=restriction.action_id,
        payload={"restriction_type": restriction.kind.value, "restriction_id": restriction.id},
    )


def high_priority_report(report: Report, recipient_id: str) -> NotificationRequest:
    return NotificationRequest(
        recipient_id=recipient_id,
        kind=NotificationKind.HIGH_PRIORITY_REPORT,
        reason=report.reason.value,
        title=f"P{report.priority} report needs review",
        message=f"A {report.target_kind.value} was reported for {report.reason.value.replace('_', ' ')}.",
        payload={"report_id": report.id, "priority": report.priority},
    )


class NotificationPublisher:
    """Hands requests to the dispatcher; delivery failures never abort the caller."""

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher

    async def publish(self, request: NotificationRequest) -> bool:
        try:
            delivered = await self._dispatcher.dispatch(request)
        except Exception:  # noqa: BLE001 - notification failures should not block workflow
            logger.exception(
                "failed to dispatch moderation notification",
                extra={"kind": request.kind.value, "action_id": request.action_id, "recipient": request.recipient_id},
            )
            delivered = False
        metrics.inc_notification(request.kind.value, "sent" if delivered else "failed")
        return delivered

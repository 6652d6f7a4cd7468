"""Domain entities for reports, moderation actions and user restrictions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from modengine.domain.errors import ImmutableRecordError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"

    @property
    def is_staff(self) -> bool:
        return self in (Role.MODERATOR, Role.ADMIN)


class TargetKind(str, Enum):
    POST = "post"
    COMMENT = "comment"
    TRACK = "track"
    USER = "user"


class ReportReason(str, Enum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    COPYRIGHT_VIOLATION = "copyright_violation"
    IMPERSONATION = "impersonation"
    SELF_HARM = "self_harm"
    OTHER = "other"


class ReportStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"

    @property
    def is_open(self) -> bool:
        return self in (ReportStatus.PENDING, ReportStatus.UNDER_REVIEW)


class ReportSource(str, Enum):
    USER = "user"
    MODERATOR = "moderator"


class ActionKind(str, Enum):
    CONTENT_REMOVED = "content_removed"
    CONTENT_APPROVED = "content_approved"
    USER_WARNED = "user_warned"
    USER_SUSPENDED = "user_suspended"
    USER_BANNED = "user_banned"
    RESTRICTION_APPLIED = "restriction_applied"


class RestrictionKind(str, Enum):
    POSTING_DISABLED = "posting_disabled"
    COMMENTING_DISABLED = "commenting_disabled"
    UPLOAD_DISABLED = "upload_disabled"
    SUSPENDED = "suspended"


class ProtectedAction(str, Enum):
    POST = "post"
    COMMENT = "comment"
    UPLOAD = "upload"
    ANY = "any"


class ActionState(str, Enum):
    ACTIVE = "active"
    REVERSED = "reversed"
    EXPIRED = "expired"


RESTRICTING_ACTIONS = frozenset(
    {ActionKind.USER_SUSPENDED, ActionKind.USER_BANNED, ActionKind.RESTRICTION_APPLIED}
)


@dataclass(slots=True)
class Report:
    id: str
    reporter_id: Optional[str]
    reported_user_id: Optional[str]
    target_kind: TargetKind
    target_id: str
    reason: ReportReason
    description: Optional[str]
    status: ReportStatus
    priority: int
    moderator_flagged: bool
    created_at: datetime
    updated_at: datetime
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    action_taken: Optional[ActionKind] = None

    @property
    def source(self) -> ReportSource:
        return ReportSource.MODERATOR if self.moderator_flagged else ReportSource.USER


@dataclass(slots=True, frozen=True)
class ContentActionDetails:
    """Extras for content_removed / content_approved."""

    target_kind: TargetKind
    target_id: str


@dataclass(slots=True, frozen=True)
class WarningDetails:
    notification_message: Optional[str] = None


@dataclass(slots=True, frozen=True)
class SuspensionDetails:
    duration_days: Optional[int]
    permanent: bool


@dataclass(slots=True, frozen=True)
class RestrictionDetails:
    restriction_kind: RestrictionKind
    duration_days: Optional[int]


ActionDetails = Union[ContentActionDetails, WarningDetails, SuspensionDetails, RestrictionDetails]


@dataclass(slots=True, frozen=True)
class ModerationAction:
    """Ledger entry for a single enforcement decision.

    Everything except the three revocation fields is fixed at creation; the
    revocation fields are written exactly once via :meth:`revoked`.
    """

    id: str
    actor_id: str
    target_user_id: str
    kind: ActionKind
    reason: str
    details: ActionDetails
    created_at: datetime
    target_kind: Optional[TargetKind] = None
    target_id: Optional[str] = None
    duration_days: Optional[int] = None
    expires_at: Optional[datetime] = None
    report_id: Optional[str] = None
    internal_notes: Optional[str] = None
    notification_sent: bool = False
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    reversal_reason: Optional[str] = None

    @property
    def is_reversed(self) -> bool:
        return self.revoked_at is not None

    @property
    def is_self_reversal(self) -> bool:
        return self.revoked_by is not None and self.revoked_by == self.actor_id

    @property
    def time_to_reversal(self) -> Optional[timedelta]:
        if self.revoked_at is None:
            return None
        return self.revoked_at - self.created_at

    def state(self, *, now: Optional[datetime] = None) -> ActionState:
        if self.revoked_at is not None:
            return ActionState.REVERSED
        now = now or utcnow()
        if self.expires_at is not None and self.expires_at <= now:
            return ActionState.EXPIRED
        return ActionState.ACTIVE

    def revoked(self, *, revoked_at: datetime, revoked_by: str, reason: str) -> "ModerationAction":
        if self.revoked_at is not None or self.revoked_by is not None:
            raise ImmutableRecordError(self.id)
        return replace(self, revoked_at=revoked_at, revoked_by=revoked_by, reversal_reason=reason)

    def with_notification_sent(self, sent: bool) -> "ModerationAction":
        return replace(self, notification_sent=sent)


@dataclass(slots=True)
class UserRestriction:
    id: str
    user_id: str
    kind: RestrictionKind
    reason: str
    applied_by: str
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None
    active: bool = True
    action_id: Optional[str] = None

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None

    def is_in_force(self, *, now: Optional[datetime] = None) -> bool:
        if not self.active:
            return False
        now = now or utcnow()
        return self.expires_at is None or self.expires_at > now

    def is_lapsed(self, now: datetime) -> bool:
        """Still flagged active but past its expiry; the sweeper has not reached it yet."""
        return self.active and self.expires_at is not None and self.expires_at <= now


@dataclass(slots=True)
class UserStatus:
    user_id: str
    restrictions: list[UserRestriction] = field(default_factory=list)
    history: list[ModerationAction] = field(default_factory=list)
    as_of: Optional[datetime] = None

    @property
    def is_suspended(self) -> bool:
        return any(
            item.kind is RestrictionKind.SUSPENDED and item.is_in_force(now=self.as_of) for item in self.restrictions
        )

    @property
    def suspended_until(self) -> Optional[datetime]:
        """Latest suspension expiry; ``None`` when permanent or not suspended."""
        expiries = [
            item.expires_at
            for item in self.restrictions
            if item.kind is RestrictionKind.SUSPENDED and item.is_in_force(now=self.as_of)
        ]
        if not expiries or any(value is None for value in expiries):
            return None
        return max(value for value in expiries if value is not None)

"""Error taxonomy raised by the moderation engine."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class ModerationError(Exception):
    """Base class for moderation engine failures."""

    code = "moderation_error"
    retryable = False

    def __init__(self, message: Optional[str] = None, *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.code
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(self.message)


class ValidationError(ModerationError):
    code = "validation_error"


class EmptyDescription(ValidationError):
    code = "description_required"

    def __init__(self) -> None:
        super().__init__('A description is required when the reason is "other"')


class EmptyNotes(ValidationError):
    code = "internal_notes_required"

    def __init__(self) -> None:
        super().__init__("Internal notes are required for moderator flags")


class EmptyReason(ValidationError):
    code = "reason_required"

    def __init__(self) -> None:
        super().__init__("A reason is required")


class InvalidPriority(ValidationError):
    code = "invalid_priority"

    def __init__(self, priority: int) -> None:
        super().__init__("Priority must be between 1 and 5", details={"priority": priority})


class InvalidDuration(ValidationError):
    code = "invalid_duration"


class TextTooLong(ValidationError):
    code = "text_too_long"

    def __init__(self, field: str, limit: int) -> None:
        super().__init__(f"{field} must be {limit} characters or fewer", details={"field": field, "limit": limit})


class SelfReport(ValidationError):
    code = "self_report"


class TargetNotReportable(ValidationError):
    code = "target_not_reportable"

    def __init__(self) -> None:
        super().__init__("This account cannot be reported")


class DuplicateReport(ValidationError):
    code = "duplicate_report"


class RestrictionConflict(ValidationError):
    code = "restriction_conflict"


class RateLimitExceeded(ModerationError):
    code = "rate_limit_exceeded"

    def __init__(self, retry_after_seconds: int, *, limit: int, window_seconds: int) -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            f"Limit of {limit} per {window_seconds // 3600 or 1}h reached; retry in {self.retry_after_seconds} seconds",
            details={"retry_after_seconds": self.retry_after_seconds, "limit": limit},
        )


class Unauthorized(ModerationError):
    """Role check failure. The message never reveals whether the target exists."""

    code = "not_permitted"

    def __init__(self, reason: str = "not_permitted") -> None:
        self.reason = reason
        super().__init__("not permitted")


class NotFound(ModerationError):
    code = "not_found"


class AlreadyResolved(ModerationError):
    code = "already_resolved"

    def __init__(self, report_id: str) -> None:
        super().__init__("This report has already been resolved", details={"report_id": report_id})


class AlreadyReversed(ModerationError):
    code = "already_reversed"

    def __init__(self, action_id: str) -> None:
        super().__init__("This action has already been reversed", details={"action_id": action_id})


class ImmutableRecordError(ModerationError):
    """Attempted to rewrite revocation fields or delete a ledger row."""

    code = "immutable_record"

    def __init__(self, action_id: str) -> None:
        super().__init__("Reversal records are immutable", details={"action_id": action_id})


class StoreUnavailable(ModerationError):
    code = "store_unavailable"
    retryable = True

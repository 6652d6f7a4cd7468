"""Restriction oracle: decides whether a user may perform a protected action."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from modengine.domain.models import ProtectedAction, RestrictionKind, UserRestriction, utcnow

RESTRICTION_FOR_ACTION: dict[ProtectedAction, RestrictionKind] = {
    ProtectedAction.POST: RestrictionKind.POSTING_DISABLED,
    ProtectedAction.COMMENT: RestrictionKind.COMMENTING_DISABLED,
    ProtectedAction.UPLOAD: RestrictionKind.UPLOAD_DISABLED,
}

DENIAL_MESSAGES: dict[RestrictionKind, str] = {
    RestrictionKind.SUSPENDED: "Your account is suspended.",
    RestrictionKind.POSTING_DISABLED: "Posting has been disabled on your account.",
    RestrictionKind.COMMENTING_DISABLED: "Commenting has been disabled on your account.",
    RestrictionKind.UPLOAD_DISABLED: "Uploading has been disabled on your account.",
}


class RestrictionReader(Protocol):
    async def list_restrictions(self, user_id: str, *, active_only: bool = True) -> Sequence[UserRestriction]:
        ...


@dataclass(slots=True, frozen=True)
class RestrictionCheck:
    allowed: bool
    restriction: Optional[UserRestriction] = None

    @property
    def kind(self) -> Optional[RestrictionKind]:
        return self.restriction.kind if self.restriction else None

    @property
    def message(self) -> Optional[str]:
        return DENIAL_MESSAGES[self.restriction.kind] if self.restriction else None


def denying_restriction(
    restrictions: Iterable[UserRestriction],
    action: ProtectedAction,
    *,
    now: datetime,
) -> Optional[UserRestriction]:
    in_force = [item for item in restrictions if item.is_in_force(now=now)]
    for item in in_force:
        if item.kind is RestrictionKind.SUSPENDED:
            return item
    wanted = RESTRICTION_FOR_ACTION.get(action)
    if wanted is None:
        return None
    for item in in_force:
        if item.kind is wanted:
            return item
    return None


def is_allowed(restrictions: Iterable[UserRestriction], action: ProtectedAction, *, now: datetime) -> bool:
    return denying_restriction(restrictions, action, now=now) is None


class RestrictionOracle:
    """Read-only evaluator over one consistent snapshot of a user's restrictions."""

    def __init__(self, reader: RestrictionReader) -> None:
        self._reader = reader

    async def check(self, user_id: str, action: ProtectedAction, *, now: datetime | None = None) -> RestrictionCheck:
        now = now or utcnow()
        snapshot = await self._reader.list_restrictions(user_id, active_only=True)
        restriction = denying_restriction(snapshot, action, now=now)
        return RestrictionCheck(allowed=restriction is None, restriction=restriction)

    async def is_allowed(self, user_id: str, action: ProtectedAction, *, now: datetime | None = None) -> bool:
        result = await self.check(user_id, action, now=now)
        return result.allowed

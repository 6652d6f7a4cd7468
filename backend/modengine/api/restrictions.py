"""Restriction check and user status endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from modengine.api.actions import ActionOut, get_audit_dep
from modengine.api.deps import Actor, get_actor, require_staff
from modengine.domain.audit_metrics import AuditMetricsService
from modengine.domain.container import get_oracle
from modengine.domain.errors import Unauthorized
from modengine.domain.models import ProtectedAction, RestrictionKind, UserRestriction
from modengine.domain.restrictions import RestrictionOracle
from modengine.obs.audit import log_security_event

router = APIRouter(prefix="/api/mod/v1", tags=["moderation-restrictions"])


class RestrictionOut(BaseModel):
    id: str
    user_id: str
    restriction_type: RestrictionKind
    reason: str
    applied_by: str
    action_id: str | None
    expires_at: datetime | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, restriction: UserRestriction) -> "RestrictionOut":
        return cls(
            id=restriction.id,
            user_id=restriction.user_id,
            restriction_type=restriction.kind,
            reason=restriction.reason,
            applied_by=restriction.applied_by,
            action_id=restriction.action_id,
            expires_at=restriction.expires_at,
            is_active=restriction.active,
            created_at=restriction.created_at,
            updated_at=restriction.updated_at,
        )


class RestrictionCheckOut(BaseModel):
    user_id: str
    action: ProtectedAction
    allowed: bool
    restriction_type: RestrictionKind | None = None
    message: str | None = None
    expires_at: datetime | None = None


class UserStatusOut(BaseModel):
    user_id: str
    is_suspended: bool
    suspended_until: datetime | None
    restrictions: list[RestrictionOut]
    history: list[ActionOut]


def get_oracle_dep() -> RestrictionOracle:
    return get_oracle()


@router.get("/restrictions/check", response_model=RestrictionCheckOut)
async def check_restriction(
    *,
    user_id: str = Query(..., min_length=1),
    action: ProtectedAction = Query(...),
    oracle: RestrictionOracle = Depends(get_oracle_dep),
    actor: Actor = Depends(get_actor),
) -> RestrictionCheckOut:
    if user_id != actor.id and not actor.role.is_staff:
        log_security_event("unauthorized_restriction_lookup", actor.id, details={"reason": "moderator_required"})
        raise Unauthorized("moderator_required")
    result = await oracle.check(user_id, action)
    return RestrictionCheckOut(
        user_id=user_id,
        action=action,
        allowed=result.allowed,
        restriction_type=result.kind,
        message=result.message,
        expires_at=result.restriction.expires_at if result.restriction else None,
    )


@router.get("/users/{user_id}/status", response_model=UserStatusOut)
async def user_status(
    user_id: str,
    history_limit: int = Query(default=10, ge=1, le=100),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> UserStatusOut:
    state = await service.user_status(user_id, history_limit=history_limit)
    return UserStatusOut(
        user_id=state.user_id,
        is_suspended=state.is_suspended,
        suspended_until=state.suspended_until,
        restrictions=[RestrictionOut.from_domain(item) for item in state.restrictions],
        history=[ActionOut.from_domain(item) for item in state.history],
    )

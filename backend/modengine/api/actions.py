"""Action execution, reversal and action log endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from modengine.api.deps import Actor, as_utc, get_actor, require_staff
from modengine.domain.audit_metrics import AuditMetricsService
from modengine.domain.container import get_audit_service, get_executor, get_reversal_service
from modengine.domain.executor import ActionExecutor, ActionParams
from modengine.domain.models import ActionKind, ActionState, ModerationAction, RestrictionKind
from modengine.domain.repository import ActionFilters
from modengine.domain.reversal import ReversalService

router = APIRouter(prefix="/api/mod/v1", tags=["moderation-actions"])


class TakeActionIn(BaseModel):
    action_type: ActionKind
    reason: str
    duration_days: int | None = None
    restriction_type: RestrictionKind | None = None
    internal_notes: str | None = None
    notification_message: str | None = None


class ReverseIn(BaseModel):
    reason: str


class ActionOut(BaseModel):
    id: str
    actor_id: str
    target_user_id: str
    action_type: ActionKind
    reason: str
    details: dict[str, Any]
    target_kind: str | None
    target_id: str | None
    duration_days: int | None
    expires_at: datetime | None
    report_id: str | None
    internal_notes: str | None
    notification_sent: bool
    created_at: datetime
    revoked_at: datetime | None
    revoked_by: str | None
    reversal_reason: str | None
    state: ActionState
    is_self_reversal: bool

    @classmethod
    def from_domain(cls, action: ModerationAction) -> "ActionOut":
        return cls(
            id=action.id,
            actor_id=action.actor_id,
            target_user_id=action.target_user_id,
            action_type=action.kind,
            reason=action.reason,
            details=asdict(action.details),
            target_kind=action.target_kind.value if action.target_kind else None,
            target_id=action.target_id,
            duration_days=action.duration_days,
            expires_at=action.expires_at,
            report_id=action.report_id,
            internal_notes=action.internal_notes,
            notification_sent=action.notification_sent,
            created_at=action.created_at,
            revoked_at=action.revoked_at,
            revoked_by=action.revoked_by,
            reversal_reason=action.reversal_reason,
            state=action.state(),
            is_self_reversal=action.is_self_reversal,
        )


def get_executor_dep() -> ActionExecutor:
    return get_executor()


def get_reversal_dep() -> ReversalService:
    return get_reversal_service()


def get_audit_dep() -> AuditMetricsService:
    return get_audit_service()


@router.post("/reports/{report_id}/actions", response_model=ActionOut, status_code=status.HTTP_201_CREATED)
async def take_action(
    report_id: str,
    payload: TakeActionIn,
    executor: ActionExecutor = Depends(get_executor_dep),
    actor: Actor = Depends(get_actor),
) -> ActionOut:
    action = await executor.take_action(
        actor_id=actor.id,
        report_id=report_id,
        kind=payload.action_type,
        params=ActionParams(
            reason=payload.reason,
            duration_days=payload.duration_days,
            restriction_kind=payload.restriction_type,
            internal_notes=payload.internal_notes,
            notification_message=payload.notification_message,
        ),
    )
    return ActionOut.from_domain(action)


@router.post("/actions/{action_id}/reverse", response_model=ActionOut)
async def reverse_action(
    action_id: str,
    payload: ReverseIn,
    service: ReversalService = Depends(get_reversal_dep),
    actor: Actor = Depends(get_actor),
) -> ActionOut:
    action = await service.reverse_action(actor_id=actor.id, action_id=action_id, reason=payload.reason)
    return ActionOut.from_domain(action)


@router.get("/actions", response_model=list[ActionOut])
async def list_actions(
    *,
    action_type: Optional[ActionKind] = Query(default=None),
    actor_id: Optional[str] = Query(default=None),
    target_user_id: Optional[str] = Query(default=None),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    reversed_only: bool = Query(default=False),
    non_reversed_only: bool = Query(default=False),
    expired_only: bool = Query(default=False),
    non_expired_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=1000),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> list[ActionOut]:
    filters = ActionFilters(
        kind=action_type,
        actor_id=actor_id,
        target_user_id=target_user_id,
        start=as_utc(start),
        end=as_utc(end),
        reversed_only=reversed_only,
        non_reversed_only=non_reversed_only,
        expired_only=expired_only,
        non_expired_only=non_expired_only,
        limit=limit,
    )
    return [ActionOut.from_domain(item) for item in await service.list_actions(filters)]

"""Read-only audit and metrics queries over the action ledger."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from modengine.api.actions import ActionOut, get_audit_dep
from modengine.api.deps import Actor, as_utc, require_staff
from modengine.domain.audit_metrics import AuditMetricsService, GroupBy
from modengine.domain.models import ActionKind, utcnow

router = APIRouter(prefix="/api/mod/v1/audit", tags=["moderation-audit"])

DEFAULT_RANGE_DAYS = 30


class RateBucketOut(BaseModel):
    actions: int
    reversals: int
    reversal_rate: float


class ReversalRateOut(BaseModel):
    start: datetime
    end: datetime
    actions: int
    reversals: int
    reversal_rate: float
    group_by: Optional[GroupBy] = None
    groups: dict[str, RateBucketOut] = {}


class TimeToReversalOut(BaseModel):
    action_type: ActionKind
    count: int
    mean_hours: float
    median_hours: float


class ModeratorStatsOut(BaseModel):
    actor_id: str
    actions_taken: int
    reversals_received: int
    reversal_rate: float
    self_reversals: int


class SlaRowOut(BaseModel):
    priority: int
    target_hours: int
    total: int
    within_sla: int
    compliance_rate: int


class ReversalOut(BaseModel):
    action: ActionOut
    revoked_by: str
    reason: Optional[str]
    time_to_reversal_hours: float
    is_self_reversal: bool


def _window(start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
    end = as_utc(end) or utcnow()
    start = as_utc(start) or end - timedelta(days=DEFAULT_RANGE_DAYS)
    return start, end


@router.get("/reversal-rate", response_model=ReversalRateOut)
async def reversal_rate(
    *,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    group_by: Optional[GroupBy] = Query(default=None),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> ReversalRateOut:
    window_start, window_end = _window(start, end)
    report = await service.reversal_rate(window_start, window_end, group_by)
    return ReversalRateOut(
        start=report.start,
        end=report.end,
        actions=report.total.actions,
        reversals=report.total.reversals,
        reversal_rate=report.rate,
        group_by=report.group_by,
        groups={
            key: RateBucketOut(actions=bucket.actions, reversals=bucket.reversals, reversal_rate=bucket.rate)
            for key, bucket in report.groups.items()
        },
    )


@router.get("/time-to-reversal", response_model=list[TimeToReversalOut])
async def time_to_reversal(
    *,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> list[TimeToReversalOut]:
    rows = await service.time_to_reversal(*_window(start, end))
    return [
        TimeToReversalOut(action_type=row.kind, count=row.count, mean_hours=row.mean_hours, median_hours=row.median_hours)
        for row in rows
    ]


@router.get("/moderators/{actor_id}", response_model=ModeratorStatsOut)
async def moderator_stats(
    actor_id: str,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> ModeratorStatsOut:
    stats = await service.moderator_stats(actor_id, *_window(start, end))
    return ModeratorStatsOut(
        actor_id=stats.actor_id,
        actions_taken=stats.actions_taken,
        reversals_received=stats.reversals_received,
        reversal_rate=stats.reversal_rate,
        self_reversals=stats.self_reversals,
    )


@router.get("/sla", response_model=list[SlaRowOut])
async def sla_compliance(
    *,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> list[SlaRowOut]:
    rows = await service.sla_compliance(*_window(start, end))
    return [
        SlaRowOut(
            priority=row.priority,
            target_hours=row.target_hours,
            total=row.total,
            within_sla=row.within_sla,
            compliance_rate=row.compliance_rate,
        )
        for row in rows
    ]


@router.get("/reversals", response_model=list[ReversalOut])
async def reversal_history(
    *,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    action_type: Optional[ActionKind] = Query(default=None),
    actor_id: Optional[str] = Query(default=None),
    revoked_by: Optional[str] = Query(default=None),
    service: AuditMetricsService = Depends(get_audit_dep),
    _: Actor = Depends(require_staff),
) -> list[ReversalOut]:
    window_start, window_end = _window(start, end)
    records = await service.reversal_history(
        window_start,
        window_end,
        kind=action_type,
        actor_id=actor_id,
        revoked_by=revoked_by,
    )
    return [
        ReversalOut(
            action=ActionOut.from_domain(record.action),
            revoked_by=record.revoked_by,
            reason=record.reason,
            time_to_reversal_hours=round(record.time_to_reversal.total_seconds() / 3600, 2),
            is_self_reversal=record.is_self_reversal,
        )
        for record in records
    ]

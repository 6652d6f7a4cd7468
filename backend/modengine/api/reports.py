"""Report intake and review queue endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from modengine.api.deps import Actor, require_staff
from modengine.domain.container import get_intake_service, get_queue
from modengine.domain.intake import ReportIntakeService
from modengine.domain.models import Report, ReportReason, ReportSource, ReportStatus, TargetKind
from modengine.domain.queue import ModerationQueue, QueueEntry
from modengine.domain.repository import QueueFilters
from modengine.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/api/mod/v1", tags=["moderation-reports"])


class ReportIn(BaseModel):
    target_kind: TargetKind
    target_id: str = Field(..., min_length=1)
    reason: ReportReason
    description: str | None = None


class FlagIn(BaseModel):
    target_kind: TargetKind
    target_id: str = Field(..., min_length=1)
    reason: ReportReason
    internal_notes: str | None = None
    priority: int | None = None


class ReportOut(BaseModel):
    id: str
    reporter_id: str | None
    reported_user_id: str | None
    target_kind: TargetKind
    target_id: str
    reason: ReportReason
    description: str | None
    status: ReportStatus
    priority: int
    moderator_flagged: bool
    source: ReportSource
    reviewed_by: str | None
    reviewed_at: datetime | None
    resolution_notes: str | None
    action_taken: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, report: Report) -> "ReportOut":
        return cls(
            id=report.id,
            reporter_id=report.reporter_id,
            reported_user_id=report.reported_user_id,
            target_kind=report.target_kind,
            target_id=report.target_id,
            reason=report.reason,
            description=report.description,
            status=report.status,
            priority=report.priority,
            moderator_flagged=report.moderator_flagged,
            source=report.source,
            reviewed_by=report.reviewed_by,
            reviewed_at=report.reviewed_at,
            resolution_notes=report.resolution_notes,
            action_taken=report.action_taken.value if report.action_taken else None,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )


class QueueItemOut(ReportOut):
    previous_reversals: int = 0

    @classmethod
    def from_entry(cls, entry: QueueEntry) -> "QueueItemOut":
        base = ReportOut.from_domain(entry.report).model_dump()
        return cls(**base, previous_reversals=entry.previous_reversals)


def get_intake_dep() -> ReportIntakeService:
    return get_intake_service()


def get_queue_dep() -> ModerationQueue:
    return get_queue()


@router.post("/reports", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
async def submit_report(
    payload: ReportIn,
    service: ReportIntakeService = Depends(get_intake_dep),
    reporter: AuthenticatedUser = Depends(get_current_user),
) -> ReportOut:
    report = await service.submit_report(
        reporter_id=reporter.id,
        target_kind=payload.target_kind,
        target_id=payload.target_id,
        reason=payload.reason,
        description=payload.description,
    )
    return ReportOut.from_domain(report)


@router.post("/reports/flag", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
async def flag_content(
    payload: FlagIn,
    service: ReportIntakeService = Depends(get_intake_dep),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ReportOut:
    # The service performs the role check itself so the attempt is audited.
    report = await service.moderator_flag(
        moderator_id=user.id,
        target_kind=payload.target_kind,
        target_id=payload.target_id,
        reason=payload.reason,
        internal_notes=payload.internal_notes,
        priority=payload.priority,
    )
    return ReportOut.from_domain(report)


@router.get("/queue", response_model=list[QueueItemOut])
async def list_queue(
    *,
    status_filter: Optional[ReportStatus] = Query(default=None, alias="status"),
    priority: Optional[int] = Query(default=None, ge=1, le=5),
    moderator_flagged: bool = Query(default=False),
    source: Optional[ReportSource] = Query(default=None),
    queue: ModerationQueue = Depends(get_queue_dep),
    _: Actor = Depends(require_staff),
) -> list[QueueItemOut]:
    filters = QueueFilters(
        status=status_filter,
        priority=priority,
        moderator_flagged=moderator_flagged or None,
        source=source,
    )
    return [QueueItemOut.from_entry(entry) for entry in await queue.entries(filters)]

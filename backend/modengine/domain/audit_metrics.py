"""Read-only aggregates over the moderation ledger."""

from __future__ import annotations

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from modengine.domain.models import ActionKind, ModerationAction, ReportStatus, UserStatus, utcnow
from modengine.domain.repository import ActionFilters, ModerationRepository

SLA_TARGET_HOURS: dict[int, int] = {1: 2, 2: 8, 3: 24, 4: 48, 5: 72}
DEFAULT_HISTORY_LIMIT = 10


class GroupBy(str, Enum):
    ACTION_KIND = "action_kind"
    PRIORITY = "priority"
    ACTOR = "actor"


def time_to_reversal(action: ModerationAction) -> Optional[timedelta]:
    return action.time_to_reversal


def percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def _in_range(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    return value is not None and start <= value <= end


@dataclass(slots=True)
class RateBucket:
    actions: int = 0
    reversals: int = 0

    @property
    def rate(self) -> float:
        return percentage(self.reversals, self.actions)


@dataclass(slots=True)
class ReversalRateReport:
    start: datetime
    end: datetime
    total: RateBucket
    groups: dict[str, RateBucket] = field(default_factory=dict)
    group_by: Optional[GroupBy] = None

    @property
    def rate(self) -> float:
        return self.total.rate


@dataclass(slots=True, frozen=True)
class ReversalTimeStats:
    kind: ActionKind
    count: int
    mean_hours: float
    median_hours: float


@dataclass(slots=True, frozen=True)
class ModeratorStats:
    actor_id: str
    actions_taken: int
    reversals_received: int
    reversal_rate: float
    self_reversals: int = 0


@dataclass(slots=True, frozen=True)
class SlaRow:
    priority: int
    target_hours: int
    total: int
    within_sla: int
    compliance_rate: int


@dataclass(slots=True, frozen=True)
class ReversalRecord:
    action: ModerationAction
    revoked_by: str
    reason: Optional[str]
    time_to_reversal: timedelta
    is_self_reversal: bool


def reversal_time_stats(actions: Iterable[ModerationAction]) -> list[ReversalTimeStats]:
    by_kind: dict[ActionKind, list[float]] = defaultdict(list)
    for action in actions:
        delta = action.time_to_reversal
        if delta is None:
            continue
        by_kind[action.kind].append(delta.total_seconds() / 3600)
    rows = []
    for kind in ActionKind:
        values = by_kind.get(kind)
        if not values:
            continue
        rows.append(
            ReversalTimeStats(
                kind=kind,
                count=len(values),
                mean_hours=round(statistics.fmean(values), 2),
                median_hours=round(statistics.median(values), 2),
            )
        )
    return rows


@dataclass
class AuditMetricsService:
    repository: ModerationRepository
    clock: Callable[[], datetime] = utcnow

    async def list_actions(self, filters: Optional[ActionFilters] = None) -> list[ModerationAction]:
        return await self.repository.list_actions(filters or ActionFilters())

    async def reversal_rate(
        self,
        start: datetime,
        end: datetime,
        group_by: Optional[GroupBy] = None,
    ) -> ReversalRateReport:
        created = await self.repository.list_actions(ActionFilters(start=start, end=end))
        reversed_actions = [
            action
            for action in await self.repository.list_actions(ActionFilters(reversed_only=True))
            if _in_range(action.revoked_at, start, end)
        ]
        report = ReversalRateReport(
            start=start,
            end=end,
            total=RateBucket(actions=len(created), reversals=len(reversed_actions)),
            group_by=group_by,
        )
        if group_by is None:
            return report
        priorities = await self._priorities(created + reversed_actions) if group_by is GroupBy.PRIORITY else {}
        for action in created:
            key = self._group_key(action, group_by, priorities)
            report.groups.setdefault(key, RateBucket()).actions += 1
        for action in reversed_actions:
            key = self._group_key(action, group_by, priorities)
            report.groups.setdefault(key, RateBucket()).reversals += 1
        return report

    async def time_to_reversal(self, start: datetime, end: datetime) -> list[ReversalTimeStats]:
        actions = await self.repository.list_actions(ActionFilters(reversed_only=True))
        return reversal_time_stats(item for item in actions if _in_range(item.revoked_at, start, end))

    async def moderator_stats(self, actor_id: str, start: datetime, end: datetime) -> ModeratorStats:
        actions = await self.repository.list_actions(ActionFilters(actor_id=actor_id, start=start, end=end))
        reversed_actions = [item for item in actions if item.is_reversed]
        return ModeratorStats(
            actor_id=actor_id,
            actions_taken=len(actions),
            reversals_received=len(reversed_actions),
            reversal_rate=percentage(len(reversed_actions), len(actions)),
            self_reversals=sum(1 for item in reversed_actions if item.is_self_reversal),
        )

    async def sla_compliance(self, start: datetime, end: datetime) -> list[SlaRow]:
        reports = await self.repository.list_reports(start=start, end=end)
        totals: dict[int, int] = defaultdict(int)
        within: dict[int, int] = defaultdict(int)
        for report in reports:
            if report.status not in (ReportStatus.RESOLVED, ReportStatus.DISMISSED) or report.reviewed_at is None:
                continue
            totals[report.priority] += 1
            target = timedelta(hours=SLA_TARGET_HOURS[report.priority])
            if report.reviewed_at - report.created_at <= target:
                within[report.priority] += 1
        return [
            SlaRow(
                priority=priority,
                target_hours=hours,
                total=totals[priority],
                within_sla=within[priority],
                compliance_rate=round(within[priority] / totals[priority] * 100) if totals[priority] else 0,
            )
            for priority, hours in SLA_TARGET_HOURS.items()
        ]

    async def reversal_history(
        self,
        start: datetime,
        end: datetime,
        *,
        kind: Optional[ActionKind] = None,
        actor_id: Optional[str] = None,
        revoked_by: Optional[str] = None,
    ) -> list[ReversalRecord]:
        actions = await self.repository.list_actions(ActionFilters(kind=kind, actor_id=actor_id, reversed_only=True))
        records = []
        for action in actions:
            if not _in_range(action.revoked_at, start, end):
                continue
            if revoked_by is not None and action.revoked_by != revoked_by:
                continue
            assert action.revoked_by is not None and action.time_to_reversal is not None
            records.append(
                ReversalRecord(
                    action=action,
                    revoked_by=action.revoked_by,
                    reason=action.reversal_reason,
                    time_to_reversal=action.time_to_reversal,
                    is_self_reversal=action.is_self_reversal,
                )
            )
        records.sort(key=lambda item: item.action.revoked_at, reverse=True)
        return records

    async def user_status(self, user_id: str, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> UserStatus:
        restrictions = await self.repository.list_restrictions(user_id, active_only=True)
        history = await self.repository.list_actions(ActionFilters(target_user_id=user_id, limit=history_limit))
        return UserStatus(user_id=user_id, restrictions=restrictions, history=history, as_of=self.clock())

    async def _priorities(self, actions: Iterable[ModerationAction]) -> dict[str, int]:
        priorities: dict[str, int] = {}
        for action in actions:
            if action.report_id is None or action.report_id in priorities:
                continue
            report = await self.repository.get_report(action.report_id)
            if report is not None:
                priorities[action.report_id] = report.priority
        return priorities

    @staticmethod
    def _group_key(action: ModerationAction, group_by: GroupBy, priorities: dict[str, int]) -> str:
        if group_by is GroupBy.ACTION_KIND:
            return action.kind.value
        if group_by is GroupBy.ACTOR:
            return action.actor_id
        priority = priorities.get(action.report_id or "")
        return str(priority) if priority is not None else "unknown"

"""Persistence contract for the moderation ledger.

The contract has no delete operation for any entity. Mutations
happen inside :meth:`ModerationRepository.transaction`, which yields a unit of
work whose writes either all commit or all roll back.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, Protocol, Sequence

from modengine.domain.errors import AlreadyReversed, ImmutableRecordError, NotFound, RestrictionConflict
from modengine.domain.models import (
    ActionKind,
    ActionState,
    ModerationAction,
    Report,
    ReportSource,
    ReportStatus,
    RestrictionKind,
    TargetKind,
    UserRestriction,
    utcnow,
)


@dataclass(slots=True, frozen=True)
class QueueFilters:
    status: Optional[ReportStatus] = None
    priority: Optional[int] = None
    moderator_flagged: Optional[bool] = None
    source: Optional[ReportSource] = None

    def statuses(self) -> tuple[ReportStatus, ...]:
        if self.status is not None:
            return (self.status,)
        return (ReportStatus.PENDING, ReportStatus.UNDER_REVIEW)

    def flagged(self) -> Optional[bool]:
        if self.moderator_flagged:
            return True
        if self.source is not None:
            return self.source is ReportSource.MODERATOR
        return None

    def matches(self, report: Report) -> bool:
        if report.status not in self.statuses():
            return False
        if self.priority is not None and report.priority != self.priority:
            return False
        flagged = self.flagged()
        if flagged is not None and report.moderator_flagged is not flagged:
            return False
        return True


@dataclass(slots=True, frozen=True)
class ActionFilters:
    kind: Optional[ActionKind] = None
    actor_id: Optional[str] = None
    target_user_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    reversed_only: bool = False
    non_reversed_only: bool = False
    expired_only: bool = False
    non_expired_only: bool = False
    limit: Optional[int] = None

    def matches(self, action: ModerationAction, *, now: datetime) -> bool:
        if self.kind is not None and action.kind is not self.kind:
            return False
        if self.actor_id is not None and action.actor_id != self.actor_id:
            return False
        if self.target_user_id is not None and action.target_user_id != self.target_user_id:
            return False
        if self.start is not None and action.created_at < self.start:
            return False
        if self.end is not None and action.created_at > self.end:
            return False
        if self.reversed_only and not action.is_reversed:
            return False
        if self.non_reversed_only and action.is_reversed:
            return False
        state = action.state(now=now)
        if self.expired_only and state is not ActionState.EXPIRED:
            return False
        if self.non_expired_only and state is ActionState.EXPIRED:
            return False
        return True


class ModerationUnitOfWork(Protocol):
    async def get_report(self, report_id: str, *, for_update: bool = False) -> Optional[Report]:
        ...

    async def insert_report(self, report: Report) -> Report:
        ...

    async def save_report_resolution(self, report: Report) -> None:
        ...

    async def get_action(self, action_id: str, *, for_update: bool = False) -> Optional[ModerationAction]:
        ...

    async def insert_action(self, action: ModerationAction) -> ModerationAction:
        ...

    async def record_reversal(
        self,
        action_id: str,
        *,
        revoked_at: datetime,
        revoked_by: str,
        reason: str,
    ) -> ModerationAction:
        """Set the revocation fields iff they are unset; raise ``AlreadyReversed`` otherwise."""
        ...

    async def active_restriction(self, user_id: str, kind: RestrictionKind) -> Optional[UserRestriction]:
        ...

    async def insert_restriction(self, restriction: UserRestriction) -> UserRestriction:
        ...

    async def deactivate_restrictions_for_action(self, action_id: str, *, now: datetime) -> list[UserRestriction]:
        ...

    async def expire_restrictions(
        self,
        *,
        now: datetime,
        user_id: Optional[str] = None,
        kind: Optional[RestrictionKind] = None,
    ) -> list[UserRestriction]:
        """Flip ``active`` off for rows with ``active`` and ``expires_at <= now`` and return them.

        ``user_id`` and ``kind`` narrow the sweep to one user and restriction type.
        """
        ...


class ModerationRepository(Protocol):
    def transaction(self) -> "AsyncIterator[ModerationUnitOfWork]":
        ...

    async def get_report(self, report_id: str) -> Optional[Report]:
        ...

    async def get_action(self, action_id: str) -> Optional[ModerationAction]:
        ...

    async def list_queue(self, filters: QueueFilters) -> list[Report]:
        ...

    async def list_reports(self, *, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Report]:
        ...

    async def find_recent_report(
        self,
        reporter_id: str,
        target_kind: TargetKind,
        target_id: str,
        *,
        since: datetime,
    ) -> Optional[Report]:
        ...

    async def list_actions(self, filters: ActionFilters) -> list[ModerationAction]:
        ...

    async def list_restrictions(self, user_id: str, *, active_only: bool = True) -> list[UserRestriction]:
        ...

    async def mark_notification_sent(self, action_id: str) -> None:
        ...


class _MemoryState:
    def __init__(self) -> None:
        self.reports: dict[str, Report] = {}
        self.actions: dict[str, ModerationAction] = {}
        self.restrictions: dict[str, UserRestriction] = {}


class _InMemoryUnitOfWork(ModerationUnitOfWork):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def get_report(self, report_id: str, *, for_update: bool = False) -> Optional[Report]:
        return self._state.reports.get(report_id)

    async def insert_report(self, report: Report) -> Report:
        self._state.reports[report.id] = report
        return report

    async def save_report_resolution(self, report: Report) -> None:
        if report.id not in self._state.reports:
            raise NotFound("report_not_found")
        self._state.reports[report.id] = report

    async def get_action(self, action_id: str, *, for_update: bool = False) -> Optional[ModerationAction]:
        return self._state.actions.get(action_id)

    async def insert_action(self, action: ModerationAction) -> ModerationAction:
        if action.id in self._state.actions:
            raise ImmutableRecordError(action.id)
        self._state.actions[action.id] = action
        return action

    async def record_reversal(
        self,
        action_id: str,
        *,
        revoked_at: datetime,
        revoked_by: str,
        reason: str,
    ) -> ModerationAction:
        current = self._state.actions.get(action_id)
        if current is None:
            raise NotFound("action_not_found")
        if current.is_reversed:
            raise AlreadyReversed(action_id)
        updated = current.revoked(revoked_at=revoked_at, revoked_by=revoked_by, reason=reason)
        self._state.actions[action_id] = updated
        return updated

    async def active_restriction(self, user_id: str, kind: RestrictionKind) -> Optional[UserRestriction]:
        for item in self._state.restrictions.values():
            if item.user_id == user_id and item.kind is kind and item.active:
                return item
        return None

    async def insert_restriction(self, restriction: UserRestriction) -> UserRestriction:
        if restriction.active and await self.active_restriction(restriction.user_id, restriction.kind):
            raise RestrictionConflict(
                f"User already has an active {restriction.kind.value} restriction",
                details={"user_id": restriction.user_id, "restriction_type": restriction.kind.value},
            )
        self._state.restrictions[restriction.id] = restriction
        return restriction

    async def deactivate_restrictions_for_action(self, action_id: str, *, now: datetime) -> list[UserRestriction]:
        changed: list[UserRestriction] = []
        for item in self._state.restrictions.values():
            if item.action_id == action_id and item.active:
                item.active = False
                item.updated_at = now
                changed.append(item)
        return changed

    async def expire_restrictions(
        self,
        *,
        now: datetime,
        user_id: Optional[str] = None,
        kind: Optional[RestrictionKind] = None,
    ) -> list[UserRestriction]:
        changed: list[UserRestriction] = []
        for item in self._state.restrictions.values():
            if user_id is not None and item.user_id != user_id:
                continue
            if kind is not None and item.kind is not kind:
                continue
            if item.is_lapsed(now):
                item.active = False
                item.updated_at = now
                changed.append(item)
        return changed


class InMemoryModerationRepository(ModerationRepository):
    """Process-local repository for development and tests.

    A single lock serialises transactions; on error the pre-transaction
    snapshot is restored so no partial state survives.
    """

    def __init__(self) -> None:
        self._state = _MemoryState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ModerationUnitOfWork]:
        async with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield _InMemoryUnitOfWork(self._state)
            except BaseException:
                self._state.reports = snapshot.reports
                self._state.actions = snapshot.actions
                self._state.restrictions = snapshot.restrictions
                raise

    async def get_report(self, report_id: str) -> Optional[Report]:
        report = self._state.reports.get(report_id)
        return copy.copy(report) if report else None

    async def get_action(self, action_id: str) -> Optional[ModerationAction]:
        return self._state.actions.get(action_id)

    async def list_queue(self, filters: QueueFilters) -> list[Report]:
        return [copy.copy(item) for item in self._state.reports.values() if filters.matches(item)]

    async def list_reports(self, *, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Report]:
        items = []
        for report in self._state.reports.values():
            if start is not None and report.created_at < start:
                continue
            if end is not None and report.created_at > end:
                continue
            items.append(copy.copy(report))
        return sorted(items, key=lambda item: item.created_at)

    async def find_recent_report(
        self,
        reporter_id: str,
        target_kind: TargetKind,
        target_id: str,
        *,
        since: datetime,
    ) -> Optional[Report]:
        for report in self._state.reports.values():
            if (
                report.reporter_id == reporter_id
                and report.target_kind is target_kind
                and report.target_id == target_id
                and report.created_at >= since
            ):
                return copy.copy(report)
        return None

    async def list_actions(self, filters: ActionFilters) -> list[ModerationAction]:
        now = utcnow()
        items = [item for item in self._state.actions.values() if filters.matches(item, now=now)]
        items.sort(key=lambda item: item.created_at, reverse=True)
        if filters.limit is not None:
            items = items[: filters.limit]
        return items

    async def list_restrictions(self, user_id: str, *, active_only: bool = True) -> list[UserRestriction]:
        items = [
            copy.copy(item)
            for item in self._state.restrictions.values()
            if item.user_id == user_id and (item.active or not active_only)
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items

    async def mark_notification_sent(self, action_id: str) -> None:
        async with self._lock:
            current = self._state.actions.get(action_id)
            if current is None:
                raise NotFound("action_not_found")
            if not current.notification_sent:
                self._state.actions[action_id] = current.with_notification_sent(True)

    def all_actions(self) -> Sequence[ModerationAction]:
        return tuple(self._state.actions.values())

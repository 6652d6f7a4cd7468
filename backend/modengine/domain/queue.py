"""Read-side ordering of open reports for review."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional

from modengine.domain.models import Report
from modengine.domain.repository import ActionFilters, ModerationRepository, QueueFilters


def queue_sort_key(report: Report) -> tuple[int, datetime, int]:
    """Priority ascending, then oldest first, then moderator flags before user reports."""
    return (report.priority, report.created_at, 0 if report.moderator_flagged else 1)


def order_queue(reports: list[Report]) -> list[Report]:
    return sorted(reports, key=queue_sort_key)


@dataclass(slots=True)
class QueueEntry:
    report: Report
    previous_reversals: int


@dataclass
class ModerationQueue:
    repository: ModerationRepository

    async def list_queue(self, filters: Optional[QueueFilters] = None) -> list[Report]:
        # Re-ordered on every call; no cursor state is kept between calls.
        reports = await self.repository.list_queue(filters or QueueFilters())
        return order_queue(reports)

    async def iter_queue(self, filters: Optional[QueueFilters] = None) -> AsyncIterator[Report]:
        for report in await self.list_queue(filters):
            yield report

    async def next_report(self, filters: Optional[QueueFilters] = None) -> Optional[Report]:
        reports = await self.list_queue(filters)
        return reports[0] if reports else None

    async def previous_reversals(self, report: Report) -> int:
        """Count earlier reversed actions against the same reported user."""
        if report.reported_user_id is None:
            return 0
        actions = await self.repository.list_actions(
            ActionFilters(target_user_id=report.reported_user_id, reversed_only=True)
        )
        return len(actions)

    async def entries(self, filters: Optional[QueueFilters] = None) -> list[QueueEntry]:
        reports = await self.list_queue(filters)
        return [QueueEntry(report=item, previous_reversals=await self.previous_reversals(item)) for item in reports]

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from modengine.domain.models import ActionKind, Report, ReportReason, ReportSource, ReportStatus, TargetKind
from modengine.domain.queue import order_queue, queue_sort_key
from modengine.domain.repository import QueueFilters

BASE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _report(report_id: str, *, priority: int, minutes: int, flagged: bool = False) -> Report:
    created = BASE + timedelta(minutes=minutes)
    return Report(
        id=report_id,
        reporter_id="reporter",
        reported_user_id="owner",
        target_kind=TargetKind.USER,
        target_id="owner",
        reason=ReportReason.SPAM,
        description=None,
        status=ReportStatus.UNDER_REVIEW if flagged else ReportStatus.PENDING,
        priority=priority,
        moderator_flagged=flagged,
        created_at=created,
        updated_at=created,
    )


def test_order_is_priority_then_age_then_flag() -> None:
    reports = [
        _report("late-p3", priority=3, minutes=30),
        _report("user-p2", priority=2, minutes=10),
        _report("flag-p2", priority=2, minutes=10, flagged=True),
        _report("early-p3", priority=3, minutes=0),
        _report("p1", priority=1, minutes=60),
    ]

    ordered = [item.id for item in order_queue(reports)]

    assert ordered == ["p1", "flag-p2", "user-p2", "early-p3", "late-p3"]


def test_sort_key_is_pure() -> None:
    report = _report("r", priority=4, minutes=5)
    assert queue_sort_key(report) == queue_sort_key(report) == (4, report.created_at, 1)


def test_default_filters_only_match_open_reports() -> None:
    filters = QueueFilters()
    open_report = _report("open", priority=3, minutes=0)
    closed = _report("closed", priority=3, minutes=0)
    closed.status = ReportStatus.RESOLVED

    assert filters.matches(open_report)
    assert not filters.matches(closed)
    assert QueueFilters(status=ReportStatus.RESOLVED).matches(closed)


def test_source_and_flag_filters() -> None:
    flagged = _report("flag", priority=2, minutes=0, flagged=True)
    user = _report("user", priority=2, minutes=0)

    assert QueueFilters(moderator_flagged=True).matches(flagged)
    assert not QueueFilters(moderator_flagged=True).matches(user)
    assert QueueFilters(source=ReportSource.USER).matches(user)
    assert not QueueFilters(source=ReportSource.USER).matches(flagged)
    assert not QueueFilters(priority=1).matches(user)


@pytest.mark.asyncio
async def test_queue_hides_resolved_reports_and_counts_prior_reversals(harness) -> None:
    warned = await harness.act(ActionKind.USER_WARNED)
    await harness.reversal().reverse_action(actor_id=harness.ADMIN, action_id=warned.id, reason="mistake")
    harness.clock.advance(minutes=1)
    fresh = await harness.open_report(reason=ReportReason.HARASSMENT)

    entries = await harness.queue().entries()

    assert [entry.report.id for entry in entries] == [fresh.id]
    assert entries[0].previous_reversals == 1


@pytest.mark.asyncio
async def test_next_report_and_iteration_follow_queue_order(harness) -> None:
    low = await harness.open_report(reason=ReportReason.SPAM)
    harness.clock.advance(minutes=1)
    urgent = await harness.open_report(reason=ReportReason.SELF_HARM)
    queue = harness.queue()

    assert (await queue.next_report()).id == urgent.id
    assert [report.id async for report in queue.iter_queue()] == [urgent.id, low.id]
    assert await queue.next_report(QueueFilters(priority=5)) is None

from __future__ import annotations

import logging

import pytest

from modengine.domain.errors import (
    DuplicateReport,
    EmptyDescription,
    EmptyNotes,
    InvalidPriority,
    RateLimitExceeded,
    SelfReport,
    TargetNotReportable,
    TextTooLong,
    Unauthorized,
    ValidationError,
)
from modengine.domain.intake import PRIORITY_MAP, moderator_flag_priority, priority_for
from modengine.domain.models import ReportReason, ReportSource, ReportStatus, Role, TargetKind
from modengine.domain.notifications import NotificationKind


@pytest.mark.parametrize(
    ("reason", "expected"),
    [
        (ReportReason.SELF_HARM, 1),
        (ReportReason.HATE_SPEECH, 2),
        (ReportReason.HARASSMENT, 2),
        (ReportReason.INAPPROPRIATE_CONTENT, 3),
        (ReportReason.SPAM, 3),
        (ReportReason.COPYRIGHT_VIOLATION, 3),
        (ReportReason.IMPERSONATION, 3),
        (ReportReason.OTHER, 4),
    ],
)
def test_priority_is_a_function_of_reason(reason: ReportReason, expected: int) -> None:
    assert priority_for(reason) == expected


def test_every_reason_has_a_priority() -> None:
    assert set(PRIORITY_MAP) == set(ReportReason)


def test_moderator_flag_priority_is_capped_at_two() -> None:
    assert moderator_flag_priority(None) == 2
    assert moderator_flag_priority(1) == 1
    assert moderator_flag_priority(5) == 2
    with pytest.raises(InvalidPriority):
        moderator_flag_priority(0)
    with pytest.raises(InvalidPriority):
        moderator_flag_priority(6)


@pytest.mark.asyncio
async def test_submit_report_on_post_records_owner_and_priority(harness) -> None:
    report = await harness.intake().submit_report(
        reporter_id=harness.REPORTER,
        target_kind=TargetKind.POST,
        target_id=harness.POST_ID,
        reason=ReportReason.HARASSMENT,
        description="  rude replies \x00 ",
    )

    assert report.status is ReportStatus.PENDING
    assert report.priority == 2
    assert report.reported_user_id == harness.OWNER
    assert report.source is ReportSource.USER
    assert report.description == "rude replies"
    assert await harness.repository.get_report(report.id) is not None


@pytest.mark.asyncio
async def test_other_reason_requires_description(harness) -> None:
    with pytest.raises(EmptyDescription):
        await harness.intake().submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.OTHER,
            description="   ",
        )
    assert await harness.repository.list_reports() == []


@pytest.mark.asyncio
async def test_description_length_is_bounded(harness) -> None:
    with pytest.raises(TextTooLong):
        await harness.intake().submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.SPAM,
            description="x" * 1001,
        )


@pytest.mark.asyncio
async def test_missing_content_is_rejected(harness) -> None:
    with pytest.raises(ValidationError):
        await harness.intake().submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.COMMENT,
            target_id="missing",
            reason=ReportReason.SPAM,
        )


@pytest.mark.asyncio
async def test_cannot_report_yourself_or_your_content(harness) -> None:
    intake = harness.intake()
    with pytest.raises(SelfReport):
        await intake.submit_report(
            reporter_id=harness.OWNER,
            target_kind=TargetKind.POST,
            target_id=harness.POST_ID,
            reason=ReportReason.SPAM,
        )
    with pytest.raises(SelfReport):
        await intake.submit_report(
            reporter_id=harness.OWNER,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.SPAM,
        )


@pytest.mark.asyncio
async def test_admin_accounts_are_not_reportable(harness) -> None:
    with pytest.raises(TargetNotReportable):
        await harness.intake().submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.USER,
            target_id=harness.ADMIN,
            reason=ReportReason.HARASSMENT,
        )


@pytest.mark.asyncio
async def test_duplicate_report_within_window_is_rejected_and_audited(harness, caplog) -> None:
    intake = harness.intake()
    await intake.submit_report(
        reporter_id=harness.REPORTER, target_kind=TargetKind.USER, target_id=harness.OWNER, reason=ReportReason.SPAM
    )
    harness.clock.advance(hours=23)
    with caplog.at_level(logging.WARNING):
        with pytest.raises(DuplicateReport):
            await intake.submit_report(
                reporter_id=harness.REPORTER,
                target_kind=TargetKind.USER,
                target_id=harness.OWNER,
                reason=ReportReason.HARASSMENT,
            )
    assert any(getattr(record, "event", None) == "duplicate_report_attempt" for record in caplog.records)

    harness.clock.advance(hours=2)
    again = await intake.submit_report(
        reporter_id=harness.REPORTER, target_kind=TargetKind.USER, target_id=harness.OWNER, reason=ReportReason.SPAM
    )
    assert again.status is ReportStatus.PENDING


@pytest.mark.asyncio
async def test_eleventh_report_in_a_day_is_rate_limited(harness) -> None:
    intake = harness.intake()
    for index in range(10):
        harness.content.add(TargetKind.POST, f"post-{index + 10}", harness.OWNER)
        await intake.submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.POST,
            target_id=f"post-{index + 10}",
            reason=ReportReason.SPAM,
        )
        harness.clock.advance(minutes=1)

    with pytest.raises(RateLimitExceeded) as excinfo:
        await intake.submit_report(
            reporter_id=harness.REPORTER,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.SPAM,
        )
    # The oldest hit leaves the window 24h after it was recorded, ten minutes ago.
    assert 0 < excinfo.value.retry_after_seconds <= 86400 - 600 + 1
    assert len(await harness.repository.list_reports()) == 10

    harness.clock.advance(hours=24)
    later = await intake.submit_report(
        reporter_id=harness.REPORTER, target_kind=TargetKind.USER, target_id=harness.OWNER, reason=ReportReason.SPAM
    )
    assert later.priority == 3


@pytest.mark.asyncio
async def test_high_priority_reports_alert_staff(harness) -> None:
    harness.staff_ids = (harness.MODERATOR, harness.OTHER_MODERATOR)
    report = await harness.intake().submit_report(
        reporter_id=harness.REPORTER,
        target_kind=TargetKind.USER,
        target_id=harness.OWNER,
        reason=ReportReason.SELF_HARM,
    )

    alerts = [item for item in harness.dispatcher.sent if item.kind is NotificationKind.HIGH_PRIORITY_REPORT]
    assert {item.recipient_id for item in alerts} == {harness.MODERATOR, harness.OTHER_MODERATOR}
    assert all(item.payload["report_id"] == report.id for item in alerts)


@pytest.mark.asyncio
async def test_low_priority_reports_do_not_alert(harness) -> None:
    harness.staff_ids = (harness.MODERATOR,)
    await harness.open_report(reason=ReportReason.SPAM)
    assert harness.dispatcher.sent == []


@pytest.mark.asyncio
async def test_moderator_flag_enters_review_with_notes(harness) -> None:
    report = await harness.intake().moderator_flag(
        moderator_id=harness.MODERATOR,
        target_kind=TargetKind.POST,
        target_id=harness.POST_ID,
        reason=ReportReason.SPAM,
        internal_notes="pattern of link spam",
    )

    assert report.moderator_flagged
    assert report.source is ReportSource.MODERATOR
    assert report.status is ReportStatus.UNDER_REVIEW
    assert report.priority == 2
    assert report.description == "pattern of link spam"
    assert report.reported_user_id == harness.OWNER


@pytest.mark.asyncio
async def test_moderator_flag_requires_staff_and_notes(harness) -> None:
    intake = harness.intake()
    with pytest.raises(Unauthorized):
        await intake.moderator_flag(
            moderator_id=harness.REPORTER,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.SPAM,
            internal_notes="notes",
        )
    with pytest.raises(EmptyNotes):
        await intake.moderator_flag(
            moderator_id=harness.MODERATOR,
            target_kind=TargetKind.USER,
            target_id=harness.OWNER,
            reason=ReportReason.SPAM,
            internal_notes=" ",
        )


@pytest.mark.asyncio
async def test_moderator_flag_honours_more_urgent_priority(harness) -> None:
    harness.identity.grant("mod-3", Role.MODERATOR)
    report = await harness.intake().moderator_flag(
        moderator_id="mod-3",
        target_kind=TargetKind.USER,
        target_id=harness.OWNER,
        reason=ReportReason.SELF_HARM,
        internal_notes="urgent",
        priority=1,
    )
    assert report.priority == 1


@pytest.mark.asyncio
async def test_moderator_flag_on_track_floors_spam_priority(harness) -> None:
    harness.content.add(TargetKind.TRACK, "track-7", harness.OWNER)
    report = await harness.intake().moderator_flag(
        moderator_id=harness.MODERATOR,
        target_kind=TargetKind.TRACK,
        target_id="track-7",
        reason=ReportReason.SPAM,
        internal_notes="bulk uploaded ad tracks",
    )
    assert (report.priority, report.status, report.moderator_flagged) == (2, ReportStatus.UNDER_REVIEW, True)
    assert priority_for(ReportReason.SPAM) == 3

from __future__ import annotations

import pytest

from modengine.infra.scheduler import JobScheduler
from modengine.settings import Settings, staff_recipient_ids


async def _noop() -> int:
    return 0


@pytest.mark.asyncio
async def test_scheduler_registers_interval_job_once() -> None:
    scheduler = JobScheduler()
    scheduler.start()
    try:
        scheduler.schedule_every("sweep", _noop, minutes=5)
        scheduler.schedule_every("sweep", _noop, minutes=10)
        assert scheduler.running
        assert scheduler.job_ids() == ["sweep"]
    finally:
        scheduler.shutdown()
    assert not scheduler.running


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("", ()),
        ("mod-1, mod-2", ("mod-1", "mod-2")),
        ('["mod-1", "admin-1"]', ("mod-1", "admin-1")),
    ],
)
def test_staff_ids_accept_csv_and_json(raw: str, expected: tuple[str, ...]) -> None:
    settings = Settings(MODERATION_STAFF_IDS=raw)
    assert settings.moderation_staff_ids == expected
    assert staff_recipient_ids(settings.moderation_staff_ids) == expected


def test_limits_default_to_documented_values() -> None:
    settings = Settings()
    assert settings.moderation_report_limit == 10
    assert settings.moderation_report_window_seconds == 86400
    assert settings.moderation_action_limit == 100
    assert settings.moderation_action_window_seconds == 3600

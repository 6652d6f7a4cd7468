from __future__ import annotations

from datetime import datetime, timezone

import pytest

from modengine.domain import notifications
from modengine.domain.models import (
    ActionKind,
    ContentActionDetails,
    ModerationAction,
    RestrictionKind,
    SuspensionDetails,
    TargetKind,
    UserRestriction,
)
from modengine.domain.notifications import NotificationKind, NotificationPublisher
from modengine.infra.notifications import RedisStreamNotificationDispatcher
from modengine.infra.redis import RedisProxy

NOW = datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)


def _suspension() -> ModerationAction:
    return ModerationAction(
        id="act-1",
        actor_id="mod-1",
        target_user_id="user-9",
        kind=ActionKind.USER_SUSPENDED,
        reason="Repeated harassment",
        details=SuspensionDetails(duration_days=1, permanent=False),
        created_at=NOW,
        duration_days=1,
    )


def test_action_taken_message_mentions_reason_and_duration() -> None:
    request = notifications.action_taken(_suspension(), actor_name="Mod One")

    assert request.kind is NotificationKind.ACTION_TAKEN
    assert request.recipient_id == "user-9"
    assert request.title == "Account Suspended"
    assert "Reason: Repeated harassment" in request.message
    assert "Duration: 1 day." in request.message


def test_ban_message_is_permanent() -> None:
    ban = ModerationAction(
        id="act-2",
        actor_id="admin-1",
        target_user_id="user-9",
        kind=ActionKind.USER_BANNED,
        reason="Ban evasion",
        details=SuspensionDetails(duration_days=None, permanent=True),
        created_at=NOW,
    )
    assert "This is permanent." in notifications.action_taken(ban, actor_name=None).message


def test_reversed_content_removal_notes_content_is_not_restored() -> None:
    removal = ModerationAction(
        id="act-3",
        actor_id="mod-1",
        target_user_id="user-9",
        kind=ActionKind.CONTENT_REMOVED,
        reason="Spam",
        details=ContentActionDetails(target_kind=TargetKind.POST, target_id="post-3"),
        created_at=NOW,
    ).revoked(revoked_at=NOW, revoked_by="admin-1", reason="Not spam")

    request = notifications.action_reversed(removal, actor_name="Admin")

    assert "content cannot be restored" in request.message
    assert request.reason == "Not spam"
    assert request.payload["revoked_by"] == "admin-1"


def test_fields_are_flat_strings() -> None:
    restriction = UserRestriction(
        id="r-1",
        user_id="user-9",
        kind=RestrictionKind.UPLOAD_DISABLED,
        reason="r",
        applied_by="mod-1",
        created_at=NOW,
        updated_at=NOW,
        action_id="act-9",
    )
    fields = notifications.restriction_expired(restriction).to_fields()

    assert fields["kind"] == "restriction_expired"
    assert fields["data.restriction_type"] == "upload_disabled"
    assert all(isinstance(value, str) for value in fields.values())


class ExplodingDispatcher:
    async def dispatch(self, request):
        raise RuntimeError("broker down")


@pytest.mark.asyncio
async def test_publisher_swallows_dispatch_errors() -> None:
    publisher = NotificationPublisher(ExplodingDispatcher())
    assert await publisher.publish(notifications.action_taken(_suspension(), actor_name=None)) is False


@pytest.mark.asyncio
async def test_redis_stream_dispatcher_appends_entry(fake_redis) -> None:
    dispatcher = RedisStreamNotificationDispatcher(RedisProxy(fake_redis), stream="test:notifications")

    delivered = await dispatcher.dispatch(notifications.action_taken(_suspension(), actor_name="Mod One"))

    assert delivered
    entries = await fake_redis.xrange("test:notifications")
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields["recipient_id"] == "user-9"
    assert fields["action_id"] == "act-1"
    assert fields["actor_name"] == "Mod One"
    assert fields["data.action_type"] == "user_suspended"

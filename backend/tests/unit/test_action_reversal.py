from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from modengine.domain.errors import (
    AlreadyReversed,
    EmptyReason,
    ImmutableRecordError,
    NotFound,
    StoreUnavailable,
    Unauthorized,
)
from modengine.domain.models import (
    ActionKind,
    ActionState,
    ModerationAction,
    ProtectedAction,
    RestrictionKind,
    Role,
    WarningDetails,
)
from modengine.domain.notifications import NotificationKind
from modengine.domain.repository import _InMemoryUnitOfWork


@pytest.mark.asyncio
async def test_moderator_cannot_reverse_a_ban(harness) -> None:
    ban = await harness.act(ActionKind.USER_BANNED, actor_id=harness.ADMIN)

    with pytest.raises(Unauthorized):
        await harness.reversal().reverse_action(actor_id=harness.MODERATOR, action_id=ban.id, reason="appeal")

    stored = await harness.repository.get_action(ban.id)
    assert not stored.is_reversed
    assert len(await harness.repository.list_restrictions(harness.OWNER)) == 1


@pytest.mark.asyncio
async def test_admin_self_reversal_is_recorded_and_audited(harness, caplog) -> None:
    warning = await harness.act(ActionKind.USER_WARNED, actor_id=harness.ADMIN)
    harness.clock.advance(minutes=5)

    with caplog.at_level(logging.WARNING):
        reversed_action = await harness.reversal().reverse_action(
            actor_id=harness.ADMIN, action_id=warning.id, reason="issued in error"
        )

    assert reversed_action.revoked_by == warning.actor_id
    assert reversed_action.is_self_reversal
    assert reversed_action.time_to_reversal.total_seconds() == 300
    assert reversed_action.reversal_reason == "issued in error"
    assert reversed_action.state() is ActionState.REVERSED
    assert any(getattr(record, "event", None) == "self_reversal" for record in caplog.records)
    assert harness.dispatcher.sent[-1].kind is NotificationKind.ACTION_REVERSED


@pytest.mark.asyncio
async def test_second_reversal_fails_and_keeps_first_values(harness) -> None:
    warning = await harness.act(ActionKind.USER_WARNED)
    service = harness.reversal()
    first = await service.reverse_action(actor_id=harness.MODERATOR, action_id=warning.id, reason="first")
    harness.clock.advance(hours=1)

    with pytest.raises(AlreadyReversed):
        await service.reverse_action(actor_id=harness.ADMIN, action_id=warning.id, reason="second")

    stored = await harness.repository.get_action(warning.id)
    assert (stored.revoked_at, stored.revoked_by, stored.reversal_reason) == (
        first.revoked_at,
        harness.MODERATOR,
        "first",
    )


@pytest.mark.asyncio
async def test_concurrent_reversals_succeed_once(harness) -> None:
    warning = await harness.act(ActionKind.USER_WARNED)
    service = harness.reversal()

    results = await asyncio.gather(
        service.reverse_action(actor_id=harness.MODERATOR, action_id=warning.id, reason="a"),
        service.reverse_action(actor_id=harness.ADMIN, action_id=warning.id, reason="b"),
        return_exceptions=True,
    )

    assert sum(1 for item in results if isinstance(item, AlreadyReversed)) == 1
    assert sum(1 for item in results if not isinstance(item, Exception)) == 1


def test_revocation_fields_cannot_be_rewritten() -> None:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    action = ModerationAction(
        id="a1",
        actor_id="mod",
        target_user_id="user",
        kind=ActionKind.USER_WARNED,
        reason="r",
        details=WarningDetails(),
        created_at=now,
    )
    revoked = action.revoked(revoked_at=now, revoked_by="admin", reason="x")
    with pytest.raises(ImmutableRecordError):
        revoked.revoked(revoked_at=now, revoked_by="other", reason="y")


@pytest.mark.asyncio
async def test_reversing_suspension_lifts_restriction_and_clears_account_flag(harness) -> None:
    suspension = await harness.act(ActionKind.USER_SUSPENDED, duration_days=10)
    assert not await harness.oracle().is_allowed(harness.OWNER, ProtectedAction.POST, now=harness.clock())

    await harness.reversal().reverse_action(actor_id=harness.OTHER_MODERATOR, action_id=suspension.id, reason="appeal")

    assert await harness.oracle().is_allowed(harness.OWNER, ProtectedAction.POST, now=harness.clock())
    history = await harness.repository.list_restrictions(harness.OWNER, active_only=False)
    assert [item.active for item in history] == [False]
    assert harness.identity.cleared_suspensions == [harness.OWNER]
    assert harness.OWNER not in harness.identity.suspensions
    assert harness.dispatcher.sent[-1].title == "Suspension Lifted"


@pytest.mark.asyncio
async def test_reversing_restriction_only_lifts_its_own_row(harness) -> None:
    posting = await harness.act(
        ActionKind.RESTRICTION_APPLIED, restriction_kind=RestrictionKind.POSTING_DISABLED, duration_days=5
    )
    await harness.act(ActionKind.RESTRICTION_APPLIED, restriction_kind=RestrictionKind.UPLOAD_DISABLED)

    await harness.reversal().reverse_action(actor_id=harness.MODERATOR, action_id=posting.id, reason="too harsh")

    oracle = harness.oracle()
    assert await oracle.is_allowed(harness.OWNER, ProtectedAction.POST, now=harness.clock())
    assert not await oracle.is_allowed(harness.OWNER, ProtectedAction.UPLOAD, now=harness.clock())
    assert harness.identity.cleared_suspensions == []


@pytest.mark.asyncio
async def test_target_role_is_evaluated_at_reversal_time(harness) -> None:
    warning = await harness.act(ActionKind.USER_WARNED)
    harness.identity.grant(harness.OWNER, Role.ADMIN)

    with pytest.raises(Unauthorized):
        await harness.reversal().reverse_action(actor_id=harness.MODERATOR, action_id=warning.id, reason="r")
    reversed_action = await harness.reversal().reverse_action(actor_id=harness.ADMIN, action_id=warning.id, reason="r")
    assert reversed_action.revoked_by == harness.ADMIN


@pytest.mark.asyncio
async def test_reversal_validation(harness) -> None:
    warning = await harness.act(ActionKind.USER_WARNED)
    service = harness.reversal()

    with pytest.raises(EmptyReason):
        await service.reverse_action(actor_id=harness.MODERATOR, action_id=warning.id, reason=" ")
    with pytest.raises(NotFound):
        await service.reverse_action(actor_id=harness.MODERATOR, action_id="missing", reason="r")
    with pytest.raises(Unauthorized):
        await service.reverse_action(actor_id=harness.REPORTER, action_id=warning.id, reason="r")


@pytest.mark.asyncio
async def test_failed_reversal_keeps_the_identity_suspension(harness, monkeypatch) -> None:
    suspension = await harness.act(ActionKind.USER_SUSPENDED, duration_days=3)

    async def unavailable(self, action_id, *, now):
        raise StoreUnavailable("ledger unavailable")

    monkeypatch.setattr(_InMemoryUnitOfWork, "deactivate_restrictions_for_action", unavailable)

    with pytest.raises(StoreUnavailable):
        await harness.reversal().reverse_action(actor_id=harness.MODERATOR, action_id=suspension.id, reason="appeal")

    stored = await harness.repository.get_action(suspension.id)
    assert not stored.is_reversed
    assert harness.identity.suspensions == {harness.OWNER: suspension.expires_at}
    assert harness.identity.cleared_suspensions == []
    assert not await harness.oracle().is_allowed(harness.OWNER, ProtectedAction.ANY, now=harness.clock())

"""Reversal of previously recorded moderation actions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from modengine.domain import notifications, rbac
from modengine.domain.errors import AlreadyReversed, EmptyReason, NotFound, Unauthorized
from modengine.domain.models import ActionKind, ModerationAction, RestrictionKind, utcnow
from modengine.domain.notifications import NotificationPublisher
from modengine.domain.ports import IdentityProvider
from modengine.domain.repository import ModerationRepository
from modengine.domain.text import REASON_MAX, bounded_text
from modengine.obs import metrics
from modengine.obs.audit import log_security_event

logger = logging.getLogger(__name__)

SUSPENDING_ACTIONS = frozenset({ActionKind.USER_SUSPENDED, ActionKind.USER_BANNED})


@dataclass
class ReversalService:
    repository: ModerationRepository
    identity: IdentityProvider
    publisher: NotificationPublisher
    clock: Callable[[], datetime] = utcnow

    async def reverse_action(self, *, actor_id: str, action_id: str, reason: str) -> ModerationAction:
        actor_role = await self.identity.role_of(actor_id)
        if not actor_role.is_staff:
            self._denied(actor_id, action_id, None, "moderator_required")
            raise Unauthorized("moderator_required")
        cleaned = bounded_text(reason, field="reason", limit=REASON_MAX)
        if cleaned is None:
            raise EmptyReason()
        start = time.perf_counter()
        now = self.clock()
        async with self.repository.transaction() as uow:
            original = await uow.get_action(action_id, for_update=True)
            if original is None:
                raise NotFound("action_not_found", details={"action_id": action_id})
            if original.is_reversed:
                raise AlreadyReversed(action_id)
            # Authorization uses the target's role as of now, not at action time.
            target_role = await self.identity.role_of(original.target_user_id)
            is_self = original.actor_id == actor_id
            try:
                rbac.ensure_may_reverse(actor_role, target_role, original.kind, is_self=is_self)
            except Unauthorized as exc:
                self._denied(actor_id, action_id, original.kind, exc.reason)
                raise
            reversed_action = await uow.record_reversal(
                action_id,
                revoked_at=now,
                revoked_by=actor_id,
                reason=cleaned,
            )
            lifted = await uow.deactivate_restrictions_for_action(action_id, now=now)

        # The identity store is outside the ledger transaction; touch it only once the reversal has committed.
        if original.kind in SUSPENDING_ACTIONS or any(item.kind is RestrictionKind.SUSPENDED for item in lifted):
            await self.identity.clear_suspension(original.target_user_id)
        for item in lifted:
            metrics.restriction_lifted(item.kind.value)
        metrics.inc_reversal(original.kind.value, self_reversal=reversed_action.is_self_reversal)
        metrics.observe_operation("reverse_action", time.perf_counter() - start)
        logger.info(
            "moderation action reversed",
            extra={
                "action_id": action_id,
                "action_type": original.kind.value,
                "actor_id": actor_id,
                "self_reversal": reversed_action.is_self_reversal,
            },
        )
        if reversed_action.is_self_reversal:
            log_security_event(
                "self_reversal",
                actor_id,
                details={"action_id": action_id, "action_type": original.kind.value},
            )
        actor_name = await self.identity.display_name(actor_id)
        await self.publisher.publish(notifications.action_reversed(reversed_action, actor_name=actor_name))
        return reversed_action

    @staticmethod
    def _denied(actor_id: str, action_id: str, kind: ActionKind | None, reason: str) -> None:
        log_security_event(
            "unauthorized_reversal_attempt",
            actor_id,
            details={"action_id": action_id, "action_type": kind.value if kind else None, "reason": reason},
        )

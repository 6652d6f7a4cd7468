"""Authorization matrix for moderation staff operations.

All checks are pure functions over (actor role, target role, action kind) so
they can be exercised without storage. Roles are always the *current* roles
reported by the identity provider at call time.
"""

from __future__ import annotations

from typing import Optional

from modengine.domain.errors import Unauthorized
from modengine.domain.models import ActionKind, Role

ADMIN_ONLY_ACTIONS = frozenset({ActionKind.USER_BANNED})


def is_staff(role: Role) -> bool:
    return role.is_staff


def ensure_staff(role: Role) -> None:
    if not role.is_staff:
        raise Unauthorized("moderator_required")


def may_take_action(actor_role: Role, target_role: Optional[Role], kind: ActionKind) -> bool:
    if not actor_role.is_staff:
        return False
    if kind in ADMIN_ONLY_ACTIONS and actor_role is not Role.ADMIN:
        return False
    if target_role is Role.ADMIN and actor_role is not Role.ADMIN:
        return False
    return True


def ensure_may_take_action(actor_role: Role, target_role: Optional[Role], kind: ActionKind) -> None:
    if not actor_role.is_staff:
        raise Unauthorized("moderator_required")
    if kind in ADMIN_ONLY_ACTIONS and actor_role is not Role.ADMIN:
        raise Unauthorized("admin_required")
    if target_role is Role.ADMIN and actor_role is not Role.ADMIN:
        raise Unauthorized("admin_target")


def may_reverse(actor_role: Role, target_role: Optional[Role], kind: ActionKind, *, is_self: bool = False) -> bool:
    """Return whether ``actor_role`` may reverse an action of ``kind``.

    ``is_self`` is accepted so callers can pass it through, but it never widens
    permissions: bans stay admin-only even for the admin who issued them, and
    a moderator who took the original action is bound by the same target rule.
    """
    if not actor_role.is_staff:
        return False
    if actor_role is Role.ADMIN:
        return True
    if kind in ADMIN_ONLY_ACTIONS:
        return False
    return target_role is not Role.ADMIN


def ensure_may_reverse(actor_role: Role, target_role: Optional[Role], kind: ActionKind, *, is_self: bool = False) -> None:
    if not actor_role.is_staff:
        raise Unauthorized("moderator_required")
    if may_reverse(actor_role, target_role, kind, is_self=is_self):
        return
    if kind in ADMIN_ONLY_ACTIONS:
        raise Unauthorized("admin_required")
    raise Unauthorized("admin_target")

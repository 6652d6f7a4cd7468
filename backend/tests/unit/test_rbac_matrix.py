"""Authorization matrix for taking and reversing moderation actions."""

from __future__ import annotations

import pytest

from modengine.domain import rbac
from modengine.domain.errors import Unauthorized
from modengine.domain.models import ActionKind, Role

NON_BAN_KINDS = [kind for kind in ActionKind if kind is not ActionKind.USER_BANNED]


@pytest.mark.parametrize("kind", list(ActionKind))
def test_plain_users_may_never_act_or_reverse(kind: ActionKind) -> None:
    assert not rbac.may_take_action(Role.USER, Role.USER, kind)
    assert not rbac.may_reverse(Role.USER, Role.USER, kind)
    with pytest.raises(Unauthorized) as excinfo:
        rbac.ensure_may_reverse(Role.USER, Role.USER, kind)
    assert excinfo.value.reason == "moderator_required"


@pytest.mark.parametrize("kind", NON_BAN_KINDS)
def test_moderator_reverses_non_ban_actions_on_non_admins(kind: ActionKind) -> None:
    assert rbac.may_reverse(Role.MODERATOR, Role.USER, kind)
    assert rbac.may_reverse(Role.MODERATOR, Role.MODERATOR, kind)
    assert not rbac.may_reverse(Role.MODERATOR, Role.ADMIN, kind)


def test_ban_reversal_is_admin_only() -> None:
    assert not rbac.may_reverse(Role.MODERATOR, Role.USER, ActionKind.USER_BANNED)
    assert rbac.may_reverse(Role.ADMIN, Role.USER, ActionKind.USER_BANNED)
    with pytest.raises(Unauthorized) as excinfo:
        rbac.ensure_may_reverse(Role.MODERATOR, Role.USER, ActionKind.USER_BANNED)
    assert excinfo.value.reason == "admin_required"


@pytest.mark.parametrize("kind", list(ActionKind))
@pytest.mark.parametrize("target", list(Role))
def test_admin_may_reverse_everything(kind: ActionKind, target: Role) -> None:
    assert rbac.may_reverse(Role.ADMIN, target, kind)


def test_self_reversal_never_widens_permissions() -> None:
    assert not rbac.may_reverse(Role.MODERATOR, Role.USER, ActionKind.USER_BANNED, is_self=True)
    assert not rbac.may_reverse(Role.MODERATOR, Role.ADMIN, ActionKind.USER_WARNED, is_self=True)
    assert rbac.may_reverse(Role.MODERATOR, Role.USER, ActionKind.USER_WARNED, is_self=True)


def test_moderator_may_not_target_admins_or_ban() -> None:
    assert rbac.may_take_action(Role.MODERATOR, Role.USER, ActionKind.USER_SUSPENDED)
    assert not rbac.may_take_action(Role.MODERATOR, Role.ADMIN, ActionKind.USER_WARNED)
    assert not rbac.may_take_action(Role.MODERATOR, Role.USER, ActionKind.USER_BANNED)
    assert rbac.may_take_action(Role.ADMIN, Role.ADMIN, ActionKind.USER_BANNED)

    with pytest.raises(Unauthorized) as excinfo:
        rbac.ensure_may_take_action(Role.MODERATOR, Role.ADMIN, ActionKind.USER_WARNED)
    assert excinfo.value.reason == "admin_target"
    assert str(excinfo.value) == "not permitted"


def test_ensure_staff() -> None:
    rbac.ensure_staff(Role.MODERATOR)
    rbac.ensure_staff(Role.ADMIN)
    with pytest.raises(Unauthorized):
        rbac.ensure_staff(Role.USER)

"""Shared FastAPI dependencies for the moderation routers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends

from modengine.domain import container, rbac
from modengine.domain.errors import Unauthorized
from modengine.domain.models import Role
from modengine.infra.auth import AuthenticatedUser, get_current_user
from modengine.obs.audit import log_security_event


@dataclass(slots=True)
class Actor:
    id: str
    role: Role


async def get_actor(user: AuthenticatedUser = Depends(get_current_user)) -> Actor:
    """Caller with the role currently reported by the identity provider."""
    role = await container.get_identity().role_of(user.id)
    return Actor(id=user.id, role=role)


async def require_staff(actor: Actor = Depends(get_actor)) -> Actor:
    try:
        rbac.ensure_staff(actor.role)
    except Unauthorized as exc:
        log_security_event("unauthorized_staff_access", actor.id, details={"reason": exc.reason})
        raise
    return actor


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role is not Role.ADMIN:
        log_security_event("unauthorized_admin_access", actor.id, details={"reason": "admin_required"})
        raise Unauthorized("admin_required")
    return actor


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive query timestamps as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

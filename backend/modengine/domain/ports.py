"""Collaborator interfaces consumed by the engine, plus in-memory doubles."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from modengine.domain.models import Role, TargetKind


class IdentityProvider(Protocol):
    async def role_of(self, user_id: str) -> Role:
        ...

    async def display_name(self, user_id: str) -> Optional[str]:
        ...

    async def set_suspension(self, user_id: str, *, until: Optional[datetime], reason: str) -> None:
        """Mark the user suspended; ``until`` of ``None`` means permanent."""
        ...

    async def clear_suspension(self, user_id: str) -> None:
        ...


class ContentStore(Protocol):
    async def exists(self, kind: TargetKind, target_id: str) -> bool:
        ...

    async def owner_of(self, kind: TargetKind, target_id: str) -> Optional[str]:
        ...

    async def remove(self, kind: TargetKind, target_id: str) -> None:
        ...

    async def approve(self, kind: TargetKind, target_id: str) -> None:
        ...


class StaticIdentityProvider(IdentityProvider):
    """Role table kept in memory; unknown users are plain users."""

    def __init__(self, roles: Optional[dict[str, Role]] = None, names: Optional[dict[str, str]] = None) -> None:
        self.roles: dict[str, Role] = dict(roles or {})
        self.names: dict[str, str] = dict(names or {})
        self.suspensions: dict[str, Optional[datetime]] = {}
        self.cleared_suspensions: list[str] = []

    def grant(self, user_id: str, role: Role) -> None:
        self.roles[user_id] = role

    async def role_of(self, user_id: str) -> Role:
        return self.roles.get(user_id, Role.USER)

    async def display_name(self, user_id: str) -> Optional[str]:
        return self.names.get(user_id)

    async def set_suspension(self, user_id: str, *, until: Optional[datetime], reason: str) -> None:
        self.suspensions[user_id] = until

    async def clear_suspension(self, user_id: str) -> None:
        self.suspensions.pop(user_id, None)
        self.cleared_suspensions.append(user_id)


class InMemoryContentStore(ContentStore):
    def __init__(self) -> None:
        self.items: dict[tuple[TargetKind, str], str] = {}
        self.removed: list[tuple[TargetKind, str]] = []
        self.approved: list[tuple[TargetKind, str]] = []

    def add(self, kind: TargetKind, target_id: str, owner_id: str) -> None:
        self.items[(kind, target_id)] = owner_id

    async def exists(self, kind: TargetKind, target_id: str) -> bool:
        if kind is TargetKind.USER:
            return True
        return (kind, target_id) in self.items

    async def owner_of(self, kind: TargetKind, target_id: str) -> Optional[str]:
        if kind is TargetKind.USER:
            return target_id
        return self.items.get((kind, target_id))

    async def remove(self, kind: TargetKind, target_id: str) -> None:
        self.items.pop((kind, target_id), None)
        self.removed.append((kind, target_id))

    async def approve(self, kind: TargetKind, target_id: str) -> None:
        self.approved.append((kind, target_id))

"""Identity provider backed by the users table."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg

from modengine.domain.errors import StoreUnavailable
from modengine.domain.models import Role
from modengine.domain.ports import IdentityProvider


class PostgresIdentityProvider(IdentityProvider):
    """Reads roles fresh on every call; nothing is cached across operations."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def role_of(self, user_id: str) -> Role:
        try:
            value = await self._pool.fetchval(
                "SELECT role FROM users WHERE id::text = $1 AND deleted_at IS NULL",
                user_id,
            )
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Identity store is unavailable") from exc
        try:
            return Role(value) if value else Role.USER
        except ValueError:
            return Role.USER

    async def display_name(self, user_id: str) -> Optional[str]:
        try:
            row = await self._pool.fetchrow(
                "SELECT display_name, handle FROM users WHERE id::text = $1",
                user_id,
            )
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Identity store is unavailable") from exc
        if row is None:
            return None
        return row["display_name"] or row["handle"]

    async def set_suspension(self, user_id: str, *, until: Optional[datetime], reason: str) -> None:
        await self._execute(
            "UPDATE users SET suspended_at = now(), suspended_until = $2, suspension_reason = $3 WHERE id::text = $1",
            user_id,
            until,
            reason,
        )

    async def clear_suspension(self, user_id: str) -> None:
        await self._execute(
            "UPDATE users SET suspended_at = NULL, suspended_until = NULL, suspension_reason = NULL WHERE id::text = $1",
            user_id,
        )

    async def _execute(self, query: str, *args) -> None:
        try:
            await self._pool.execute(query, *args)
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Identity store is unavailable") from exc

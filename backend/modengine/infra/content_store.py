"""Content store adapter over the posts, comments and tracks tables."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from modengine.domain.errors import StoreUnavailable
from modengine.domain.models import TargetKind
from modengine.domain.ports import ContentStore

logger = logging.getLogger(__name__)

_TABLES: dict[TargetKind, str] = {
    TargetKind.POST: "posts",
    TargetKind.COMMENT: "comments",
    TargetKind.TRACK: "tracks",
}


class PostgresContentStore(ContentStore):
    """Existence, ownership and removal hooks for reportable content."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def exists(self, kind: TargetKind, target_id: str) -> bool:
        if kind is TargetKind.USER:
            return True
        try:
            found = await self._pool.fetchval(f"SELECT 1 FROM {_TABLES[kind]} WHERE id::text = $1", target_id)
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Content store is unavailable") from exc
        return bool(found)

    async def owner_of(self, kind: TargetKind, target_id: str) -> Optional[str]:
        if kind is TargetKind.USER:
            return target_id
        try:
            owner = await self._pool.fetchval(f"SELECT user_id FROM {_TABLES[kind]} WHERE id::text = $1", target_id)
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Content store is unavailable") from exc
        return str(owner) if owner is not None else None

    async def remove(self, kind: TargetKind, target_id: str) -> None:
        if kind is TargetKind.USER:
            return
        try:
            await self._pool.execute(f"DELETE FROM {_TABLES[kind]} WHERE id::text = $1", target_id)
        except (asyncpg.PostgresConnectionError, OSError) as exc:
            raise StoreUnavailable("Content store is unavailable") from exc
        logger.info("content removed", extra={"target_kind": kind.value, "target_id": target_id})

    async def approve(self, kind: TargetKind, target_id: str) -> None:
        logger.info("content approved", extra={"target_kind": kind.value, "target_id": target_id})

"""Process-wide asyncpg pool for the moderation ledger."""

from __future__ import annotations

from typing import Optional

import asyncpg

from modengine.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


def _dsn() -> str:
	# 127.0.0.1 avoids IPv6 resolution of localhost
	return settings.postgres_url.replace("localhost", "127.0.0.1")


async def init_pool() -> asyncpg.pool.Pool:
	"""Create the pool on first use and return it on later calls."""
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=_dsn(),
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout,
			server_settings={"application_name": settings.service_name},
		)
	return _pool


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()

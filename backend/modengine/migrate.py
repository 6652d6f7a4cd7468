"""Apply the SQL files in ``backend/migrations`` in version order.

Usage: ``python -m modengine.migrate [--dir PATH]``
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
from typing import Sequence

import asyncpg

from modengine.obs.logging import configure_logging
from modengine.settings import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parents[1] / "migrations"


def pending_migrations(paths: Sequence[pathlib.Path], applied: set[str]) -> list[pathlib.Path]:
    """Return files whose version prefix (text before the first ``_``) is not yet applied."""
    return [path for path in sorted(paths) if path.name.split("_", 1)[0] not in applied]


async def _connect(dsn: str, retries: int, delay: float) -> asyncpg.Connection:
    for attempt in range(retries):
        try:
            return await asyncpg.connect(dsn)
        except (OSError, asyncpg.CannotConnectNowError) as exc:
            logger.warning("database not ready", extra={"attempt": attempt + 1, "error": str(exc)})
            await asyncio.sleep(delay)
    raise SystemExit("Could not connect to database after multiple retries")


async def apply(directory: pathlib.Path = MIGRATIONS_DIR, *, retries: int = 30, delay: float = 2.0) -> list[str]:
    paths = list(directory.glob("*.sql"))
    if not paths:
        raise SystemExit(f"no migration files found in {directory}")
    conn = await _connect(settings.postgres_url, retries, delay)
    try:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        applied = {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}
        done: list[str] = []
        for path in pending_migrations(paths, applied):
            version = path.name.split("_", 1)[0]
            async with conn.transaction():
                await conn.execute(path.read_text())
                await conn.execute("INSERT INTO schema_migrations (version) VALUES ($1)", version)
            logger.info("applied migration", extra={"migration": path.name})
            done.append(path.name)
        return done
    finally:
        await conn.close()


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dir", type=pathlib.Path, default=MIGRATIONS_DIR)
    args = parser.parse_args(argv)
    configure_logging()
    applied = asyncio.run(apply(args.dir))
    print(f"Applied {len(applied)} migration(s)")


if __name__ == "__main__":
    main()

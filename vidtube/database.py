"""PostgreSQL pool and schema bootstrap for the accounts service.

The schema is three tables: ``users`` (accounts, credentials, watch
history), ``videos`` (owned by a user) and ``subscriptions`` (a
subscriber -> channel edge between two users). Services borrow
connections from the single module-level pool.
"""

from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from vidtube.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool.

    Raises:
        RuntimeError: If ``init_database`` has not run (or the pool was closed)
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Create the shared pool from ``POSTGRES_URL``; a second call reuses it."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=60,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise

    logger.info(
        "database_pool_created",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every ``*.sql`` file in name order.

    The files create ``users``, then ``videos`` and ``subscriptions`` (both
    reference ``users``), so the numeric prefixes matter. Every statement is
    ``IF NOT EXISTS``; running this at each startup is safe.

    Returns:
        Names of the files applied
    """
    if not migrations_dir.exists():
        logger.warning("migrations_directory_not_found", path=str(migrations_dir))
        return []

    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        logger.info("no_migrations_found", path=str(migrations_dir))
        return []

    pool = await get_pool()
    applied = []

    async with pool.acquire() as conn:
        for migration_file in migration_files:
            try:
                await conn.execute(migration_file.read_text())
            except asyncpg.PostgresError as e:
                logger.error("migration_failed", file=migration_file.name, error=str(e))
                raise
            applied.append(migration_file.name)
            logger.info("migration_applied", file=migration_file.name)

    return applied


async def health_check() -> bool:
    """True if a ``SELECT 1`` round-trips; never raises."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False

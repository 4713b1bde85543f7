"""Unit tests for pool lifecycle and migrations."""

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from vidtube import database


@pytest.fixture
def reset_pool():
    database._pool = None
    yield
    database._pool = None


class TestPool:
    async def test_get_pool_before_init(self, reset_pool):
        with pytest.raises(RuntimeError):
            await database.get_pool()

    async def test_init_uses_configured_sizes(self, reset_pool, mock_settings):
        pool = MagicMock()
        mock_settings.db_pool_min_size = 1
        mock_settings.db_pool_max_size = 4

        with (
            patch("vidtube.database.get_settings", return_value=mock_settings),
            patch("vidtube.database.asyncpg.create_pool", new_callable=AsyncMock, return_value=pool) as create_pool,
        ):
            assert await database.init_database() is pool
            assert await database.init_database() is pool

        create_pool.assert_awaited_once()
        assert create_pool.call_args.kwargs["min_size"] == 1
        assert create_pool.call_args.kwargs["max_size"] == 4
        assert await database.get_pool() is pool

    async def test_close_resets_pool(self, reset_pool):
        pool = MagicMock()
        pool.close = AsyncMock()
        database._pool = pool

        await database.close_database()

        pool.close.assert_awaited_once()
        with pytest.raises(RuntimeError):
            await database.get_pool()


class TestMigrations:
    async def test_applies_files_in_name_order(self, reset_pool, mock_pool, tmp_path):
        pool, conn = mock_pool
        database._pool = pool
        (tmp_path / "002_videos.sql").write_text("CREATE TABLE IF NOT EXISTS videos ();")
        (tmp_path / "001_users.sql").write_text("CREATE TABLE IF NOT EXISTS users ();")

        applied = await database.run_migrations(tmp_path)

        assert applied == ["001_users.sql", "002_videos.sql"]
        statements = [c.args[0] for c in conn.execute.call_args_list]
        assert "users" in statements[0]
        assert "videos" in statements[1]

    async def test_failed_migration_propagates(self, reset_pool, mock_pool, tmp_path):
        pool, conn = mock_pool
        database._pool = pool
        (tmp_path / "001_users.sql").write_text("CREATE TABLE broken (")
        conn.execute.side_effect = asyncpg.PostgresSyntaxError("syntax error")

        with pytest.raises(asyncpg.PostgresError):
            await database.run_migrations(tmp_path)

    async def test_missing_directory(self, reset_pool, tmp_path):
        assert await database.run_migrations(tmp_path / "nope") == []

    async def test_shipped_migrations_create_all_tables(self, reset_pool, mock_pool):
        pool, conn = mock_pool
        database._pool = pool

        applied = await database.run_migrations()

        assert applied == ["001_create_users.sql", "002_create_videos_and_subscriptions.sql"]
        sql = " ".join(c.args[0] for c in conn.execute.call_args_list)
        for table in ("users", "videos", "subscriptions"):
            assert f"CREATE TABLE IF NOT EXISTS {table}" in sql


class TestHealthCheck:
    async def test_healthy(self, reset_pool, mock_pool):
        pool, conn = mock_pool
        database._pool = pool
        conn.fetchval.return_value = 1

        assert await database.health_check() is True

    async def test_uninitialized_pool_is_unhealthy(self, reset_pool):
        assert await database.health_check() is False

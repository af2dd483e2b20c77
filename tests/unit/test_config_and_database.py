"""Unit tests for settings and database helpers."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from marketplace import database
from marketplace.config import Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes == 60
        assert settings.refresh_token_expire_days == 7

    def test_cors_origins_list(self):
        settings = Settings(cors_origins="http://a.test, http://b.test,,")

        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_media_enabled_requires_all_credentials(self):
        assert not Settings(
            cloudinary_cloud_name="demo", cloudinary_api_key="k", cloudinary_api_secret=""
        ).media_enabled
        assert Settings(
            cloudinary_cloud_name="demo", cloudinary_api_key="k", cloudinary_api_secret="s"
        ).media_enabled

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")

        assert Settings().access_token_expire_minutes == 15


class TestDatabase:

    async def test_pool_required(self):
        with patch.object(database, "_pool", None):
            with pytest.raises(RuntimeError):
                await database.get_pool()

    async def test_health_check_without_pool(self):
        with patch.object(database, "_pool", None):
            assert await database.health_check() is False

    async def test_health_check(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchval.return_value = 1

        with patch.object(database, "_pool", pool):
            assert await database.health_check() is True

    async def test_migrations_applied_in_order(self, mock_pool):
        pool, conn = mock_pool

        with patch("marketplace.database.get_pool", new_callable=AsyncMock, return_value=pool):
            applied = await database.run_migrations()

        assert applied == [
            "001_users.sql",
            "002_categories.sql",
            "003_products.sql",
            "004_ads.sql",
        ]
        scripts = [c.args[0] for c in conn.execute.call_args_list]
        assert len(scripts) == 4
        assert "CREATE TABLE IF NOT EXISTS users" in scripts[0]
        assert "CREATE TABLE IF NOT EXISTS ads" in scripts[-1]

    def test_migrations_ship_inside_the_package(self):
        assert database.MIGRATIONS_DIR.parent == Path(database.__file__).parent
        assert sorted(p.name for p in database.MIGRATIONS_DIR.glob("*.sql"))

    async def test_missing_migrations_is_an_error(self, tmp_path, mock_pool):
        pool, conn = mock_pool

        with (
            patch.object(database, "MIGRATIONS_DIR", tmp_path),
            patch("marketplace.database.get_pool", new_callable=AsyncMock, return_value=pool),
        ):
            with pytest.raises(RuntimeError, match="No migrations found"):
                await database.run_migrations()

        conn.execute.assert_not_called()

    async def test_failed_migration_propagates(self, mock_pool):
        pool, conn = mock_pool
        conn.execute.side_effect = RuntimeError("syntax error")

        with patch("marketplace.database.get_pool", new_callable=AsyncMock, return_value=pool):
            with pytest.raises(RuntimeError):
                await database.run_migrations()

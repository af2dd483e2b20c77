"""Tests for the administration CLI."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from marketplace.cli import cli
from marketplace.models.user import Role


async def _run_directly(coro_factory):
    return await coro_factory()


@pytest.fixture
def user_service():
    with (
        patch("marketplace.cli._with_database", new=_run_directly),
        patch("marketplace.cli.UserService") as MockUserService,
    ):
        yield MockUserService.return_value


class TestCreateAdmin:

    def test_creates_new_admin(self, user_service):
        user_service.get_by_email = AsyncMock(return_value=None)
        user_service.create_user = AsyncMock()

        result = CliRunner().invoke(
            cli,
            ["create-admin", "--email", "Root@Example.com", "--password", "long-enough-pw"],
        )

        assert result.exit_code == 0, result.output
        assert "Created admin root@example.com." in result.output
        kwargs = user_service.create_user.call_args.kwargs
        assert kwargs["role"] == Role.ADMIN
        assert kwargs["email"] == "root@example.com"
        assert kwargs["password_hash"].startswith("$2")

    def test_promotes_existing_user(self, user_service, make_user):
        existing = make_user(email="root@example.com")
        user_service.get_by_email = AsyncMock(return_value=(existing, "hash"))
        user_service.set_role = AsyncMock()

        result = CliRunner().invoke(
            cli,
            ["create-admin", "--email", "root@example.com", "--password", "long-enough-pw"],
        )

        assert result.exit_code == 0, result.output
        assert "Promoted existing user" in result.output
        user_service.set_role.assert_awaited_once_with(existing.id, Role.ADMIN)

    def test_existing_admin_left_alone(self, user_service, make_user):
        existing = make_user(email="root@example.com", role=Role.ADMIN)
        user_service.get_by_email = AsyncMock(return_value=(existing, "hash"))
        user_service.set_role = AsyncMock()

        result = CliRunner().invoke(
            cli,
            ["create-admin", "--email", "root@example.com", "--password", "long-enough-pw"],
        )

        assert "already an admin" in result.output
        user_service.set_role.assert_not_called()

    def test_short_password_rejected(self, user_service):
        user_service.get_by_email = AsyncMock()

        result = CliRunner().invoke(
            cli, ["create-admin", "--email", "root@example.com", "--password", "short"]
        )

        assert result.exit_code == 2
        user_service.get_by_email.assert_not_called()

    def test_password_over_bcrypt_limit_rejected(self, user_service):
        user_service.get_by_email = AsyncMock()

        result = CliRunner().invoke(
            cli, ["create-admin", "--email", "root@example.com", "--password", "p" * 73]
        )

        assert result.exit_code == 2
        assert "72 bytes" in result.output
        user_service.get_by_email.assert_not_called()


class TestMigrate:

    def test_runs_migrations(self):
        with (
            patch("marketplace.cli._with_database", new=_run_directly),
            patch(
                "marketplace.cli.database.run_migrations",
                new_callable=AsyncMock,
                return_value=["001_users.sql", "002_categories.sql"],
            ) as run,
        ):
            result = CliRunner().invoke(cli, ["migrate"])

        assert result.exit_code == 0, result.output
        assert "Applied 2 migrations." in result.output
        run.assert_awaited_once()

    def test_fails_when_no_migrations_found(self, tmp_path, mock_pool):
        pool, conn = mock_pool
        with (
            patch("marketplace.cli._with_database", new=_run_directly),
            patch("marketplace.database.MIGRATIONS_DIR", tmp_path / "missing"),
            patch("marketplace.database.get_pool", new_callable=AsyncMock, return_value=pool),
        ):
            result = CliRunner().invoke(cli, ["migrate"])

        assert result.exit_code == 1
        assert "No migrations found" in result.output
        assert "Applied" not in result.output
        conn.execute.assert_not_called()

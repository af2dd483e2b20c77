"""Click CLI for database setup and admin bootstrap."""

import asyncio
import sys

import click
from dotenv import load_dotenv

from marketplace import database
from marketplace.config import get_settings
from marketplace.models.auth import MAX_PASSWORD_BYTES
from marketplace.models.user import Role
from marketplace.services.auth_service import AuthService
from marketplace.services.logging_service import configure_logging
from marketplace.services.user_service import UserService


@click.group()
def cli() -> None:
    """Marketplace API administration commands."""
    load_dotenv()
    configure_logging(get_settings().log_level)


async def _with_database(coro_factory):
    await database.init_database()
    try:
        return await coro_factory()
    finally:
        await database.close_database()


@cli.command()
def migrate() -> None:
    """Apply SQL migrations."""
    try:
        applied = asyncio.run(_with_database(database.run_migrations))
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Applied {len(applied)} migrations.")


async def _create_admin(
    email: str, password: str, first_name: str, last_name: str
) -> str:
    users = UserService()
    existing = await users.get_by_email(email)

    if existing is not None:
        user, _ = existing
        if user.role != Role.ADMIN:
            await users.set_role(user.id, Role.ADMIN)
            return f"Promoted existing user {email} to admin."
        return f"{email} is already an admin."

    await users.create_user(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=AuthService().hash_password(password),
        role=Role.ADMIN,
    )
    return f"Created admin {email}."


@cli.command("create-admin")
@click.option("--email", required=True, help="Login email of the admin.")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password; prompted for when omitted.",
)
@click.option("--first-name", default="Admin", show_default=True)
@click.option("--last-name", default="User", show_default=True)
def create_admin(email: str, password: str, first_name: str, last_name: str) -> None:
    """Create an admin account, or promote an existing user."""
    if len(password) < 8:
        click.echo("Password must be at least 8 characters.", err=True)
        sys.exit(2)
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        click.echo(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes.", err=True)
        sys.exit(2)

    message = asyncio.run(
        _with_database(
            lambda: _create_admin(email.strip().lower(), password, first_name, last_name)
        )
    )
    click.echo(message)


if __name__ == "__main__":
    cli()

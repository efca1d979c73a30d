"""Command line interface for the ObaNet auth service."""

import asyncio
import sys
import uuid
from pathlib import Path

import click
from alembic import command
from alembic.config import Config
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from obanet.core.auth.entities import DiasporaProfile, User
from obanet.core.auth.services import PasswordService
from obanet.core.domain.enums import UserRole
from obanet.core.exceptions import DomainException
from obanet.infrastructure.cache.redis_client import RedisClient
from obanet.infrastructure.database.connection import DatabaseManager
from obanet.infrastructure.database.models import UserModel
from obanet.infrastructure.database.repositories.user_repository import SqlUserRepository
from obanet.utils.clock import utc_now
from obanet.utils.logging import setup_logging
from obanet.settings import get_settings


def get_alembic_config() -> Config:
    """Get Alembic configuration."""
    project_root = Path(__file__).parent.parent
    alembic_ini_path = project_root / "alembic.ini"
    return Config(str(alembic_ini_path))


@click.group()
def cli():
    """ObaNet auth service CLI."""
    setup_logging()


@cli.command()
def init_db():
    """Create all tables directly from the models (development only)."""
    click.echo("Initializing database...")

    async def init():
        database = DatabaseManager(get_settings())
        await database.initialize()
        try:
            await database.create_all()
        finally:
            await database.close()

    asyncio.run(init())
    click.echo("Database initialized successfully!")


@cli.command()
def migrate():
    """Run database migrations to the latest version."""
    click.echo("Running database migrations...")
    alembic_cfg = get_alembic_config()
    command.upgrade(alembic_cfg, "head")
    click.echo("Migrations completed successfully!")


@cli.command()
@click.option('--message', '-m', required=True, help='Migration message')
def create_migration(message: str):
    """Create a new migration file."""
    click.echo(f"Creating migration: {message}")
    alembic_cfg = get_alembic_config()
    command.revision(alembic_cfg, message=message, autogenerate=True)
    click.echo("Migration created successfully!")


@cli.command()
def current():
    """Show current migration version."""
    alembic_cfg = get_alembic_config()
    command.current(alembic_cfg, verbose=True)


@cli.command()
def history():
    """Show migration history."""
    alembic_cfg = get_alembic_config()
    command.history(alembic_cfg, verbose=True)


@cli.command()
@click.option('--revision', '-r', default="-1", help='Revision to downgrade to')
@click.confirmation_option(prompt="Are you sure you want to downgrade the database?")
def downgrade(revision: str):
    """Downgrade database to a previous migration."""
    click.echo(f"Downgrading to revision: {revision}")
    alembic_cfg = get_alembic_config()
    command.downgrade(alembic_cfg, revision)
    click.echo("Downgrade completed successfully!")


@cli.command()
def check_db():
    """Check database connectivity and health."""
    click.echo("Checking database health...")

    async def check():
        database = DatabaseManager(get_settings())
        await database.initialize()
        try:
            async with database.get_session() as session:
                await session.execute(text("SELECT 1"))
                click.echo("✓ Database connection is healthy")
                users = await session.scalar(select(func.count()).select_from(UserModel))
                click.echo(f"  - users: {users} records")
        except SQLAlchemyError as e:
            click.echo(f"✗ Database connection failed: {e}")
            return 1
        finally:
            await database.close()
        return 0

    sys.exit(asyncio.run(check()))


@cli.command()
def test_redis():
    """Test Redis connectivity."""
    click.echo("Testing Redis connection...")

    async def test():
        settings = get_settings()
        redis_client = RedisClient(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            connect_timeout=settings.redis_connect_timeout,
        )
        try:
            if not await redis_client.ping():
                click.echo("✗ Redis ping failed")
                return 1
            click.echo("✓ Redis connection is healthy")

            test_key = "cli_test_key"
            await redis_client.set(test_key, "test_value", 10)
            if await redis_client.get(test_key) == "test_value":
                click.echo("✓ Redis set/get operations work correctly")
            else:
                click.echo("✗ Redis set/get operations failed")
            await redis_client.delete(test_key)
        finally:
            await redis_client.disconnect()
        return 0

    sys.exit(asyncio.run(test()))


@cli.command()
def show_config():
    """Display current configuration settings."""
    settings = get_settings()

    click.echo("Current configuration:")
    click.echo(f"  Environment: {settings.environment}")
    click.echo(f"  Debug: {settings.debug}")
    click.echo(f"  Database URL: {settings.database_url}")
    click.echo(f"  Redis URL: {settings.redis_url}")
    click.echo(f"  JWT Algorithm: {settings.jwt_algorithm}")
    click.echo(f"  Access token expire: {settings.access_token_expire_minutes} minutes")
    click.echo(f"  Refresh token expire: {settings.refresh_token_expire_days} days")
    click.echo(f"  Bcrypt rounds: {settings.bcrypt_rounds}")
    click.echo(f"  Rate limiting: {'enabled' if settings.rate_limit_enabled else 'disabled'}")


@cli.command()
@click.option('--email', required=True, help='Admin email address')
@click.option('--username', required=True, help='Admin username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--first-name', default="Admin", show_default=True)
@click.option('--last-name', default="ObaNet", show_default=True)
@click.option('--country', default="Other", show_default=True)
@click.option('--city', default="Unknown", show_default=True)
def create_admin(
    email: str,
    username: str,
    password: str,
    first_name: str,
    last_name: str,
    country: str,
    city: str,
):
    """Create an administrator account with a verified email."""
    settings = get_settings()

    async def create():
        database = DatabaseManager(settings)
        await database.initialize()
        try:
            async with database.get_session() as session:
                repository = SqlUserRepository(session)
                if await repository.get_user_by_email(email):
                    click.echo(f"✗ A user with email {email} already exists")
                    return 1
                if await repository.get_user_by_username(username):
                    click.echo(f"✗ A user with username {username} already exists")
                    return 1

                now = utc_now()
                user = await repository.create_user(
                    User(
                        id=str(uuid.uuid4()),
                        first_name=first_name,
                        last_name=last_name,
                        username=username.strip().lower(),
                        email=email.strip().lower(),
                        hashed_password=PasswordService(settings.bcrypt_rounds).hash_password(password),
                        diaspora_profile=DiasporaProfile(
                            current_country=country,
                            current_city=city,
                            origin_city=city,
                        ),
                        role=UserRole.ADMIN,
                        is_email_verified=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except DomainException as e:
            click.echo(f"✗ Could not create admin: {e.message}")
            return 1
        finally:
            await database.close()

        click.echo(f"✓ Admin {user.username} created with id {user.id}")
        return 0

    sys.exit(asyncio.run(create()))


if __name__ == "__main__":
    cli()

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from rewards_api.core.settings import settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def get_metadata():
    from rewards_api.db.base import Base  # noqa: WPS433 (late import)

    return Base.metadata


def migration_url() -> str:
    """Database URL for migrations; ``alembic -x database_url=...`` wins over settings."""

    url = context.get_x_argument(as_dictionary=True).get("database_url") or settings.database_url
    for async_prefix, sync_prefix in SYNC_DRIVERS.items():
        if url.startswith(f"{async_prefix}://"):
            return sync_prefix + url[len(async_prefix):]
    return url


def run_migrations_offline():
    """Emit SQL for the ledger store schema without a live connection."""
    context.configure(
        url=migration_url(),
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    url = migration_url()
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=get_metadata(),
            compare_type=True,
            # SQLite cannot ALTER most constraints in place
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

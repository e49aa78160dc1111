import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from microloan import models  # noqa: F401  registers every table on Base.metadata
from microloan.core.settings import settings
from microloan.db.base import Base
from microloan.db.url import normalize_database_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def resolve_url() -> str:
    """Application settings win over alembic.ini so both share DATABASE_URL."""
    return normalize_database_url(settings.database_url or config.get_main_option("sqlalchemy.url"))


def _configure(**options) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **options)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    _configure(url=resolve_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})


def _run_with_connection(connection: Connection) -> None:
    # SQLite cannot ALTER constraints in place.
    _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")


async def run_online() -> None:
    engine = create_async_engine(resolve_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())

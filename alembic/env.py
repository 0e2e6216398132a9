from __future__ import annotations

from alembic import context
from sqlalchemy import engine_from_config, pool

from solsync.core.config import settings
from solsync.models import Base  # noqa: F401  imports register every table on Base.metadata

config = context.config

# Logging goes through loguru (solsync.core.logging intercepts stdlib loggers),
# so alembic.ini's logging sections are not applied here.

target_metadata = Base.metadata


def _resolve_database_url() -> str:
    """sqlalchemy.url set by the caller (run_migrations) wins over DATABASE_URL."""
    url = (config.get_main_option("sqlalchemy.url") or "").strip()
    return url or settings.DATABASE_URL


def run_migrations_offline() -> None:
    context.configure(
        url=_resolve_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _resolve_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

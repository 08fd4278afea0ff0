"""Alembic environment for the storefront documents schema."""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context
from storefront.config import settings
from storefront.db.migration_runner import sync_database_url
from storefront.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# URL set by the migration runner wins over the environment
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option(
        "sqlalchemy.url", sync_database_url(settings.database_url).replace("%", "%%")
    )

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

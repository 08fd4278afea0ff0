"""
Migration Runner - Applies Alembic migrations for the documents table.

Used at application startup when ``run_migrations_on_startup`` is set.
"""

from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from storefront.config import settings

logger = get_logger(__name__)

# alembic.ini lives at the project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


def sync_database_url(url: str) -> str:
    """
    Convert an async driver URL to its synchronous equivalent.

    Alembic's command API uses synchronous connections.
    """
    return url.replace("+asyncpg", "+psycopg2")


def _alembic_config(sync_url: str) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url.replace("%", "%%"))
    return alembic_cfg


def _get_current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def _get_head_revision(alembic_cfg: Config) -> str | None:
    return ScriptDirectory.from_config(alembic_cfg).get_current_head()


def run_migrations() -> None:
    """
    Upgrade the database to the latest revision if it is behind.

    Raises:
        RuntimeError: If a migration fails
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    sync_url = sync_database_url(settings.database_url)
    alembic_cfg = _alembic_config(sync_url)
    engine = create_engine(sync_url)

    try:
        current = _get_current_revision(engine)
        head = _get_head_revision(alembic_cfg)
        if current == head:
            logger.info("database_schema_up_to_date", revision=current)
            return

        logger.info("database_migration_started", current=current, head=head)
        command.upgrade(alembic_cfg, "head")
        logger.info("database_migration_completed", revision=_get_current_revision(engine))

    except Exception as e:
        logger.error("database_migration_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
    finally:
        engine.dispose()

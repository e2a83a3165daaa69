"""Programmatic Alembic migrations."""

import logging
from pathlib import Path

from alembic.config import Config

from alembic import command

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def run_migrations(db_path: Path) -> None:
    """Upgrade the database at ``db_path`` to the latest schema revision.

    Creates the database file if it does not exist. This function is
    synchronous; async callers should run it with ``asyncio.to_thread``.

    Args:
        db_path: Path to the SQLite database file.
    """
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path.resolve()}")
    config.attributes["configure_logger"] = False

    logger.debug("Running database migrations.", extra={"db_path": str(db_path)})
    command.upgrade(config, "head")

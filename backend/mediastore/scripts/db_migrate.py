"""Bring the database schema to the latest alembic revision.

Databases created by ``Base.metadata.create_all`` (the app does this on
startup) have the tables but no ``alembic_version``; those are stamped at head
instead of being migrated from scratch.
"""
import logging
import os
import sys

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import SQLAlchemyError

from mediastore.core.config import settings
from mediastore.core.database import sync_database_url

logger = logging.getLogger("mediastore")

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
CORE_TABLES = ("users", "files", "storage")


def alembic_config(url: str) -> Config:
    config = Config(os.path.join(BACKEND_DIR, "alembic.ini"))
    config.set_main_option("script_location", os.path.join(BACKEND_DIR, "alembic"))
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def needs_stamp(url: str) -> bool:
    engine = create_engine(url)
    try:
        insp = inspect(engine)
        has_alembic = insp.has_table("alembic_version")
        existing_core_tables = any(insp.has_table(t) for t in CORE_TABLES)
    finally:
        engine.dispose()
    logger.info("has_alembic=%s existing_core_tables=%s", has_alembic, existing_core_tables)
    return existing_core_tables and not has_alembic


def migrate(database_url: str | None = None) -> None:
    url = database_url or sync_database_url(settings.DATABASE_URL)
    config = alembic_config(url)
    if needs_stamp(url):
        logger.info("Existing tables without alembic_version, stamping head")
        command.stamp(config, "head")
    command.upgrade(config, "head")


def main():
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        migrate()
    except SQLAlchemyError as e:
        logger.error("Migration failed: %s", e)
        sys.exit(1)

if __name__ == "__main__":
    main()

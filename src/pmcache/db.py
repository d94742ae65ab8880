"""Database helpers."""

import logging
import sqlite3
from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.engine.interfaces import DBAPIConnection
from sqlalchemy.event import listens_for
from sqlalchemy.pool import ConnectionPoolEntry
from sqlmodel import Session, SQLModel, select

from .constants import SCHEMA_VERSION, db_url
from .models import SchemaVersion

logger = logging.getLogger(__name__)


@listens_for(Engine, "connect", insert=True)
def on_engine_connect(
    dbapi_connection: DBAPIConnection,
    connection_record: ConnectionPoolEntry,
) -> None:
    """Event listener for synchronous engine connections."""
    try:
        if isinstance(dbapi_connection, sqlite3.Connection):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()
            logger.debug("Enabled SQLite foreign key support.")
    except Exception as e:
        logger.exception(f"Error setting SQLite PRAGMA: {e}")
        raise e


def create_db_engine(db_path: Path) -> Engine:
    return sa.create_engine(db_url(db_path))


def get_schema_version(engine: Engine) -> int | None:
    """Return the stored schema version, or None for an empty/foreign database."""
    if not sa.inspect(engine).has_table(SchemaVersion.__tablename__):
        return None
    with Session(engine) as session:
        row = session.exec(select(SchemaVersion)).first()
        return row.version if row else None


def reset_schema(engine: Engine) -> None:
    """Drop every table in the database and create the current layout.

    There are no migrations: the database only caches data that can be
    fetched again, so any layout change simply starts from scratch.
    """
    existing = sa.MetaData()
    existing.reflect(bind=engine)
    with engine.begin() as conn:
        existing.drop_all(conn)
        SQLModel.metadata.create_all(conn)
        conn.execute(sa.insert(SchemaVersion.__table__).values(version=SCHEMA_VERSION))


def ensure_schema(engine: Engine) -> None:
    """Make sure the database has the current schema, resetting it if not."""
    version = get_schema_version(engine)
    if version == SCHEMA_VERSION:
        return
    if version is None:
        logger.debug(f"Creating database schema version {SCHEMA_VERSION}")
    else:
        logger.warning(f"Database schema version {version} is not {SCHEMA_VERSION}, recreating package database")
    reset_schema(engine)

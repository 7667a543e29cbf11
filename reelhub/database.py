"""Database setup with SQLModel and async SQLAlchemy."""

import logging
import sqlalchemy
from sqlalchemy import text as sa_text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from reelhub.config import settings

# Import all models so their tables are registered with SQLModel.metadata
from reelhub.models import (  # noqa: F401
    AdminConfigRow,
    FavoriteRow,
    PlayRecordRow,
    SearchHistoryRow,
    SkipConfigRow,
    UserRow,
    UserSettingsRow,
)

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite connections get WAL and relaxed sync."""
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}
    new_engine = create_async_engine(url, echo=echo, future=True, connect_args=connect_args)

    if _is_sqlite(url):

        @sqlalchemy.event.listens_for(new_engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return new_engine


engine = create_engine(settings.database_url, echo=settings.debug)

# Async session factory
async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(target_engine: AsyncEngine | None = None) -> None:
    """Initialize the database, creating all tables."""
    eng = target_engine or engine
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    if _is_sqlite(str(eng.url)):
        await _migrate_schema(eng)

    logger.info("Database initialized successfully")


def _get_expected_columns(table_name: str) -> set[str]:
    """Get expected column names from the SQLModel metadata for a table."""
    table = SQLModel.metadata.tables.get(table_name)
    if table is None:
        return set()
    return {col.name for col in table.columns}


async def _get_actual_columns(conn, table_name: str) -> set[str]:
    """Get actual column names from the database for a table."""
    result = await conn.execute(sa_text(f"PRAGMA table_info('{table_name}')"))
    rows = result.fetchall()
    return {row[1] for row in rows}  # column name is at index 1


async def _migrate_schema(target_engine: AsyncEngine | None = None) -> None:
    """Add columns that newer models declare but an older SQLite file lacks.

    User data is never dropped. Columns removed from the models are left in
    place and simply ignored. Idempotent: no-op when the schema already matches.
    """
    eng = target_engine or engine

    async with eng.begin() as conn:
        result = await conn.execute(sa_text("SELECT name FROM sqlite_master WHERE type='table'"))
        existing_tables = {row[0] for row in result.fetchall()}

        for table_name, table in SQLModel.metadata.tables.items():
            if table_name not in existing_tables:
                continue
            actual_cols = await _get_actual_columns(conn, table_name)
            missing = _get_expected_columns(table_name) - actual_cols
            for col_name in sorted(missing):
                column = table.columns[col_name]
                col_type = column.type.compile(dialect=conn.dialect)
                logger.info(f"Adding column {table_name}.{col_name} ({col_type})")
                await conn.execute(
                    sa_text(f"ALTER TABLE {table_name} ADD COLUMN {col_name} {col_type}")
                )


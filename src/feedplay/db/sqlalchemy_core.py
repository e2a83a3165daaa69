"""Core async database components using SQLAlchemy and SQLModel."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
from pathlib import Path
import sqlite3
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import CursorResult, Result
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import ConnectionPoolEntry

from ..exceptions import DatabaseOperationError, NotFoundError

logger = logging.getLogger(__name__)

DB_FILE_NAME = "feedplay.db"


class SqlalchemyCore:
    """Own the async engine and hand out read and write sessions.

    Writers are serialized behind a single asyncio lock so that every
    mutating operation runs alone; readers use their own pooled connections
    and, with SQLite in WAL mode, see a consistent snapshot while a write is
    in flight.

    Attributes:
        engine: The async SQLAlchemy engine.
        async_session_maker: Factory for new sessions.
    """

    def __init__(self, db_path: Path, pool_size: int = 5) -> None:
        db_url = f"sqlite+aiosqlite:///{db_path.resolve()}"
        self.engine: AsyncEngine = create_async_engine(
            db_url,
            echo=logger.isEnabledFor(logging.DEBUG),
            pool_size=pool_size,
            connect_args={
                "check_same_thread": False,
                "timeout": 60.0,
            },
        )
        event.listen(self.engine.sync_engine, "connect", _set_sqlite_pragmas)
        self.async_session_maker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Provide a session for read-only work.

        Yields:
            An AsyncSession that is closed when the block exits.
        """
        async with self.async_session_maker() as session:
            yield session

    @asynccontextmanager
    async def write_session(self) -> AsyncGenerator[AsyncSession]:
        """Provide an exclusive, transactional session.

        The transaction commits when the block exits normally and rolls back
        if it raises, so a mutating operation is either fully applied or not
        applied at all.

        Yields:
            An AsyncSession with an open transaction.
        """
        async with self._write_lock:
            async with self.async_session_maker() as session:
                async with session.begin():
                    yield session

    async def close(self) -> None:
        """Close the database engine and all its connections."""
        await self.engine.dispose()

    @staticmethod
    def as_cursor_result(result: Result[Any]) -> CursorResult[Any]:
        """Coerce a Result to a CursorResult.

        Args:
            result: Result object returned by ``AsyncSession.execute``.

        Returns:
            The result as a :class:`CursorResult` so rowcount is available.

        Raises:
            DatabaseOperationError: If the result is not backed by a cursor.
        """
        if isinstance(result, CursorResult):
            return result
        raise DatabaseOperationError(
            f"Expected cursor-backed SQLAlchemy result, got {type(result).__name__}.",
        )

    @staticmethod
    def assert_exactly_one_row_affected(
        result: Result[Any], **identifiers: int | None
    ) -> None:
        """Validate that exactly one row was affected by an update operation.

        Args:
            result: The result from the update operation.
            **identifiers: Key-value pairs identifying the entity (e.g., feed_id=3).

        Raises:
            NotFoundError: If no rows were affected.
            DatabaseOperationError: If more than one row was affected.
        """
        match SqlalchemyCore.as_cursor_result(result).rowcount:
            case 0:
                raise NotFoundError("Record not found.")
            case 1:
                pass
            case rowcount:
                raise DatabaseOperationError(
                    f"Update affected {rowcount} rows, expected 1.", **identifiers
                )


def _set_sqlite_pragmas(
    dbapi_connection: sqlite3.Connection, _connection_record: ConnectionPoolEntry
) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL;")
    cursor.execute("PRAGMA synchronous = NORMAL;")
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.close()

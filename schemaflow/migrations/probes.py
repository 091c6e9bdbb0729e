"""
Schema probes used by migrations to report "already applied".

All helpers run SQLAlchemy's inspector on the session's connection, so they
work on both SQLite and PostgreSQL without information_schema queries.
"""
from typing import Callable, TypeVar

from sqlalchemy import inspect
from sqlalchemy.engine import Inspector
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar('T')


async def run_inspector(session: AsyncSession, check: Callable[[Inspector], T]) -> T:
    """Run a synchronous inspector callback against the session's connection."""
    connection = await session.connection()
    return await connection.run_sync(lambda sync_conn: check(inspect(sync_conn)))


async def table_exists(session: AsyncSession, table_name: str) -> bool:
    return await run_inspector(session, lambda insp: insp.has_table(table_name))


async def column_exists(session: AsyncSession, table_name: str, column_name: str) -> bool:
    def check(insp: Inspector) -> bool:
        if not insp.has_table(table_name):
            return False
        return any(col['name'] == column_name for col in insp.get_columns(table_name))

    return await run_inspector(session, check)


async def index_exists(session: AsyncSession, table_name: str, index_name: str) -> bool:
    def check(insp: Inspector) -> bool:
        if not insp.has_table(table_name):
            return False
        return any(idx['name'] == index_name for idx in insp.get_indexes(table_name))

    return await run_inspector(session, check)

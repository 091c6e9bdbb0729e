"""
Reusable migration types with built-in probes.

Each type knows how to tell whether its change is already present, so the
executor can skip apply() instead of relying on hand-written guards.
"""
from dataclasses import dataclass
from typing import Tuple

from sqlalchemy import column, func, select, table, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from .migration import Migration, execute_script
from .probes import column_exists, index_exists, table_exists


@dataclass(frozen=True, repr=False)
class AddColumnsMigration(Migration):
    """
    Add columns to an existing table, then run optional follow-up SQL.

    Attributes:
        table_name: Table to alter
        columns: (column_name, column_ddl) pairs,
            e.g. ('total_capacity', 'total_capacity INTEGER DEFAULT 0')
        followup_sql: Statements run after the columns exist (seed data,
            indexes); must be idempotent on their own
        indexes: Index names the follow-up SQL creates on table_name
    """

    table_name: str = ''
    columns: Tuple[Tuple[str, str], ...] = ()
    followup_sql: str = ''
    indexes: Tuple[str, ...] = ()

    async def probe(self, session: AsyncSession) -> bool:
        for column_name, _ in self.columns:
            if not await column_exists(session, self.table_name, column_name):
                return False
        for index_name in self.indexes:
            if not await index_exists(session, self.table_name, index_name):
                return False
        return True

    async def apply(self, session: AsyncSession) -> None:
        for column_name, ddl in self.columns:
            if not await column_exists(session, self.table_name, column_name):
                await session.execute(text(f'ALTER TABLE {self.table_name} ADD COLUMN {ddl}'))
        if self.followup_sql:
            await execute_script(session, self.followup_sql)


@dataclass(frozen=True, repr=False)
class CreateIndexesMigration(Migration):
    """
    Create indexes.

    Attributes:
        indexes: (index_name, table_name, column_list) triples,
            e.g. ('idx_shipments_order_ref', 'shipments', 'order_ref')
    """

    indexes: Tuple[Tuple[str, str, str], ...] = ()

    async def probe(self, session: AsyncSession) -> bool:
        for index_name, table_name, _ in self.indexes:
            if not await index_exists(session, table_name, index_name):
                return False
        return True

    async def apply(self, session: AsyncSession) -> None:
        for index_name, table_name, columns in self.indexes:
            await session.execute(text(
                f'CREATE INDEX IF NOT EXISTS {index_name} ON {table_name}({columns})'
            ))


@dataclass(frozen=True, repr=False)
class CreateTablesMigration(Migration):
    """
    Create tables (and their indexes) from a SQL script.

    Attributes:
        tables: Table names the script creates
        sql: Script using CREATE ... IF NOT EXISTS
        indexes: (index_name, table_name) pairs the script creates
        columns: (table_name, column_name, column_ddl) triples added after
            the script when missing, for tables created by older releases

    Applied means every table, index and column is present.
    """

    tables: Tuple[str, ...] = ()
    sql: str = ''
    indexes: Tuple[Tuple[str, str], ...] = ()
    columns: Tuple[Tuple[str, str, str], ...] = ()

    async def probe(self, session: AsyncSession) -> bool:
        for table_name in self.tables:
            if not await table_exists(session, table_name):
                return False
        for index_name, table_name in self.indexes:
            if not await index_exists(session, table_name, index_name):
                return False
        for table_name, column_name, _ in self.columns:
            if not await column_exists(session, table_name, column_name):
                return False
        return bool(self.tables)

    async def apply(self, session: AsyncSession) -> None:
        await execute_script(session, self.sql)
        for table_name, column_name, ddl in self.columns:
            if not await column_exists(session, table_name, column_name):
                await session.execute(text(f'ALTER TABLE {table_name} ADD COLUMN {ddl}'))


@dataclass(frozen=True, repr=False)
class ReplaceValuesMigration(Migration):
    """
    Replace literal column values (data clean-up).

    Only rows holding an exact pre-fix literal are touched, so running it
    again against corrected data is a no-op. Replacements must not chain
    (no new value may also appear as an old value).

    Attributes:
        table_name: Table to update
        column_name: Column holding the values
        replacements: (old_value, new_value) pairs
        touch_updated_at: Also set updated_at = CURRENT_TIMESTAMP
    """

    table_name: str = ''
    column_name: str = ''
    replacements: Tuple[Tuple[str, str], ...] = ()
    touch_updated_at: bool = True

    def __post_init__(self):
        super().__post_init__()
        old_values = {old for old, _ in self.replacements}
        chained = sorted(new for _, new in self.replacements if new in old_values)
        if chained:
            raise ValueError(
                f"Migration {self.name} has chained replacements: {chained}"
            )

    def _table(self):
        columns = [column(self.column_name)]
        if self.touch_updated_at:
            columns.append(column('updated_at'))
        return table(self.table_name, *columns)

    async def probe(self, session: AsyncSession) -> bool:
        target = self._table()
        old_values = [old for old, _ in self.replacements]
        query = (
            select(target.c[self.column_name])
            .where(target.c[self.column_name].in_(old_values))
            .limit(1)
        )
        return (await session.execute(query)).first() is None

    async def apply(self, session: AsyncSession) -> None:
        target = self._table()
        for old_value, new_value in self.replacements:
            values = {self.column_name: new_value}
            if self.touch_updated_at:
                values['updated_at'] = func.current_timestamp()
            await session.execute(
                update(target)
                .where(target.c[self.column_name] == old_value)
                .values(**values)
            )

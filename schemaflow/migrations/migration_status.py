"""
Read-only status queries over the migration history table.

Never writes and never creates the table: on a database where no run has
happened yet every query returns an empty list.
"""
import logging
from typing import List, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from schemaflow.errors import PersistenceError
from schemaflow.models import HISTORY_TABLE, MigrationHistory

from .migration import HistoryRecord, MigrationStatus, sort_records
from .probes import table_exists

logger = logging.getLogger(__name__)


class StatusReporter:
    """
    Operational view of migration history.

    Example:
        reporter = StatusReporter(database)
        for record in await reporter.list_by_status('FAILED'):
            print(record.name, record.error_message)
    """

    def __init__(self, database):
        self.database = database

    async def list_all(self) -> List[HistoryRecord]:
        """All records ordered by version."""
        return sort_records(await self._fetch(select(MigrationHistory)))

    async def list_by_status(self, status: Union[MigrationStatus, str]) -> List[HistoryRecord]:
        """Records with the given status, ordered by version."""
        status = MigrationStatus(status)
        query = select(MigrationHistory).where(MigrationHistory.status == status.value)
        return sort_records(await self._fetch(query))

    async def list_recent(self, limit: int = 10) -> List[HistoryRecord]:
        """Most recently started records first."""
        if limit < 1:
            return []
        query = (
            select(MigrationHistory)
            .order_by(MigrationHistory.executed_at.desc(), MigrationHistory.id.desc())
            .limit(limit)
        )
        return await self._fetch(query)

    async def _fetch(self, query) -> List[HistoryRecord]:
        try:
            async with self.database.session() as session:
                if not await table_exists(session, HISTORY_TABLE):
                    logger.debug('No %s table yet', HISTORY_TABLE)
                    return []
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot read migration history: {e}") from e

        return [HistoryRecord.from_row(row) for row in rows]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Durable history store for migration attempts.

Tracks one row per (name, version) in the migration_history table. Every
write is committed in its own session so the table reflects true partial
progress even if the process dies mid-run.

Only the orchestrator writes through this class.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from schemaflow.errors import ConflictError, PersistenceError
from schemaflow.models import HISTORY_TABLE, Base, MigrationHistory

from .migration import HistoryRecord, Migration, MigrationStatus
from .probes import table_exists

# Statuses a new attempt may replace
REPLACEABLE_STATUSES = (MigrationStatus.PENDING.value, MigrationStatus.FAILED.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _duration_ms(started: datetime, finished: datetime) -> int:
    # SQLite hands back naive datetimes; compare like with like
    if started.tzinfo is None:
        finished = finished.replace(tzinfo=None)
    return max(0, int((finished - started).total_seconds() * 1000))


class MigrationHistoryStore:
    """
    Reads and writes migration_history rows.

    Attributes:
        database: MigrationDatabase (connection provider)
        logger: Logger for persistence tracking

    Example:
        store = MigrationHistoryStore(database)
        await store.ensure_schema()
        started = await store.start(migration)
        record = await store.finish(migration, MigrationStatus.COMPLETED, started)
    """

    def __init__(self, database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    async def ensure_schema(self) -> None:
        """Create the history table if it does not exist.

        Safe to call multiple times.

        Raises:
            PersistenceError: On table creation failure
        """
        try:
            async with self.database.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot create migration history table: {e}") from e

        self.logger.debug("Ensured migration_history table exists")

    async def get(self, name: str, version: str) -> Optional[HistoryRecord]:
        """Fetch the record for (name, version), or None.

        Raises:
            PersistenceError: On query failure
        """
        query = select(MigrationHistory).where(
            MigrationHistory.name == name,
            MigrationHistory.version == version,
        )
        try:
            async with self.database.session() as session:
                row = (await session.execute(query)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Cannot read history for {name} v{version}: {e}"
            ) from e

        return HistoryRecord.from_row(row) if row is not None else None

    async def start(self, migration: Migration) -> datetime:
        """
        Record a RUNNING attempt.

        A previous FAILED or PENDING row for the same (name, version) is
        replaced in the same transaction. Any other existing row (RUNNING
        from another writer or a crashed run) violates the unique
        constraint.

        Returns:
            executed_at timestamp of the new record

        Raises:
            ConflictError: If another RUNNING/terminal row already exists
            PersistenceError: On any other database failure
        """
        executed_at = utcnow()
        try:
            async with self.database.session() as session:
                await session.execute(
                    delete(MigrationHistory).where(
                        MigrationHistory.name == migration.name,
                        MigrationHistory.version == migration.version,
                        MigrationHistory.status.in_(REPLACEABLE_STATUSES),
                    )
                )
                await session.execute(
                    insert(MigrationHistory).values(
                        name=migration.name,
                        version=migration.version,
                        status=MigrationStatus.RUNNING.value,
                        error_message=None,
                        executed_at=executed_at,
                        completed_at=None,
                        duration_ms=None,
                    )
                )
        except IntegrityError as e:
            raise ConflictError(
                f"Migration {migration.name} v{migration.version} already has a "
                f"history record; another run may be in progress or a previous "
                f"run stopped while it was RUNNING",
                name=migration.name,
                version=migration.version,
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Cannot record start of {migration.name} v{migration.version}: {e}"
            ) from e

        return executed_at

    async def finish(
        self,
        migration: Migration,
        status: MigrationStatus,
        executed_at: datetime,
        error_message: Optional[str] = None,
    ) -> HistoryRecord:
        """
        Move a RUNNING record to its terminal status.

        Args:
            migration: Migration that was executed
            status: COMPLETED, FAILED or SKIPPED
            executed_at: Value returned by start()
            error_message: Error detail (stored only for FAILED)

        Returns:
            The terminal HistoryRecord

        Raises:
            ConflictError: If the RUNNING record disappeared or changed
            PersistenceError: On database failure
        """
        if not status.is_terminal:
            raise ValueError(f"finish() needs a terminal status, got {status.value}")

        completed_at = utcnow()
        duration_ms = _duration_ms(executed_at, completed_at)
        if status is not MigrationStatus.FAILED:
            error_message = None

        try:
            async with self.database.session() as session:
                result = await session.execute(
                    update(MigrationHistory)
                    .where(
                        MigrationHistory.name == migration.name,
                        MigrationHistory.version == migration.version,
                        MigrationHistory.status == MigrationStatus.RUNNING.value,
                    )
                    .values(
                        status=status.value,
                        error_message=error_message,
                        completed_at=completed_at,
                        duration_ms=duration_ms,
                    )
                )
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Cannot record outcome of {migration.name} v{migration.version}: {e}"
            ) from e

        if updated != 1:
            raise ConflictError(
                f"RUNNING record for {migration.name} v{migration.version} was "
                f"modified by another writer",
                name=migration.name,
                version=migration.version,
            )

        return HistoryRecord(
            name=migration.name,
            version=migration.version,
            status=status,
            error_message=error_message,
            executed_at=executed_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
        )

    async def clear(self, name: Optional[str] = None) -> int:
        """
        Delete history rows (all, or those of one migration name).

        Never touches application schema or data. A missing history table
        counts as already empty.

        Returns:
            Number of rows deleted

        Raises:
            PersistenceError: On database failure
        """
        query = delete(MigrationHistory)
        if name is not None:
            query = query.where(MigrationHistory.name == name)

        try:
            async with self.database.session() as session:
                if not await table_exists(session, HISTORY_TABLE):
                    return 0
                result = await session.execute(query)
                deleted = result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot reset migration history: {e}") from e

        self.logger.info('Migration history reset (%d rows removed)', deleted)
        return deleted

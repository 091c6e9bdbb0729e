"""
Unit tests for MigrationExecutor.

Tests cover:
- APPLIED: apply() runs and its work is committed
- ALREADY_APPLIED: probe() short-circuits apply()
- BYPASSED: SkipMigration is a success
- FAILED: errors are captured and the session is rolled back
"""

import pytest
from sqlalchemy import text

from schemaflow.migrations import ExecutionOutcome, MigrationExecutor


@pytest.fixture
async def notes_table(database):
    """Create a notes table to write into."""
    async with database.session() as session:
        await session.execute(text("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)"))


async def count_notes(database):
    async with database.session() as session:
        result = await session.execute(text("SELECT COUNT(*) FROM notes"))
        return result.scalar_one()


class TestExecute:
    """Test single-migration execution outcomes."""

    @pytest.mark.asyncio
    async def test_applied(self, database, notes_table, make_migration, journal):
        migration = make_migration('seed-notes', '001',
                                   sql="INSERT INTO notes (body) VALUES ('hello')")

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is True
        assert result.outcome == ExecutionOutcome.APPLIED
        assert result.error_detail is None
        assert result.duration_ms >= 0
        assert journal == ['seed-notes']
        assert await count_notes(database) == 1

    @pytest.mark.asyncio
    async def test_already_applied_skips_apply(self, database, make_migration, journal):
        migration = make_migration('seed-notes', '001', already_applied=True)

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is True
        assert result.outcome == ExecutionOutcome.ALREADY_APPLIED
        assert journal == []

    @pytest.mark.asyncio
    async def test_bypassed(self, database, make_migration):
        migration = make_migration('schema-creation', '000', skip='schema.sql not found')

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is True
        assert result.outcome == ExecutionOutcome.BYPASSED
        assert result.skip_reason == 'schema.sql not found'
        assert result.error_detail is None

    @pytest.mark.asyncio
    async def test_failed_captures_error(self, database, make_migration):
        migration = make_migration('broken', '001', fail='boom')

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is False
        assert result.outcome == ExecutionOutcome.FAILED
        assert result.error_detail == 'RuntimeError: boom'
        assert 'RuntimeError: boom' in result.error_traceback

    @pytest.mark.asyncio
    async def test_failed_rolls_back(self, database, notes_table, make_migration):
        migration = make_migration('seed-notes', '001',
                                   sql="INSERT INTO notes (body) VALUES ('partial')",
                                   fail='after insert')

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is False
        assert await count_notes(database) == 0

    @pytest.mark.asyncio
    async def test_sql_error_is_failure(self, database, make_migration):
        migration = make_migration('bad-sql', '001', sql="INSERT INTO missing_table VALUES (1)")

        result = await MigrationExecutor(database).execute(migration)

        assert result.success is False
        assert result.error_detail.startswith('OperationalError')
        assert 'missing_table' in result.error_detail

"""
Integration tests for StatusReporter (read-only history queries).
"""
import pytest

from schemaflow.migrations import MigrationHistoryStore, MigrationStatus, StatusReporter
from schemaflow.migrations.probes import table_exists


@pytest.fixture
async def history(database, make_migration):
    """History with one COMPLETED, one FAILED and one SKIPPED record."""
    store = MigrationHistoryStore(database)
    await store.ensure_schema()
    for name, version, status in (
        ('add-total-capacity', '003', MigrationStatus.COMPLETED),
        ('schema-creation', '000', MigrationStatus.SKIPPED),
        ('fix-supplier-names', '009', MigrationStatus.FAILED),
    ):
        migration = make_migration(name, version)
        executed_at = await store.start(migration)
        await store.finish(migration, status, executed_at, error_message='boom')
    return store


class TestStatusReporter:
    """Test history listings."""

    @pytest.mark.asyncio
    async def test_empty_database_is_not_modified(self, database):
        reporter = StatusReporter(database)

        assert await reporter.list_all() == []
        assert await reporter.list_recent() == []

        async with database.session() as session:
            assert not await table_exists(session, 'migration_history')

    @pytest.mark.asyncio
    async def test_list_all_ordered_by_version(self, database, history):
        records = await StatusReporter(database).list_all()

        assert [r.version for r in records] == ['000', '003', '009']
        assert [r.status for r in records] == [
            MigrationStatus.SKIPPED,
            MigrationStatus.COMPLETED,
            MigrationStatus.FAILED,
        ]

    @pytest.mark.asyncio
    async def test_list_by_status(self, database, history):
        reporter = StatusReporter(database)

        failed = await reporter.list_by_status('FAILED')

        assert [r.name for r in failed] == ['fix-supplier-names']
        assert failed[0].error_message == 'boom'
        assert await reporter.list_by_status(MigrationStatus.RUNNING) == []

    @pytest.mark.asyncio
    async def test_list_by_unknown_status(self, database):
        with pytest.raises(ValueError):
            await StatusReporter(database).list_by_status('DONE')

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self, database, history):
        recent = await StatusReporter(database).list_recent(limit=2)

        assert [r.name for r in recent] == ['fix-supplier-names', 'schema-creation']

    @pytest.mark.asyncio
    async def test_list_recent_zero_limit(self, database, history):
        assert await StatusReporter(database).list_recent(limit=0) == []

"""
Integration tests for the shipment tracker migration catalogue.

The table-creation migrations use PostgreSQL DDL and are left out of the
SQLite runs below; everything else runs against a small SQLite base schema.
"""
from datetime import date, datetime

import pytest
from sqlalchemy import text

from schemaflow.catalog import build_registry, calculate_week_date
from schemaflow.migrations import (
    DependencyResolver,
    MigrationExecutor,
    MigrationOrchestrator,
    MigrationRegistry,
    MigrationStatus,
    RunState,
)
from schemaflow.migrations.probes import column_exists

POSTGRES_ONLY = {
    'add-notifications-tables',
    'add-refresh-tokens-table',
    'add-supplier-accounts',
    'add-archives-table',
    'add-referential-integrity',
    'add-costing-tables',
}

BASE_SCHEMA = """
-- Shipment tracker base schema (SQLite flavour)
CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  username TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS suppliers (
  id INTEGER PRIMARY KEY,
  name TEXT NOT NULL,
  updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS shipments (
  id TEXT PRIMARY KEY,
  order_ref TEXT,
  supplier TEXT,
  receiving_warehouse TEXT,
  latest_status TEXT,
  week_number TEXT,
  selected_week_date TIMESTAMP,
  inspection_status TEXT,
  receiving_status TEXT,
  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
  updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS warehouse_capacity (
  warehouse_name TEXT PRIMARY KEY,
  bins_used INTEGER DEFAULT 0,
  updated_at TIMESTAMP
);
"""

TODAY = date(2026, 3, 2)

REJECTION_FIELDS = """
ALTER TABLE shipments ADD COLUMN rejection_date TIMESTAMP;
ALTER TABLE shipments ADD COLUMN rejection_reason TEXT;
ALTER TABLE shipments ADD COLUMN rejected_by VARCHAR(255);
"""


@pytest.fixture
def schema_dir(tmp_path):
    directory = tmp_path / 'db'
    directory.mkdir()
    (directory / 'schema.sql').write_text(BASE_SCHEMA)
    (directory / 'add-rejection-fields.sql').write_text(REJECTION_FIELDS)
    return directory


def sqlite_registry(schema_dir):
    return MigrationRegistry(
        m for m in build_registry(schema_dir, today=TODAY) if m.name not in POSTGRES_ONLY
    )


async def seed(database, *statements):
    async with database.session() as session:
        for statement in statements:
            await session.execute(text(statement))


async def scalars(database, query):
    async with database.session() as session:
        return (await session.execute(text(query))).scalars().all()


class TestCalculateWeekDate:
    """Test week number to Monday conversion."""

    def test_current_year(self):
        assert calculate_week_date(10, today=TODAY) == datetime(2026, 3, 2)

    def test_numeric_string(self):
        assert calculate_week_date(' 10 ', today=TODAY) == datetime(2026, 3, 2)

    def test_december_low_week_is_next_year(self):
        assert calculate_week_date(2, today=date(2025, 12, 15)) == datetime(2026, 1, 5)

    def test_january_high_week_is_last_year(self):
        assert calculate_week_date(52, today=date(2026, 1, 5)) == datetime(2025, 12, 22)

    def test_week_far_behind_is_next_year(self):
        assert calculate_week_date(1, today=date(2026, 7, 1)) == datetime(2027, 1, 4)

    @pytest.mark.parametrize('week', [0, 54, -3, 'abc', '', None])
    def test_invalid_week(self, week):
        assert calculate_week_date(week, today=TODAY) is None


class TestRegistry:
    """Test the catalogue definitions."""

    def test_resolves_in_version_order(self, schema_dir):
        order = DependencyResolver().resolve(build_registry(schema_dir))

        assert [m.version for m in order] == [f'{i:03d}' for i in range(15)]
        assert order[0].name == 'schema-creation'
        assert order[0].critical is True
        assert [m.name for m in order if m.critical] == ['schema-creation']

    def test_rejection_fields_keep_recorded_name(self, schema_dir):
        (migration,) = build_registry(schema_dir).get('add-rejection-migration')

        assert migration.version == '013'
        assert migration.path == str(schema_dir / 'add-rejection-fields.sql')

    def test_everything_depends_on_schema(self, schema_dir):
        registry = build_registry(schema_dir)

        for migration in registry:
            if migration.name != 'schema-creation':
                assert 'schema-creation' in migration.depends_on

    def test_shipment_fix_depends_on_supplier_fix(self, schema_dir):
        (migration,) = build_registry(schema_dir).get('fix-shipment-supplier-names')
        assert 'fix-supplier-names' in migration.depends_on


class TestCatalogRun:
    """Run the catalogue against SQLite."""

    @pytest.mark.asyncio
    async def test_missing_schema_file_is_skipped(self, database, tmp_path):
        registry = MigrationRegistry(
            m for m in build_registry(tmp_path / 'empty') if m.name == 'schema-creation'
        )
        orchestrator = MigrationOrchestrator(database, registry)

        summary = await orchestrator.run()

        assert summary.state == RunState.COMPLETED
        assert summary.bypassed == ['schema-creation']
        assert (await orchestrator.status())[0].status == MigrationStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_full_run(self, database, schema_dir):
        orchestrator = MigrationOrchestrator(database, sqlite_registry(schema_dir))

        summary = await orchestrator.run()

        assert summary.state == RunState.COMPLETED, summary.report_lines()
        assert summary.counts() == {'completed': 9, 'failed': 0, 'skipped': 0, 'blocked': 0}
        assert await scalars(
            database, "SELECT warehouse_name FROM warehouse_capacity ORDER BY warehouse_name"
        ) == ['KLAPMUTS', 'OFFSITE', 'PRETORIA']
        assert await scalars(
            database, "SELECT available_bins FROM warehouse_capacity ORDER BY warehouse_name"
        ) == [384, 384, 650]

    @pytest.mark.asyncio
    async def test_second_run_skips_everything(self, database, schema_dir):
        await MigrationOrchestrator(database, sqlite_registry(schema_dir)).run()

        summary = await MigrationOrchestrator(database, sqlite_registry(schema_dir)).run()

        assert summary.counts() == {'completed': 0, 'failed': 0, 'skipped': 9, 'blocked': 0}

    @pytest.mark.asyncio
    async def test_data_fixes(self, database, schema_dir):
        registry = sqlite_registry(schema_dir)
        schema = MigrationRegistry(m for m in registry if m.name == 'schema-creation')
        await MigrationOrchestrator(database, schema).run()
        await seed(
            database,
            "INSERT INTO suppliers (name) VALUES ('Aromsa')",
            "INSERT INTO suppliers (name) VALUES ('AB Mauri ')",
            "INSERT INTO suppliers (name) VALUES ('Deltaris')",
            "INSERT INTO suppliers (name) VALUES ('Other')",
            "INSERT INTO shipments (id, supplier, week_number) VALUES ('s1', 'Shakti Chemicals', '10')",
            "INSERT INTO shipments (id, supplier, week_number) VALUES ('s2', 'Other', 'abc')",
        )

        summary = await MigrationOrchestrator(database, registry).run()

        assert summary.state == RunState.COMPLETED, summary.report_lines()
        assert await scalars(database, "SELECT name FROM suppliers ORDER BY id") == [
            'AROMSA', 'AB Mauri', 'QUERCYL', 'Other'
        ]
        assert await scalars(database, "SELECT supplier FROM shipments ORDER BY id") == [
            'SHAKTI CHEMICALS', 'Other'
        ]
        week_dates = await scalars(
            database, "SELECT selected_week_date FROM shipments ORDER BY id"
        )
        assert str(week_dates[0]).startswith('2026-03-02')
        assert week_dates[1] is None

    @pytest.mark.asyncio
    async def test_data_fix_probe_after_run(self, database, schema_dir):
        registry = sqlite_registry(schema_dir)
        await MigrationOrchestrator(database, registry).run()
        (fix,) = registry.get('fix-supplier-names')
        (backfill,) = registry.get('backfill-week-dates')

        executor = MigrationExecutor(database)

        assert (await executor.execute(fix)).success
        assert (await executor.execute(backfill)).success
        async with database.session() as session:
            assert await fix.probe(session) is True
            assert await backfill.probe(session) is True

    @pytest.mark.asyncio
    async def test_rejection_fields_added(self, database, schema_dir):
        await MigrationOrchestrator(database, sqlite_registry(schema_dir)).run()

        async with database.session() as session:
            for name in ('rejection_date', 'rejection_reason', 'rejected_by'):
                assert await column_exists(session, 'shipments', name)

    @pytest.mark.asyncio
    async def test_missing_rejection_file_is_skipped(self, database, schema_dir):
        (schema_dir / 'add-rejection-fields.sql').unlink()
        orchestrator = MigrationOrchestrator(database, sqlite_registry(schema_dir))

        summary = await orchestrator.run()

        assert summary.state == RunState.COMPLETED, summary.report_lines()
        assert summary.bypassed == ['add-rejection-migration']
        statuses = {r.name: r.status for r in await orchestrator.status()}
        assert statuses['add-rejection-migration'] == MigrationStatus.SKIPPED


class TestReferentialIntegrityProbe:
    """Probe the integrity migration without applying its PostgreSQL DDL."""

    @pytest.mark.asyncio
    async def test_pending_on_base_schema(self, database, schema_dir):
        schema = MigrationRegistry(
            m for m in build_registry(schema_dir) if m.name == 'schema-creation'
        )
        await MigrationOrchestrator(database, schema).run()
        (integrity,) = build_registry(schema_dir).get('add-referential-integrity')

        async with database.session() as session:
            assert await integrity.probe(session) is False

    @pytest.mark.asyncio
    async def test_satisfied_when_columns_present(self, database, schema_dir):
        await seed(
            database,
            "CREATE TABLE users (id TEXT PRIMARY KEY, created_by TEXT, updated_by TEXT, "
            "deleted_at TIMESTAMP)",
            "CREATE TABLE suppliers (id INTEGER PRIMARY KEY, deleted_at TIMESTAMP)",
            "CREATE TABLE shipments (id TEXT PRIMARY KEY, deleted_at TIMESTAMP, "
            "inspected_by TEXT, "
            "CONSTRAINT fk_shipments_inspected_by FOREIGN KEY (inspected_by) REFERENCES users(id))",
        )
        (integrity,) = build_registry(schema_dir).get('add-referential-integrity')

        async with database.session() as session:
            assert await integrity.probe(session) is True

"""
Global pytest configuration and fixtures for schemaflow tests

Provides:
- SQLite database on a temporary file
- RecordingMigration (configurable migration that journals apply() calls)
- make_migration factory
"""

from dataclasses import dataclass, field

import pytest

from schemaflow.database import MigrationDatabase
from schemaflow.errors import SkipMigration
from schemaflow.migrations.migration import Migration, execute_script


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def database_url(tmp_path):
    """URL of a fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def database(database_url):
    """MigrationDatabase on a temporary SQLite file, disposed after the test."""
    db = MigrationDatabase(database_url)
    yield db
    await db.close()


# ============================================================================
# Migrations
# ============================================================================

@dataclass(frozen=True, repr=False)
class RecordingMigration(Migration):
    """
    Test migration.

    Attributes:
        journal: Shared list; apply() appends the migration name
        sql: Script executed by apply()
        fail: Raise RuntimeError(fail) from apply() when set
        skip: Raise SkipMigration(skip) from apply() when set
        already_applied: Value returned by probe()
    """
    journal: list = field(default_factory=list, compare=False, hash=False)
    sql: str = ''
    fail: str = ''
    skip: str = ''
    already_applied: bool = False

    async def probe(self, session):
        return self.already_applied

    async def apply(self, session):
        self.journal.append(self.name)
        if self.sql:
            await execute_script(session, self.sql)
        if self.skip:
            raise SkipMigration(self.skip)
        if self.fail:
            raise RuntimeError(self.fail)


@pytest.fixture
def journal():
    """Names of migrations in the order apply() was called."""
    return []


@pytest.fixture
def make_migration(journal):
    """Factory for RecordingMigration sharing the test journal."""
    def make(name, version, **kwargs):
        kwargs.setdefault('journal', journal)
        return RecordingMigration(name=name, version=version, **kwargs)
    return make

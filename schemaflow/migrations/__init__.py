"""
Migration orchestration package.

This package provides:
- Migration, SqlMigration, SqlFileMigration: Migration definitions
- HistoryRecord, MigrationStatus: History data model
- MigrationRegistry: Ordered collection of definitions
- DependencyResolver: Validation and execution ordering
- MigrationExecutor, MigrationResult: Execution of a single migration
- MigrationHistoryStore: Durable history table
- StatusReporter: Read-only history queries
- MigrationOrchestrator, RunSummary: Complete runs with failure policy
"""

from .migration import (
    HistoryRecord,
    Migration,
    MigrationStatus,
    SqlFileMigration,
    SqlMigration,
    version_key,
)
from .migration_executor import ExecutionOutcome, MigrationExecutor, MigrationResult
from .migration_history import MigrationHistoryStore
from .migration_orchestrator import (
    FailedMigration,
    MigrationOrchestrator,
    MigrationState,
    RunContext,
    RunState,
    RunSummary,
)
from .migration_registry import MigrationRegistry
from .migration_resolver import DependencyResolver
from .migration_status import StatusReporter

__all__ = [
    'Migration',
    'SqlMigration',
    'SqlFileMigration',
    'HistoryRecord',
    'MigrationStatus',
    'version_key',
    'MigrationRegistry',
    'DependencyResolver',
    'MigrationExecutor',
    'MigrationResult',
    'ExecutionOutcome',
    'MigrationHistoryStore',
    'StatusReporter',
    'MigrationOrchestrator',
    'RunContext',
    'RunState',
    'RunSummary',
    'MigrationState',
    'FailedMigration',
]

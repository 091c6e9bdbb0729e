#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration orchestrator.

Drives a complete migration run:

1. Resolve execution order (configuration errors raise before any I/O)
2. Ensure the history table exists
3. For each migration: skip if history says COMPLETED/SKIPPED, otherwise
   record RUNNING, execute, record the terminal status
4. Apply the failure policy: a critical failure aborts the run, an optional
   failure is recorded and the run continues
5. Produce a RunSummary

Migrations run strictly one after another. The orchestrator assumes it is
the only writer to the history table for the duration of the run.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from schemaflow.errors import MigrationRunAborted, PersistenceError

from .migration import HistoryRecord, Migration, MigrationStatus
from .migration_executor import ExecutionOutcome, MigrationExecutor
from .migration_history import MigrationHistoryStore, utcnow
from .migration_resolver import DependencyResolver
from .migration_status import StatusReporter

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Global state of a migration run."""
    INITIALIZING = "INITIALIZING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


class MigrationState(str, Enum):
    """State of one migration within a run."""
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class FailedMigration:
    """A migration that ended FAILED during the run."""
    name: str
    version: str
    critical: bool
    error: Optional[str]


@dataclass
class RunSummary:
    """
    Outcome of a migration run.

    Attributes:
        state: Final run state (COMPLETED or ABORTED)
        completed: Names executed successfully in this run
        failed: Migrations that failed in this run
        already_satisfied: Names skipped because history had them done
        bypassed: Names that requested a bypass (recorded SKIPPED)
        blocked: Names not run because a dependency failed or was blocked
        not_started: Names never reached because the run aborted
        aborted_by: Name of the migration that caused the abort
        abort_reason: Why the run aborted
        duration_ms: Total run time in milliseconds
    """
    state: RunState = RunState.INITIALIZING
    completed: List[str] = field(default_factory=list)
    failed: List[FailedMigration] = field(default_factory=list)
    already_satisfied: List[str] = field(default_factory=list)
    bypassed: List[str] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)
    not_started: List[str] = field(default_factory=list)
    aborted_by: Optional[str] = None
    abort_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    records: List[HistoryRecord] = field(default_factory=list)

    @property
    def skipped(self) -> List[str]:
        return self.already_satisfied + self.bypassed

    @property
    def critical_failures(self) -> List[FailedMigration]:
        return [f for f in self.failed if f.critical]

    @property
    def optional_failures(self) -> List[FailedMigration]:
        return [f for f in self.failed if not f.critical]

    @property
    def has_warnings(self) -> bool:
        return bool(self.optional_failures or self.blocked)

    @property
    def exit_code(self) -> int:
        return 1 if self.state == RunState.ABORTED else 0

    def counts(self) -> Dict[str, int]:
        return {
            'completed': len(self.completed),
            'failed': len(self.failed),
            'skipped': len(self.skipped),
            'blocked': len(self.blocked),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'state': self.state.value,
            **self.counts(),
            'completed_migrations': list(self.completed),
            'failed_critical': [f.name for f in self.critical_failures],
            'failed_optional': [f.name for f in self.optional_failures],
            'already_satisfied': list(self.already_satisfied),
            'bypassed': list(self.bypassed),
            'blocked': list(self.blocked),
            'not_started': list(self.not_started),
            'aborted_by': self.aborted_by,
            'abort_reason': self.abort_reason,
            'duration_ms': self.duration_ms,
        }

    def report_lines(self) -> List[str]:
        """Itemized, human-readable report of the run."""
        counts = self.counts()
        lines = [
            f"Migration run {self.state.value}: {counts['completed']} completed, "
            f"{counts['failed']} failed, {counts['skipped']} skipped "
            f"({self.duration_ms}ms)"
        ]
        if self.state == RunState.ABORTED:
            lines.append(f"Aborted by {self.aborted_by or 'run'}: {self.abort_reason}")
        for failure in self.critical_failures:
            lines.append(f"  critical failure: {failure.name} v{failure.version}: {failure.error}")
        for failure in self.optional_failures:
            lines.append(f"  optional failure: {failure.name} v{failure.version}: {failure.error}")
        for name in self.blocked:
            lines.append(f"  blocked by failed dependency: {name}")
        if self.not_started:
            lines.append(f"  not started: {', '.join(self.not_started)}")
        return lines


@dataclass
class RunContext:
    """
    State threaded through a single run.

    Attributes:
        database: Connection provider for this run
        order: Resolved execution order
        summary: Summary accumulated as the run progresses
        states: Per-migration state keyed by (name, version)
    """
    database: Any
    order: List[Migration]
    summary: RunSummary
    states: Dict[Tuple[str, str], MigrationState] = field(default_factory=dict)
    satisfied: Set[Tuple[str, str]] = field(default_factory=set)
    started: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        for migration in self.order:
            self.states.setdefault(migration.identity, MigrationState.NOT_STARTED)

    def unmet_dependencies(self, migration: Migration) -> List[str]:
        """Dependency names with at least one version not yet satisfied."""
        unmet = []
        for dep in sorted(migration.depends_on):
            versions = [m.identity for m in self.order if m.name == dep]
            if not all(identity in self.satisfied for identity in versions):
                unmet.append(dep)
        return unmet


class MigrationOrchestrator:
    """
    Runs, inspects and resets migrations against one database.

    Attributes:
        database: MigrationDatabase (connection provider)
        migrations: Migration definitions (e.g. a MigrationRegistry)

    Example:
        orchestrator = MigrationOrchestrator(database, registry)
        summary = await orchestrator.run()
        sys.exit(summary.exit_code)
    """

    def __init__(
        self,
        database,
        migrations: Iterable[Migration],
        resolver: Optional[DependencyResolver] = None,
        executor: Optional[MigrationExecutor] = None,
        history: Optional[MigrationHistoryStore] = None,
        reporter: Optional[StatusReporter] = None,
    ):
        self.database = database
        self.migrations = list(migrations)
        self.resolver = resolver or DependencyResolver()
        self.executor = executor or MigrationExecutor(database)
        self.history = history or MigrationHistoryStore(database)
        self.reporter = reporter or StatusReporter(database)

    # =================================================================
    # Run API
    # =================================================================

    async def run(self) -> RunSummary:
        """
        Execute all pending migrations.

        Returns:
            RunSummary (state COMPLETED or ABORTED)

        Raises:
            ConfigurationError: Invalid definitions; nothing was written
            MigrationRunAborted: History store failure or write conflict;
                carries the partial summary
        """
        summary = RunSummary(started_at=utcnow())
        order = self.resolver.resolve(self.migrations)
        context = RunContext(database=self.database, order=order, summary=summary)

        logger.info('Starting migration run (%d migrations)', len(order))

        current = None

        try:
            await self.history.ensure_schema()
            summary.state = RunState.IN_PROGRESS

            for current in order:
                if not await self._process(current, context):
                    break

        except PersistenceError as e:
            name = getattr(e, 'name', None) or (current.name if current else None)
            self._abort(context, name, str(e))
            self._finish(context)
            raise MigrationRunAborted(
                f"Migration run aborted: {e}", summary
            ) from e

        self._finish(context)
        return summary

    async def plan(self) -> List[Migration]:
        """
        Migrations a run would attempt, in order, without writing anything.

        Raises:
            ConfigurationError: Invalid definitions
        """
        order = self.resolver.resolve(self.migrations)
        done = {
            (r.name, r.version)
            for r in await self.reporter.list_all()
            if r.status.satisfies_dependants
        }
        return [m for m in order if m.identity not in done]

    async def status(self) -> List[HistoryRecord]:
        """Read-only dump of the history table, ordered by version."""
        return await self.reporter.list_all()

    async def reset(self, name: Optional[str] = None) -> int:
        """
        Clear history rows so migrations run again.

        Destructive: only for non-production environments. Application
        schema and data are never touched.

        Args:
            name: Only clear rows for this migration name

        Returns:
            Number of rows deleted
        """
        deleted = await self.history.clear(name)
        logger.warning(
            'Reset migration history%s: %d rows removed',
            f' for {name}' if name else '',
            deleted
        )
        return deleted

    # =================================================================
    # Per-migration processing
    # =================================================================

    async def _process(self, migration: Migration, context: RunContext) -> bool:
        """
        Process one migration.

        Returns:
            False when the run must stop
        """
        summary = context.summary

        existing = await self.history.get(migration.name, migration.version)
        if existing is not None and existing.status.satisfies_dependants:
            context.satisfied.add(migration.identity)
            context.states[migration.identity] = MigrationState(existing.status.value)
            summary.already_satisfied.append(migration.name)
            logger.info(
                '[%s] %s already %s, skipping',
                migration.version,
                migration.name,
                existing.status.value
            )
            return True

        unmet = context.unmet_dependencies(migration)
        if unmet:
            summary.blocked.append(migration.name)
            reason = f"dependencies not satisfied: {', '.join(unmet)}"
            if migration.critical:
                logger.error('[%s] %s cannot run, %s', migration.version, migration.name, reason)
                self._abort(context, migration.name, reason)
                return False
            logger.warning('[%s] %s not run, %s', migration.version, migration.name, reason)
            return True

        logger.info(
            '[%s] %s: %s',
            migration.version,
            migration.name,
            migration.description or 'running'
        )

        executed_at = await self.history.start(migration)
        context.states[migration.identity] = MigrationState.RUNNING

        result = await self.executor.execute(migration)

        if result.success:
            if result.outcome == ExecutionOutcome.BYPASSED:
                status = MigrationStatus.SKIPPED
            else:
                status = MigrationStatus.COMPLETED

            record = await self.history.finish(migration, status, executed_at)
            if status is MigrationStatus.SKIPPED:
                summary.bypassed.append(migration.name)
            else:
                summary.completed.append(migration.name)
            summary.records.append(record)
            context.satisfied.add(migration.identity)
            context.states[migration.identity] = MigrationState(status.value)
            logger.info(
                '[%s] %s %s (%dms)',
                migration.version,
                migration.name,
                status.value,
                record.duration_ms
            )
            return True

        record = await self.history.finish(
            migration, MigrationStatus.FAILED, executed_at, result.error_detail
        )
        summary.records.append(record)
        context.states[migration.identity] = MigrationState.FAILED
        summary.failed.append(FailedMigration(
            name=migration.name,
            version=migration.version,
            critical=migration.critical,
            error=result.error_detail,
        ))

        if migration.critical:
            logger.error(
                '[%s] %s FAILED (critical, aborting run): %s',
                migration.version,
                migration.name,
                result.error_detail
            )
            self._abort(context, migration.name, result.error_detail)
            return False

        logger.warning(
            '[%s] %s FAILED (optional, continuing): %s',
            migration.version,
            migration.name,
            result.error_detail
        )
        return True

    # =================================================================
    # Run state transitions
    # =================================================================

    def _abort(self, context: RunContext, name: Optional[str], reason: Optional[str]) -> None:
        context.summary.state = RunState.ABORTED
        context.summary.aborted_by = name
        context.summary.abort_reason = reason

    def _finish(self, context: RunContext) -> None:
        summary = context.summary
        if summary.state != RunState.ABORTED:
            summary.state = RunState.COMPLETED

        blocked = set(summary.blocked)
        summary.not_started = [
            m.name for m in context.order
            if context.states[m.identity] == MigrationState.NOT_STARTED
            and m.name not in blocked
        ]
        summary.finished_at = utcnow()
        summary.duration_ms = int((time.monotonic() - context.started) * 1000)

        log = logger.error if summary.state == RunState.ABORTED else (
            logger.warning if summary.has_warnings else logger.info
        )
        for line in summary.report_lines():
            log(line)

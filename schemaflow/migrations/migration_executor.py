#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration executor.

Runs a single migration inside its own session scope and reports a
structured result. The executor never decides whether a migration should
run (that is the orchestrator's job, based on history) and never raises:
every failure comes back as a MigrationResult.
"""
import logging
import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from schemaflow.errors import SkipMigration

from .migration import Migration


class ExecutionOutcome(str, Enum):
    """What happened when a migration was executed."""
    APPLIED = "APPLIED"                  # apply() ran and committed
    ALREADY_APPLIED = "ALREADY_APPLIED"  # probe() found the change present
    BYPASSED = "BYPASSED"                # apply() raised SkipMigration
    FAILED = "FAILED"                    # probe() or apply() raised


@dataclass
class MigrationResult:
    """
    Result of migration execution.

    Attributes:
        success: Whether the migration reached a non-failed outcome
        outcome: Detailed outcome
        duration_ms: Execution time in milliseconds
        error_detail: Error message if failed (None otherwise)
        error_traceback: Formatted traceback if failed
        skip_reason: Reason given by SkipMigration (BYPASSED only)
    """
    success: bool
    outcome: ExecutionOutcome
    duration_ms: int
    error_detail: Optional[str] = None
    error_traceback: Optional[str] = None
    skip_reason: Optional[str] = None


class MigrationExecutor:
    """
    Executes one migration's probe/apply capabilities.

    The migration runs in a session from the injected database: committed
    on success, rolled back on failure or bypass.

    Attributes:
        database: MigrationDatabase (connection provider)
        logger: Logger for execution tracking

    Example:
        executor = MigrationExecutor(database)
        result = await executor.execute(migration)
        if not result.success:
            print(result.error_detail)
    """

    def __init__(self, database):
        """
        Initialize migration executor.

        Args:
            database: MigrationDatabase instance
        """
        self.database = database
        self.logger = logging.getLogger(__name__)

    async def execute(self, migration: Migration) -> MigrationResult:
        """
        Run the migration now.

        Calls probe() first; apply() only runs when the probe reports the
        change is not yet present.

        Args:
            migration: Migration to execute

        Returns:
            MigrationResult with outcome and execution time
        """
        start_time = time.monotonic()

        try:
            async with self.database.session() as session:
                if await migration.probe(session):
                    outcome = ExecutionOutcome.ALREADY_APPLIED
                    self.logger.info(
                        '[%s] %s already applied, nothing to do',
                        migration.version,
                        migration.name
                    )
                else:
                    await migration.apply(session)
                    outcome = ExecutionOutcome.APPLIED

            return MigrationResult(
                success=True,
                outcome=outcome,
                duration_ms=self._elapsed_ms(start_time),
            )

        except SkipMigration as e:
            self.logger.warning(
                '[%s] %s skipped: %s',
                migration.version,
                migration.name,
                e
            )
            return MigrationResult(
                success=True,
                outcome=ExecutionOutcome.BYPASSED,
                duration_ms=self._elapsed_ms(start_time),
                skip_reason=str(e),
            )

        except Exception as e:
            error_detail = f'{type(e).__name__}: {e}' if str(e) else type(e).__name__
            self.logger.debug(
                'Migration %s v%s raised:\n%s',
                migration.name,
                migration.version,
                traceback.format_exc()
            )
            return MigrationResult(
                success=False,
                outcome=ExecutionOutcome.FAILED,
                duration_ms=self._elapsed_ms(start_time),
                error_detail=error_detail,
                error_traceback=traceback.format_exc(),
            )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)

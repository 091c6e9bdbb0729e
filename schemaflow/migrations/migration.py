"""
Migration data models for the orchestration engine.

This module defines the core data structures for managing migrations:
- MigrationStatus: Status values stored in the history table
- Migration: Immutable migration definition with probe/apply capabilities
- SqlMigration: Migration whose action is an inline SQL script
- SqlFileMigration: Migration whose action is an external SQL file
- HistoryRecord: One row of the history table

Migrations are plain Python objects collected into a MigrationRegistry at
program start; they are never persisted. Only their outcome is.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import sqlparse
from packaging.version import InvalidVersion, Version
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from schemaflow.errors import SkipMigration


class MigrationStatus(str, Enum):
    """Status of a history record."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationStatus.COMPLETED, MigrationStatus.FAILED,
                        MigrationStatus.SKIPPED)

    @property
    def satisfies_dependants(self) -> bool:
        """COMPLETED and SKIPPED both count as done for dependants."""
        return self in (MigrationStatus.COMPLETED, MigrationStatus.SKIPPED)


def version_key(version: Any) -> Tuple:
    """
    Sort key for migration versions.

    Versions that parse as PEP 440 versions ('000', '1.2.0') compare
    numerically; anything else compares as text after all numeric ones.

    Example:
        >>> sorted(['010', '9', '002'], key=version_key)
        ['002', '9', '010']
    """
    version_text = str(version)
    try:
        return (0, Version(version_text), version_text)
    except InvalidVersion:
        return (1, version_text, version_text)


def split_sql_statements(sql: str) -> List[str]:
    """Split SQL script into individual statements.

    Required for SQLite which can only execute one statement at a time.
    Comments are dropped; string literals and dollar-quoted bodies are kept
    intact by sqlparse.

    Args:
        sql: SQL string with one or more statements

    Returns:
        List of individual SQL statements (without trailing semicolons)
    """
    statements = []
    for raw in sqlparse.split(sql):
        stmt = sqlparse.format(raw, strip_comments=True).strip().rstrip(';').strip()
        if stmt:
            statements.append(stmt)
    return statements


async def execute_script(session: AsyncSession, sql: str) -> int:
    """Execute every statement of a SQL script in order.

    Returns:
        Number of statements executed
    """
    statements = split_sql_statements(sql)
    for stmt in statements:
        await session.execute(text(stmt))
    return len(statements)


async def _check_query_matches(session: AsyncSession, check_sql: Optional[str]) -> bool:
    if not check_sql:
        return False
    result = await session.execute(text(check_sql))
    return result.first() is not None


@dataclass(frozen=True)
class Migration(ABC):
    """
    Immutable migration definition.

    Subclasses implement apply() and optionally probe(). The executor calls
    probe() first and only calls apply() when probe() reports the change is
    not yet present, so apply() does not need its own existence guards.

    Attributes:
        name: Unique identifier, stable across runs (e.g., 'add-total-capacity')
        version: Ordering key within a phase (e.g., '003')
        phase: Coarse ordering bucket (1..N)
        depends_on: Names that must be COMPLETED or SKIPPED first
        critical: Failure aborts the whole run when True
        description: Human-readable summary, logged when the migration starts

    Example:
        >>> @dataclass(frozen=True, repr=False)
        ... class AddRating(Migration):
        ...     async def probe(self, session):
        ...         return await column_exists(session, 'quotes', 'rating')
        ...     async def apply(self, session):
        ...         await session.execute(text('ALTER TABLE quotes ADD COLUMN rating INT'))
        >>> AddRating(name='add-rating', version='002', phase=3,
        ...           depends_on={'schema-creation'})
        <Migration(v002, add-rating)>
    """

    name: str
    version: str
    phase: int = 1
    depends_on: FrozenSet[str] = field(default_factory=frozenset)
    critical: bool = False
    description: str = ''

    def __post_init__(self):
        """Normalize and validate fields after initialization."""
        if not self.name or not str(self.name).strip():
            raise ValueError("Migration name must not be empty")

        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, 'version', str(self.version))
        object.__setattr__(self, 'depends_on', frozenset(self.depends_on or ()))

        if not self.version.strip():
            raise ValueError(f"Migration {self.name} has an empty version")

        if isinstance(self.phase, bool) or not isinstance(self.phase, int) or self.phase < 1:
            raise ValueError(
                f"Migration phase must be an integer >= 1, got {self.phase!r}"
            )

    @property
    def identity(self) -> Tuple[str, str]:
        """(name, version) pair used as the history key."""
        return (self.name, self.version)

    @property
    def sort_key(self) -> Tuple:
        return (self.phase, version_key(self.version), self.name)

    async def probe(self, session: AsyncSession) -> bool:
        """
        Report whether the change is already present in the database.

        Default: False (always apply).
        """
        return False

    @abstractmethod
    async def apply(self, session: AsyncSession) -> None:
        """
        Apply the change.

        Raise SkipMigration to bypass intentionally; any other exception
        marks the migration FAILED.
        """

    def __lt__(self, other: 'Migration') -> bool:
        if not isinstance(other, Migration):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __repr__(self) -> str:
        return f"<Migration(v{self.version}, {self.name})>"


@dataclass(frozen=True, repr=False)
class SqlMigration(Migration):
    """
    Migration backed by an inline SQL script.

    Attributes:
        sql: One or more semicolon-separated statements
        check_sql: Optional query; any returned row means "already applied"
    """

    sql: str = ''
    check_sql: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if not self.sql.strip():
            raise ValueError(f"Migration {self.name} has empty SQL")

    async def probe(self, session: AsyncSession) -> bool:
        return await _check_query_matches(session, self.check_sql)

    async def apply(self, session: AsyncSession) -> None:
        await execute_script(session, self.sql)


@dataclass(frozen=True, repr=False)
class SqlFileMigration(Migration):
    """
    Migration backed by an external SQL file.

    An absent file is an intentional bypass: the migration is recorded as
    SKIPPED rather than FAILED.

    Attributes:
        path: Path to the SQL file
        check_sql: Optional query; any returned row means "already applied"
    """

    path: str = ''
    check_sql: Optional[str] = None

    async def probe(self, session: AsyncSession) -> bool:
        return await _check_query_matches(session, self.check_sql)

    async def apply(self, session: AsyncSession) -> None:
        file_path = Path(self.path)
        if not file_path.is_file():
            raise SkipMigration(f"{file_path.name} not found at {file_path}")

        await execute_script(session, file_path.read_text(encoding='utf-8'))


@dataclass
class HistoryRecord:
    """
    Represents one row of the migration_history table.

    Attributes:
        name: Migration name
        version: Migration version
        status: Current status (see MigrationStatus)
        error_message: Error detail, only when status is FAILED
        executed_at: When the attempt started
        completed_at: When the attempt reached a terminal state
        duration_ms: completed_at - executed_at in milliseconds

    Example:
        >>> record = HistoryRecord(name='schema-creation', version='000',
        ...                        status=MigrationStatus.COMPLETED)
        >>> print(record)
        <HistoryRecord(schema-creation v000, COMPLETED)>
    """

    name: str
    version: str
    status: MigrationStatus
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    def __post_init__(self):
        """Coerce status strings read from the database."""
        try:
            self.status = MigrationStatus(self.status)
        except ValueError:
            raise ValueError(
                f"HistoryRecord status must be one of "
                f"{[s.value for s in MigrationStatus]}, got '{self.status}'"
            ) from None

    @classmethod
    def from_row(cls, row) -> 'HistoryRecord':
        """Build from a MigrationHistory ORM row."""
        return cls(
            name=row.name,
            version=row.version,
            status=row.status,
            error_message=row.error_message,
            executed_at=row.executed_at,
            completed_at=row.completed_at,
            duration_ms=row.duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'version': self.version,
            'status': self.status.value,
            'error_message': self.error_message,
            'executed_at': self.executed_at.isoformat() if self.executed_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_ms': self.duration_ms,
        }

    def __repr__(self) -> str:
        return f"<HistoryRecord({self.name} v{self.version}, {self.status.value})>"


def sort_records(records: Iterable[HistoryRecord]) -> List[HistoryRecord]:
    """Order history records by version, then name."""
    return sorted(records, key=lambda r: (version_key(r.version), r.name))

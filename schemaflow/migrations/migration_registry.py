"""
Ordered registry of migration definitions.

Built once at program start; the orchestrator resolves execution order from
it on every run.
"""
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from schemaflow.errors import ConfigurationError

from .migration import Migration

logger = logging.getLogger(__name__)


class MigrationRegistry:
    """
    Registry of migrations keyed by (name, version).

    Registration order is preserved; execution order is decided by the
    resolver, not by this class.

    Example:
        >>> registry = MigrationRegistry()
        >>> registry.register(SqlMigration(name='create-quotes', version='001',
        ...                                sql='CREATE TABLE quotes (id INTEGER)'))
        >>> len(registry)
        1
    """

    def __init__(self, migrations: Optional[Iterable[Migration]] = None):
        self._migrations: Dict[Tuple[str, str], Migration] = {}
        for migration in migrations or ():
            self.register(migration)

    def register(self, migration: Migration) -> Migration:
        """
        Register a migration.

        Raises:
            ConfigurationError: If (name, version) already registered
        """
        if not isinstance(migration, Migration):
            raise ConfigurationError(
                f"Expected a Migration instance, got {type(migration).__name__}"
            )

        if migration.identity in self._migrations:
            raise ConfigurationError(
                f"Duplicate migration {migration.name} v{migration.version}",
                names=[migration.name],
            )

        self._migrations[migration.identity] = migration
        logger.debug("Registered migration: %r", migration)
        return migration

    def get(self, name: str) -> List[Migration]:
        """All registered versions of a migration name."""
        return [m for m in self._migrations.values() if m.name == name]

    def names(self) -> List[str]:
        seen = []
        for migration in self._migrations.values():
            if migration.name not in seen:
                seen.append(migration.name)
        return seen

    def __iter__(self) -> Iterator[Migration]:
        return iter(list(self._migrations.values()))

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, name: object) -> bool:
        return any(m.name == name for m in self._migrations.values())

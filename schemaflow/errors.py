"""
schemaflow/errors.py

Migration engine exceptions.
"""


class MigrationError(Exception):
    """Base exception for migration engine errors."""
    pass


class ConfigurationError(MigrationError):
    """Migration definitions are invalid (cycle, unknown dependency, ...).

    Raised before any database I/O takes place.

    Attributes:
        names: Migration names involved in the problem
    """

    def __init__(self, message: str, names=None):
        super().__init__(message)
        self.names = list(names or [])


class PersistenceError(MigrationError):
    """History store could not be read or written."""
    pass


class ConflictError(PersistenceError):
    """Another writer already holds a RUNNING record for a migration."""

    def __init__(self, message: str, name: str, version: str):
        super().__init__(message)
        self.name = name
        self.version = version


class SkipMigration(MigrationError):
    """Raised by a migration to request an intentional bypass.

    The migration is recorded as SKIPPED and satisfies dependants.
    """
    pass


class MigrationRunAborted(MigrationError):
    """Run stopped on a persistence or conflict error.

    Attributes:
        summary: Partial RunSummary at the time of the abort
    """

    def __init__(self, message: str, summary):
        super().__init__(message)
        self.summary = summary

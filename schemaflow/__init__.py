"""schemaflow - ordered, dependency-aware database migrations with durable history."""

__version__ = '1.0.0'

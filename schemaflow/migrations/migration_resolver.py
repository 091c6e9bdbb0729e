#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dependency resolution for migration definitions.

Validates a set of migrations and produces the single execution order used
by the orchestrator:

1. All phase k migrations precede all phase k+1 migrations
2. Within a phase, migrations ascend by version
3. Every dependency precedes its dependants (wins over version order)

Problems are reported as ConfigurationError before any database I/O.
"""
import heapq
import logging
from typing import Dict, Iterable, List, Set, Tuple

from schemaflow.errors import ConfigurationError

from .migration import Migration

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


class DependencyResolver:
    """
    Validates and orders migrations by phase, version and dependencies.

    Example:
        >>> resolver = DependencyResolver()
        >>> order = resolver.resolve(registry)
        >>> [m.name for m in order]
        ['schema-creation', 'add-performance-indexes', 'add-total-capacity']
    """

    def resolve(self, migrations: Iterable[Migration]) -> List[Migration]:
        """
        Produce the total execution order.

        Args:
            migrations: Migration definitions (any iterable, e.g. a registry)

        Returns:
            Migrations in execution order

        Raises:
            ConfigurationError: Duplicate identity, unknown dependency,
                dependency on a later phase, or dependency cycle
        """
        migrations = list(migrations)
        by_name = self._index_by_name(migrations)

        self._check_unknown_dependencies(migrations, by_name)
        self._check_phases(migrations, by_name)
        self._check_cycles(by_name)

        order = self._stable_topological_sort(migrations, by_name)
        logger.debug("Resolved migration order: %s", [m.name for m in order])
        return order

    # =================================================================
    # Validation
    # =================================================================

    def _index_by_name(self, migrations: List[Migration]) -> Dict[str, List[Migration]]:
        by_name: Dict[str, List[Migration]] = {}
        seen: Set[Tuple[str, str]] = set()

        for migration in migrations:
            if migration.identity in seen:
                raise ConfigurationError(
                    f"Duplicate migration {migration.name} v{migration.version}",
                    names=[migration.name],
                )
            seen.add(migration.identity)
            by_name.setdefault(migration.name, []).append(migration)

        return by_name

    def _check_unknown_dependencies(self, migrations, by_name) -> None:
        missing = []
        for migration in migrations:
            for dep in sorted(migration.depends_on):
                if dep not in by_name:
                    missing.append((migration.name, dep))

        if missing:
            details = ', '.join(f"{name} -> {dep}" for name, dep in missing)
            raise ConfigurationError(
                f"Unknown migration dependencies: {details}",
                names=sorted({name for name, _ in missing}),
            )

    def _check_phases(self, migrations, by_name) -> None:
        for migration in migrations:
            for dep in sorted(migration.depends_on):
                later = [d for d in by_name[dep] if d.phase > migration.phase]
                if later:
                    raise ConfigurationError(
                        f"Migration {migration.name} (phase {migration.phase}) "
                        f"depends on {dep} (phase {later[0].phase}); "
                        f"dependencies must be in the same or an earlier phase",
                        names=[migration.name, dep],
                    )

    def _check_cycles(self, by_name: Dict[str, List[Migration]]) -> None:
        """Detect dependency cycles with white/gray/black DFS colouring."""
        graph = {
            name: sorted({dep for m in group for dep in m.depends_on})
            for name, group in by_name.items()
        }
        colour = {name: WHITE for name in graph}
        path: List[str] = []

        def visit(name: str) -> None:
            colour[name] = GRAY
            path.append(name)
            for dep in graph[name]:
                if colour[dep] == GRAY:
                    cycle = path[path.index(dep):] + [dep]
                    raise ConfigurationError(
                        f"Circular dependency detected: {' -> '.join(cycle)}",
                        names=cycle[:-1],
                    )
                if colour[dep] == WHITE:
                    visit(dep)
            path.pop()
            colour[name] = BLACK

        for name in sorted(graph):
            if colour[name] == WHITE:
                visit(name)

    # =================================================================
    # Ordering
    # =================================================================

    def _stable_topological_sort(self, migrations, by_name) -> List[Migration]:
        """Kahn's algorithm with (phase, version, name) as the tie-break."""
        in_degree: Dict[Tuple[str, str], int] = {m.identity: 0 for m in migrations}
        dependants: Dict[Tuple[str, str], List[Migration]] = {
            m.identity: [] for m in migrations
        }

        for migration in migrations:
            for dep in migration.depends_on:
                for prerequisite in by_name[dep]:
                    in_degree[migration.identity] += 1
                    dependants[prerequisite.identity].append(migration)

        ready = [
            (m.sort_key, m.identity, m)
            for m in migrations if in_degree[m.identity] == 0
        ]
        heapq.heapify(ready)
        order: List[Migration] = []

        while ready:
            _, _, migration = heapq.heappop(ready)
            order.append(migration)

            for dependant in dependants[migration.identity]:
                in_degree[dependant.identity] -= 1
                if in_degree[dependant.identity] == 0:
                    heapq.heappush(ready, (dependant.sort_key, dependant.identity, dependant))

        if len(order) != len(migrations):
            remaining = sorted(i[0] for i, d in in_degree.items() if d > 0)
            raise ConfigurationError(
                f"Circular dependency detected in migrations: {remaining}",
                names=remaining,
            )

        return order
